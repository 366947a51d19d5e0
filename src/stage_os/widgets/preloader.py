"""
Media preloading with a blocking overlay.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Tuple

from ..core.errors import DuplicateCompletionError
from ..core.observable import Observable
from ..core.proxy import RemoteProxy

if TYPE_CHECKING:
    from ..core.ipc import MessageBridge

log = logging.getLogger(__name__)


@dataclass(eq=False)
class PreloadItem:
    url: str
    loaded: bool = False
    failed: bool = False
    tokens: Tuple[str, ...] = ()


class Preloader(Observable):
    """
    Asks the host to fetch media ahead of use.

    Events:
        load   an item finished loading
        error  an item failed to load
        done   nothing is left to load
    """

    def __init__(self, bridge: "MessageBridge", container: RemoteProxy):
        self.bridge = bridge
        self.items: List[PreloadItem] = []
        self.unloaded: List[PreloadItem] = []

        self.overlay = RemoteProxy(bridge).add_class("preloader-overlay").append_to(container)
        self.overlay.hide()
        RemoteProxy(bridge, tag="p").text("Loading media").append_to(self.overlay)
        RemoteProxy(bridge).add_class("spinner").append_to(self.overlay)

    def add_item(self, url: str) -> PreloadItem:
        item = PreloadItem(url)
        self.items.append(item)
        self.unloaded.append(item)

        onload = self.bridge.make_callback(lambda *args: self._on_load(item))
        onerror = self.bridge.make_callback(lambda *args: self._on_error(item))
        item.tokens = (onload, onerror)
        self.bridge.call("Preload", "load", [url, onload, onerror])
        return item

    def _on_load(self, item: PreloadItem) -> None:
        if item not in self.unloaded:
            raise DuplicateCompletionError(f"Media {item.url} reported loaded twice")

        # onload stays registered so a repeated callback is caught here; a
        # repeated return is caught by the bridge
        self._release(item.tokens[1:])
        self.unloaded.remove(item)
        item.loaded = True
        log.debug(f"Preloaded {item.url} ({len(self.unloaded)} left)")
        self.trigger("load", [item])

        if not self.unloaded:
            self.trigger("done")

    def _on_error(self, item: PreloadItem) -> None:
        self._release(item.tokens)
        item.failed = True
        log.warning(f"Failed to preload {item.url}")
        self.trigger("error", [item])

    def _release(self, tokens) -> None:
        for token in tokens:
            self.bridge.release(token)

    @property
    def pending(self) -> int:
        return len(self.unloaded)

    def preload(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once everything added so far has loaded."""
        if not self.unloaded:
            callback()
            return

        self.overlay.show()

        def on_done(event):
            self.overlay.hide()
            callback()

        self.one("done", on_done)
