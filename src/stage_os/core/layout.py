"""
Containers and the layout pass.

Layout is push-based: a container assigns rectangles to its children's
geometry caches and asks each child to apply them. The root viewport starts a
pass whenever the host reports a new window size.
"""

import logging
import math
from typing import TYPE_CHECKING, Any, List, Optional

from .config import LayoutConfig
from .errors import NotLayoutableError
from .proxy import Rect, RemoteProxy

if TYPE_CHECKING:
    from .ipc import MessageBridge

log = logging.getLogger(__name__)


def is_layoutable(obj: Any) -> bool:
    """True if ``obj`` exposes a geometry cache accessor and a layout operation."""
    return callable(getattr(obj, "bounds", None)) and callable(getattr(obj, "apply_layout", None))


class StandardContainer(RemoteProxy):
    """Element that owns and lays out child components."""

    def __init__(self, bridge: "MessageBridge", handle: Optional[str] = None, tag: str = "div"):
        super().__init__(bridge, handle=handle, tag=tag)
        self.items: List[RemoteProxy] = []

    def add_child(self, child: RemoteProxy) -> None:
        """Adopt ``child`` and lay it out immediately."""
        if not is_layoutable(child):
            raise NotLayoutableError(
                f"Cannot add {child!r} to {self!r}, not a layoutable component"
            )

        self.items.append(child)
        if isinstance(child, RemoteProxy):
            self.append(child)
        self.apply_layout()

    def remove_child(self, child: RemoteProxy) -> None:
        """Drop ``child`` from the layout and delete it on the host."""
        if child in self.items:
            self.items.remove(child)
        remove = getattr(child, "remove", None)
        if callable(remove):
            remove()
        self.apply_layout()

    def layout_children(self, rect: Rect) -> None:
        """Assign ``rect`` to every child and let it lay itself out."""
        for item in list(self.items):
            item.bounds(rect)
            item.apply_layout()

    def apply_layout(self) -> None:
        if self._bounds is None:
            return
        super().apply_layout()
        self.layout_children(self._bounds)


class Viewport(StandardContainer):
    """
    The whole host window.

    Constructed once per runtime and handed to whoever needs a root container.
    """

    ROOT_HANDLE = "body"

    def __init__(self, bridge: "MessageBridge"):
        super().__init__(bridge, handle=self.ROOT_HANDLE)

        bridge.call("Window", "addResizeHandler", [self._own_token(self._on_resize)])
        bridge.call("Window", "getSize", [], self._on_resize)

    def _on_resize(self, bounds: Any, *rest) -> None:
        if rest:
            bounds = {"x": 0, "y": 0, "width": bounds, "height": rest[0]}
        self.bounds(bounds)
        log.debug(f"Viewport resized to {self._bounds.width}x{self._bounds.height}")
        self.apply_layout()

    def apply_layout(self) -> None:
        # The body is never positioned, only its children are.
        if self._bounds is None:
            return
        self.layout_children(self._bounds)


class ActivitySidebar(StandardContainer):
    """A narrow column down the left edge of its container for activity widgets."""

    def __init__(self, bridge: "MessageBridge", container: StandardContainer, config=None):
        super().__init__(bridge)
        self.config = config or LayoutConfig()
        self.add_class("activity-sidebar")
        container.add_child(self)

    def column_width(self) -> int:
        width = math.floor(self._bounds.width * self.config.sidebar_fraction)
        return min(self.config.sidebar_max_width, width)

    def apply_layout(self) -> None:
        if self._bounds is None:
            return

        column = Rect(
            x=self._bounds.x,
            y=self._bounds.y,
            width=self.column_width(),
            height=self._bounds.height,
        )
        self.layout_children(column)
