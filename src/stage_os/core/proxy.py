"""
Sandbox-side proxies for host-owned visual elements.

A proxy owns a remote handle, a local geometry cache and its child list. It
never measures itself on the host during layout: the cache is written by the
owning container and pushed out by ``apply_layout``.
"""

import logging
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, List, Mapping, Optional, Sequence, Union

from .errors import ConfigError, StageError
from .observable import Observable

if TYPE_CHECKING:
    from .ipc import MessageBridge

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in host pixels."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def coerce(cls, value: Union["Rect", Mapping, Sequence]) -> "Rect":
        """Build a Rect from a Rect, a {x, y, width, height} mapping or a 4-sequence."""
        if isinstance(value, Rect):
            return value
        if isinstance(value, Mapping):
            try:
                return cls(
                    x=value.get("x", 0),
                    y=value.get("y", 0),
                    width=value["width"],
                    height=value["height"],
                )
            except KeyError as e:
                raise ConfigError(f"Bounds mapping is missing {e.args[0]!r}") from None
        if isinstance(value, Sequence) and not isinstance(value, str) and len(value) == 4:
            return cls(*value)
        raise ConfigError(f"Cannot interpret {value!r} as bounds")

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


def px(value: float) -> str:
    """Format a pixel length for a style call."""
    if float(value).is_integer():
        return f"{int(value)}px"
    return f"{value:.2f}px"


class RemoteProxy(Observable):
    """
    Stand-in for one host element.

    Construct without ``handle`` to create a new host element, or with a handle
    to wrap one that already exists (no creation call is sent). Subclasses that
    create something other than a plain element override ``_create``.
    """

    HANDLE_PREFIX = "sel"

    def __init__(self, bridge: "MessageBridge", handle: Optional[str] = None, tag: str = "div"):
        self.bridge = bridge
        self.children: List["RemoteProxy"] = []
        self.removed = False
        self.prev_object: Optional["RemoteProxy"] = None
        self._parent_ref: Optional[weakref.ref] = None
        self._bounds: Optional[Rect] = None
        self._tokens: List[str] = []

        if handle is None:
            handle = bridge.next_unique(self.HANDLE_PREFIX)
            self.handle = handle
            self._create(tag)
        else:
            self.handle = handle

    def _create(self, tag: str) -> None:
        self.bridge.call("Element", "createElement", [self.handle, tag])

    def __repr__(self) -> str:
        state = " removed" if self.removed else ""
        return f"<{type(self).__name__} {self.handle}{state}>"

    # Host calls

    def _call(self, operation: str, args: list, callback: Optional[Callable] = None) -> None:
        if self.removed:
            log.debug(f"Ignoring Element.{operation} on removed {self.handle}")
            return
        self.bridge.call("Element", operation, [self.handle, *args], callback)

    def _own_token(self, callback: Callable) -> str:
        """Mint a token for a repeatable event; released when the proxy is removed."""
        token = self.bridge.make_callback(callback)
        self._tokens.append(token)
        return token

    def _own_reply_token(self, callback: Callable) -> str:
        """Like ``_own_token`` but forgotten again once the host has replied."""
        token = None

        def reply(*args):
            if token in self._tokens:
                self._tokens.remove(token)
                self.bridge.release(token)
            return callback(*args)

        token = self._own_token(reply)
        return token

    def _guarded(self, callback: Callable) -> Callable:
        """Wrap a host reply so it is dropped once the proxy is removed."""

        def guarded(*args):
            if self.removed:
                log.debug(f"Dropping late reply for removed {self.handle}")
                return None
            return callback(*args)

        return guarded

    # Tree

    @property
    def parent(self) -> Optional["RemoteProxy"]:
        """Non-owning back-reference to the element this proxy was appended to."""
        return self._parent_ref() if self._parent_ref is not None else None

    def append(self, child: "RemoteProxy") -> "RemoteProxy":
        """Move ``child`` under this element."""
        if self.removed:
            raise StageError(f"Cannot append to removed {self!r}")
        self.bridge.call("Element", "appendTo", [child.handle, self.handle])
        old_parent = child.parent
        if old_parent is not None and child in old_parent.children:
            old_parent.children.remove(child)
        self.children.append(child)
        child._parent_ref = weakref.ref(self)
        return self

    def append_to(self, parent: Union["RemoteProxy", str]) -> "RemoteProxy":
        """Attach under ``parent``, given as a proxy or a raw remote handle."""
        if isinstance(parent, RemoteProxy):
            parent.append(self)
        elif isinstance(parent, str):
            self.bridge.call("Element", "appendTo", [self.handle, parent])
        else:
            raise TypeError(f"Cannot attach {self!r} to {parent!r}, not an element or handle")
        return self

    attach_to = append_to

    @classmethod
    def select(
        cls, bridge: "MessageBridge", selector: str, context: Optional[str] = None
    ) -> "RemoteProxy":
        """Wrap a host-side selection as a proxy."""
        handle = bridge.next_unique(cls.HANDLE_PREFIX)
        bridge.call("Element", "createSelection", [handle, selector, context])
        return RemoteProxy(bridge, handle=handle)

    def find(self, selector: str) -> "RemoteProxy":
        selection = RemoteProxy.select(self.bridge, selector, self.handle)
        selection.prev_object = self
        return selection

    def end(self) -> "RemoteProxy":
        if self.prev_object is None:
            raise StageError(f"{self!r} has no previous selection")
        return self.prev_object

    # Style and content

    def css(self, prop: str, value: Any = None) -> "RemoteProxy":
        """Set a style property, or fetch it when ``value`` is a callable."""
        if callable(value):
            self._call("getStyle", [prop], self._guarded(value))
        else:
            self._call("applyStyle", [prop, value])
        return self

    def attr(self, name: str, value: Any = None) -> "RemoteProxy":
        """Set an attribute, or fetch it when ``value`` is a callable."""
        if callable(value):
            self._call("getAttr", [name], self._guarded(value))
        else:
            self._call("setAttr", [name, value])
        return self

    def text(self, text: Any) -> "RemoteProxy":
        self._call("setInnerText", [text])
        return self

    def add_class(self, *classes: str) -> "RemoteProxy":
        for cls_name in classes:
            if cls_name:
                self._call("addClass", [cls_name])
        return self

    def animate(
        self,
        properties: Mapping[str, Any],
        duration: Optional[int] = None,
        easing: Optional[str] = None,
        complete: Optional[Callable] = None,
    ) -> "RemoteProxy":
        """
        Animate style properties on the host.

        ``duration`` is in host units (milliseconds). ``complete`` runs once the
        host reports the animation finished.
        """
        options = {}
        if duration is not None:
            options["duration"] = duration
        if easing is not None:
            options["easing"] = easing
        if complete is not None and not self.removed:
            options["complete"] = self._own_reply_token(self._guarded(complete))
        self._call("animate", [dict(properties), options])
        return self

    def click(self, handler: Callable) -> "RemoteProxy":
        """Bind ``handler`` to host click events for as long as the proxy lives."""
        if not self.removed:
            self._call("bind", ["click", self._own_token(self._guarded(handler))])
        return self

    def hide(self, duration: Optional[int] = None) -> "RemoteProxy":
        self._call("hide", [duration])
        return self

    def show(self, duration: Optional[int] = None) -> "RemoteProxy":
        self._call("show", [duration])
        return self

    def fade_in(self, duration: Optional[int] = None) -> "RemoteProxy":
        self._call("fadeIn", [duration])
        return self

    def fade_out(self, duration: Optional[int] = None) -> "RemoteProxy":
        self._call("fadeOut", [duration])
        return self

    def fade_to(self, duration: Optional[int], opacity: float) -> "RemoteProxy":
        self._call("fadeTo", [duration, opacity])
        return self

    def fade_toggle(self, duration: Optional[int] = None) -> "RemoteProxy":
        self._call("fadeToggle", [duration])
        return self

    # Measurement (always asynchronous)

    def height(self, value: Union[float, Callable]) -> None:
        if callable(value):
            self._call("getHeight", [], self._guarded(value))
        else:
            self._call("setHeight", [value])

    def width(self, value: Union[float, Callable]) -> None:
        if callable(value):
            self._call("getWidth", [], self._guarded(value))
        else:
            self._call("setWidth", [value])

    def outer_height(self, include_margin: Union[bool, Callable], callback: Callable = None):
        if callable(include_margin):
            callback, include_margin = include_margin, False
        self._call("getOuterHeight", [include_margin], self._guarded(callback))

    def outer_width(self, include_margin: Union[bool, Callable], callback: Callable = None):
        if callable(include_margin):
            callback, include_margin = include_margin, False
        self._call("getOuterWidth", [include_margin], self._guarded(callback))

    # Lifecycle

    def remove(self) -> None:
        """Delete the host element. Safe to call more than once."""
        if self.removed:
            return
        self._call("remove", [])
        parent = self.parent
        if parent is not None and self in parent.children:
            parent.children.remove(self)
        self._invalidate()

    def _invalidate(self) -> None:
        """Mark this subtree dead locally; the host already dropped it."""
        self.removed = True
        for token in self._tokens:
            self.bridge.release(token)
        self._tokens.clear()
        for child in self.children:
            child._invalidate()

    # Layout

    def bounds(self, rect: Union[Rect, Mapping, Sequence, None] = None) -> Optional[Rect]:
        """
        Read the geometry cache, or replace it when ``rect`` is given.

        Setting the cache makes no host call; ``apply_layout`` pushes it.
        """
        if rect is None:
            return self._bounds
        self._bounds = Rect.coerce(rect)
        return self._bounds

    def apply_layout(self) -> None:
        """Push the cached rectangle to the host as absolute position and size."""
        if self._bounds is None:
            return
        b = self._bounds
        self.css("position", "absolute")
        self.css("left", px(b.x))
        self.css("top", px(b.y))
        self.css("width", px(b.width))
        self.css("height", px(b.height))


Element = RemoteProxy


class Media(RemoteProxy):
    """
    An image placed by aspect-ratio fit.

    The element stays transparent until the host has reported the natural size
    and a layout pass has positioned it once.
    """

    HANDLE_PREFIX = "media"

    def __init__(self, bridge: "MessageBridge", location: str):
        if not location:
            raise ConfigError("Media needs a location")
        self.location = location
        self.natural_size: Optional[tuple] = None
        self.revealed = False

        super().__init__(bridge)

        self.css("opacity", 0)
        bridge.call(
            "Media", "getNaturalSize", [self.handle], self._guarded(self._on_natural_size)
        )

    def _create(self, tag: str) -> None:
        self.bridge.call("Media", "create", [self.handle, self.location])

    def _on_natural_size(self, size: Any, *rest) -> None:
        if isinstance(size, Mapping):
            width, height = size.get("width"), size.get("height")
        elif rest:
            width, height = size, rest[0]
        else:
            width, height = size
        if not width or not height:
            log.warning(f"Media {self.location} reported unusable size {size!r}")
            return
        self.natural_size = (width, height)
        self.apply_layout()

    def apply_layout(self) -> None:
        if self.natural_size is None or self._bounds is None:
            return

        natural_w, natural_h = self.natural_size
        b = self._bounds
        if not b.width or not b.height:
            return

        image_ratio = natural_h / natural_w
        bounds_ratio = b.height / b.width

        if image_ratio < bounds_ratio:
            # Wider than the box: full width, centred vertically
            width = b.width
            height = width * image_ratio
            left = b.x
            top = b.y + (b.height - height) / 2
        else:
            height = b.height
            width = height / image_ratio
            top = b.y
            left = b.x + (b.width - width) / 2

        self.css("position", "absolute")
        self.css("left", px(left))
        self.css("top", px(top))
        self.css("width", px(width))
        self.css("height", px(height))

        if not self.revealed:
            self.css("opacity", 1)
            self.revealed = True
