"""
In-process stand-in for the trusted host.

SimulatedHost consumes the sandbox's outbound calls, keeps a table of the
elements they describe, answers queries through ``return`` and ``callback``
messages and paints a preview of whatever is positioned on screen. It exists
to run and observe presentations without a real renderer.
"""

import logging
import os
import re
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from ..core.config import PreviewConfig
from ..core.ipc import HostChannel, OutboundCall
from .display import PreviewBuffer

log = logging.getLogger(__name__)

BODY = "body"
LINE_HEIGHT = 20

_PX = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(?:px)?\s*$")


def parse_px(value: Any) -> Optional[float]:
    """Read a CSS pixel length ("12px", "12.50px" or a number)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _PX.match(value)
        if match:
            return float(match.group(1))
    return None


@dataclass(eq=False)
class HostElement:
    """The host's record of one element."""

    handle: str
    tag: str = "div"
    kind: str = "element"
    parent: Optional["HostElement"] = None
    children: List["HostElement"] = field(default_factory=list)
    styles: Dict[str, Any] = field(default_factory=dict)
    classes: List[str] = field(default_factory=list)
    attrs: Dict[str, Any] = field(default_factory=dict)
    text: str = ""
    bindings: Dict[str, List[str]] = field(default_factory=dict)
    visible: bool = True
    location: Optional[str] = None

    @property
    def opacity(self) -> float:
        try:
            return float(self.styles.get("opacity", 1))
        except (TypeError, ValueError):
            return 1.0

    def rect(self) -> Optional[Tuple[float, float, float, float]]:
        """Absolute rectangle, if the element has been fully positioned."""
        if self.styles.get("position") != "absolute":
            return None
        values = [parse_px(self.styles.get(key)) for key in ("left", "top", "width", "height")]
        if any(v is None for v in values):
            return None
        return tuple(values)

    def measure_height(self) -> float:
        height = parse_px(self.styles.get("height"))
        if height is not None:
            return height
        own = LINE_HEIGHT if self.text else 0
        return own + sum(child.measure_height() for child in self.children if child.visible)

    def detach(self) -> None:
        if self.parent is not None and self in self.parent.children:
            self.parent.children.remove(self)
        self.parent = None

    def describe(self) -> dict:
        return {
            "handle": self.handle,
            "tag": self.tag,
            "kind": self.kind,
            "parent": self.parent.handle if self.parent else None,
            "children": [child.handle for child in self.children],
            "classes": list(self.classes),
            "text": self.text,
            "styles": dict(self.styles),
            "visible": self.visible,
            "location": self.location,
            "events": sorted(self.bindings),
        }


@dataclass
class HostSound:
    handle: str
    url: str
    props: Dict[str, Any] = field(default_factory=dict)
    playing: bool = False


class SimulatedHost:
    """
    Executes the outbound protocol against an in-memory element table.

    Animations complete immediately: their final styles are applied and the
    completion is reported in the same step. All public methods are
    thread-safe; the web interface calls ``click``, ``resize`` and the
    snapshots from its own thread.
    """

    def __init__(
        self,
        channel: HostChannel,
        config: Optional[PreviewConfig] = None,
        viewport_size: Tuple[int, int] = (1024, 768),
        trace_size: int = 500,
    ):
        self.channel = channel
        self.config = config or PreviewConfig()
        self.width, self.height = viewport_size

        self.elements: Dict[str, HostElement] = {BODY: HostElement(BODY, tag="body", kind="body")}
        self.sounds: Dict[str, HostSound] = {}
        self.canvases: Dict[str, Dict[str, Any]] = {}
        self.figures: Dict[str, Dict[str, Any]] = {}
        self.console: Deque[Tuple[str, str]] = deque(maxlen=trace_size)
        self.calls: Deque[Dict[str, Any]] = deque(maxlen=trace_size)
        self.resize_tokens: List[str] = []
        self.acknowledged = False

        self._lock = threading.RLock()
        self._handlers: Dict[Tuple[str, str], Callable[[OutboundCall], None]] = {
            ("Basic", "started"): self._basic_started,
            ("Console", "log"): self._console_log,
            ("Console", "error"): self._console_error,
            ("Element", "createElement"): self._create_element,
            ("Element", "createSelection"): self._create_selection,
            ("Element", "appendTo"): self._append_to,
            ("Element", "applyStyle"): self._apply_style,
            ("Element", "getStyle"): self._get_style,
            ("Element", "setInnerText"): self._set_inner_text,
            ("Element", "setAttr"): self._set_attr,
            ("Element", "getAttr"): self._get_attr,
            ("Element", "addClass"): self._add_class,
            ("Element", "animate"): self._animate,
            ("Element", "remove"): self._remove,
            ("Element", "setHeight"): self._set_height,
            ("Element", "getHeight"): self._get_height,
            ("Element", "setWidth"): self._set_width,
            ("Element", "getWidth"): self._get_width,
            ("Element", "getOuterHeight"): self._get_outer_height,
            ("Element", "getOuterWidth"): self._get_outer_width,
            ("Element", "bind"): self._bind,
            ("Element", "hide"): self._hide,
            ("Element", "show"): self._show,
            ("Element", "fadeIn"): self._show,
            ("Element", "fadeOut"): self._hide,
            ("Element", "fadeTo"): self._fade_to,
            ("Element", "fadeToggle"): self._fade_toggle,
            ("Media", "create"): self._media_create,
            ("Media", "getNaturalSize"): self._media_natural_size,
            ("Window", "addResizeHandler"): self._add_resize_handler,
            ("Window", "getSize"): self._get_size,
            ("Sound", "create"): self._sound_create,
            ("Sound", "play"): self._sound_play,
            ("Sound", "stop"): self._sound_stop,
            ("Preload", "load"): self._preload,
            ("Raphael", "create"): self._canvas_create,
            ("Raphael", "path"): self._canvas_figure,
            ("Raphael", "circle"): self._canvas_figure,
            ("Raphael", "clear"): self._canvas_clear,
            ("Raphael", "setSize"): self._canvas_set_size,
            ("Raphael", "attr"): self._figure_attr,
        }

    # Protocol

    def start(self) -> None:
        """Tell the sandbox to run its script."""
        self.channel.reply(["start"])

    def _return(self, token: Optional[str], *args: Any) -> None:
        if token:
            self.channel.reply(["return", token, list(args)])

    def _callback(self, token: Optional[str], *args: Any) -> None:
        if token:
            self.channel.reply(["callback", token, list(args)])

    def process(self, max_calls: Optional[int] = None) -> int:
        """Apply pending outbound calls without blocking. Returns how many ran."""
        applied = 0
        while max_calls is None or applied < max_calls:
            payload = self.channel.poll_outbound()
            if payload is None:
                break
            self.apply(payload)
            applied += 1
        return applied

    def apply(self, payload: Any) -> None:
        """Apply one outbound wire payload."""
        call = OutboundCall.from_wire(payload)
        with self._lock:
            self.calls.append(
                {
                    "module": call.module,
                    "operation": call.operation,
                    "args": call.args,
                    "token": call.token,
                }
            )
            handler = self._handlers.get((call.module, call.operation))
            if handler is None:
                log.warning(f"Unsupported host call {call.module}.{call.operation}")
                return
            try:
                handler(call)
            except (IndexError, KeyError, TypeError, ValueError) as e:
                log.error(f"Host call {call!r} failed: {e}")

    def _element(self, handle: str) -> HostElement:
        element = self.elements.get(handle)
        if element is None:
            raise KeyError(f"no element {handle!r}")
        return element

    # Basic and Console

    def _basic_started(self, call: OutboundCall) -> None:
        self.acknowledged = True
        log.info("Sandbox acknowledged start")

    def _console_log(self, call: OutboundCall) -> None:
        message = str(call.args[0]) if call.args else ""
        self.console.append(("log", message))
        log.info(f"[sandbox] {message}")

    def _console_error(self, call: OutboundCall) -> None:
        message = str(call.args[0]) if call.args else ""
        self.console.append(("error", message))
        log.error(f"[sandbox] {message}")

    # Element

    def _create_element(self, call: OutboundCall) -> None:
        handle, tag = call.args[0], call.args[1] if len(call.args) > 1 else "div"
        self.elements[handle] = HostElement(handle, tag=tag or "div")

    def _match(self, selector: str, root: HostElement) -> Optional[HostElement]:
        stack = list(reversed(root.children))
        while stack:
            element = stack.pop()
            if selector.startswith("#") and element.attrs.get("id") == selector[1:]:
                return element
            if selector.startswith(".") and selector[1:] in element.classes:
                return element
            if element.tag == selector:
                return element
            stack.extend(reversed(element.children))
        return None

    def _create_selection(self, call: OutboundCall) -> None:
        handle, selector = call.args[0], call.args[1]
        context = call.args[2] if len(call.args) > 2 else None
        root = self.elements.get(context) if context else self.elements[BODY]
        match = self._match(selector, root) if root is not None else None
        if match is None:
            log.debug(f"Selection {selector!r} matched nothing")
            match = HostElement(handle, kind="selection")
        self.elements[handle] = match

    def _append_to(self, call: OutboundCall) -> None:
        child = self._element(call.args[0])
        parent = self._element(call.args[1])
        child.detach()
        parent.children.append(child)
        child.parent = parent

    def _apply_style(self, call: OutboundCall) -> None:
        handle, prop, value = call.args
        self._element(handle).styles[prop] = value

    def _get_style(self, call: OutboundCall) -> None:
        handle, prop = call.args
        self._return(call.token, self._element(handle).styles.get(prop))

    def _set_inner_text(self, call: OutboundCall) -> None:
        handle, text = call.args
        self._element(handle).text = "" if text is None else str(text)

    def _set_attr(self, call: OutboundCall) -> None:
        handle, name, value = call.args
        self._element(handle).attrs[name] = value

    def _get_attr(self, call: OutboundCall) -> None:
        handle, name = call.args
        self._return(call.token, self._element(handle).attrs.get(name))

    def _add_class(self, call: OutboundCall) -> None:
        handle, name = call.args
        element = self._element(handle)
        if name not in element.classes:
            element.classes.append(name)

    def _animate(self, call: OutboundCall) -> None:
        handle, properties = call.args[0], call.args[1]
        options = call.args[2] if len(call.args) > 2 else {}
        element = self._element(handle)
        element.styles.update(properties or {})
        self._return((options or {}).get("complete"))

    def _remove(self, call: OutboundCall) -> None:
        element = self.elements.get(call.args[0])
        if element is None:
            return
        element.detach()
        stack = [element]
        while stack:
            current = stack.pop()
            stack.extend(current.children)
            for handle in [h for h, e in self.elements.items() if e is current]:
                del self.elements[handle]

    def _set_height(self, call: OutboundCall) -> None:
        handle, value = call.args
        self._element(handle).styles["height"] = value

    def _get_height(self, call: OutboundCall) -> None:
        self._return(call.token, self._element(call.args[0]).measure_height())

    def _set_width(self, call: OutboundCall) -> None:
        handle, value = call.args
        self._element(handle).styles["width"] = value

    def _get_width(self, call: OutboundCall) -> None:
        element = self._element(call.args[0])
        self._return(call.token, parse_px(element.styles.get("width")) or 0.0)

    def _get_outer_height(self, call: OutboundCall) -> None:
        element = self._element(call.args[0])
        include_margin = bool(call.args[1]) if len(call.args) > 1 else False
        height = element.measure_height()
        if include_margin:
            for key in ("margin-top", "margin-bottom"):
                height += parse_px(element.styles.get(key)) or 0.0
        self._return(call.token, height)

    def _get_outer_width(self, call: OutboundCall) -> None:
        element = self._element(call.args[0])
        include_margin = bool(call.args[1]) if len(call.args) > 1 else False
        width = parse_px(element.styles.get("width")) or 0.0
        if include_margin:
            for key in ("margin-left", "margin-right"):
                width += parse_px(element.styles.get(key)) or 0.0
        self._return(call.token, width)

    def _bind(self, call: OutboundCall) -> None:
        handle, event, token = call.args
        self._element(handle).bindings.setdefault(event, []).append(token)

    def _hide(self, call: OutboundCall) -> None:
        self._element(call.args[0]).visible = False

    def _show(self, call: OutboundCall) -> None:
        self._element(call.args[0]).visible = True

    def _fade_to(self, call: OutboundCall) -> None:
        element = self._element(call.args[0])
        element.visible = True
        element.styles["opacity"] = call.args[2]

    def _fade_toggle(self, call: OutboundCall) -> None:
        element = self._element(call.args[0])
        element.visible = not element.visible

    # Media

    def _media_create(self, call: OutboundCall) -> None:
        handle, location = call.args
        self.elements[handle] = HostElement(handle, tag="img", kind="media", location=location)

    def natural_size(self, location: Optional[str]) -> Tuple[int, int]:
        """Pixel size of an image file, or the configured default."""
        if location and os.path.isfile(location):
            try:
                with Image.open(location) as image:
                    return image.size
            except (OSError, UnidentifiedImageError) as e:
                log.warning(f"Could not read media {location}: {e}")
        return tuple(self.config.default_media_size)

    def _media_natural_size(self, call: OutboundCall) -> None:
        element = self._element(call.args[0])
        width, height = self.natural_size(element.location)
        self._return(call.token, {"width": width, "height": height})

    # Window

    def _viewport(self) -> dict:
        return {"x": 0, "y": 0, "width": self.width, "height": self.height}

    def _add_resize_handler(self, call: OutboundCall) -> None:
        self.resize_tokens.append(call.args[0])

    def _get_size(self, call: OutboundCall) -> None:
        self._return(call.token, self._viewport())

    # Sound and preloading

    def _sound_create(self, call: OutboundCall) -> None:
        handle, url = call.args[0], call.args[1]
        props = call.args[2] if len(call.args) > 2 else {}
        token = call.args[3] if len(call.args) > 3 else None
        sound = HostSound(handle, url, dict(props or {}))
        sound.playing = bool(sound.props.get("autoPlay"))
        self.sounds[handle] = sound
        self._return(token)

    def _sound_play(self, call: OutboundCall) -> None:
        self.sounds[call.args[0]].playing = True

    def _sound_stop(self, call: OutboundCall) -> None:
        self.sounds[call.args[0]].playing = False

    def _preload(self, call: OutboundCall) -> None:
        url, onload, onerror = call.args
        is_local = "://" not in url and not url.startswith("builtin:")
        if is_local and not os.path.exists(url):
            log.warning(f"Preload of missing media {url}")
            self._return(onerror)
        else:
            self._return(onload)

    # Vector canvas

    def _canvas_create(self, call: OutboundCall) -> None:
        handle, container_id, width, height = call.args
        self.canvases[handle] = {
            "container": container_id,
            "width": width,
            "height": height,
            "figures": [],
        }

    def _canvas_figure(self, call: OutboundCall) -> None:
        canvas, figure = call.args[0], call.args[1]
        self.figures[figure] = {"type": call.operation, "args": call.args[2:], "attrs": {}}
        self.canvases[canvas]["figures"].append(figure)

    def _canvas_clear(self, call: OutboundCall) -> None:
        canvas = self.canvases[call.args[0]]
        for figure in canvas["figures"]:
            self.figures.pop(figure, None)
        canvas["figures"] = []

    def _canvas_set_size(self, call: OutboundCall) -> None:
        handle, width, height = call.args
        self.canvases[handle].update(width=width, height=height)

    def _figure_attr(self, call: OutboundCall) -> None:
        handle, params = call.args
        self.figures[handle]["attrs"].update(params or {})

    # User input

    def click(self, handle: str) -> bool:
        """
        Deliver a click to ``handle``. Returns False if nothing is bound.

        Raises KeyError for an unknown element.
        """
        with self._lock:
            tokens = list(self._element(handle).bindings.get("click", []))
        for token in tokens:
            self._callback(token)
        return bool(tokens)

    def find(self, text: str) -> Optional[str]:
        """Handle of the first element whose text equals ``text``."""
        with self._lock:
            for handle, element in self.elements.items():
                if element.text == text and element.handle == handle:
                    return handle
        return None

    def resize(self, width: int, height: int) -> None:
        """Change the window size and notify resize handlers."""
        with self._lock:
            self.width, self.height = int(width), int(height)
            tokens = list(self.resize_tokens)
            size = self._viewport()
        log.info(f"Host window resized to {width}x{height}")
        for token in tokens:
            self._callback(token, size)

    # Snapshots

    def snapshot(self) -> List[dict]:
        """Describe every live element, in tree order from the body."""
        with self._lock:
            result = []
            stack = [self.elements[BODY]]
            while stack:
                element = stack.pop()
                result.append(element.describe())
                stack.extend(reversed(element.children))
            return result

    def recent_calls(self, limit: int = 100) -> List[dict]:
        with self._lock:
            return list(self.calls)[-limit:]

    # Rendering

    def render(self) -> PreviewBuffer:
        """Paint positioned, visible elements into a preview frame."""
        scale = self.config.scale
        with self._lock:
            buffer = PreviewBuffer(
                max(1, int(self.width * scale)), max(1, int(self.height * scale))
            )
            buffer.clear((16, 16, 20))
            body = self.elements[BODY]
            area = (0.0, 0.0, float(self.width), float(self.height))
            for child in body.children:
                self._paint(buffer, child, area, [4.0], scale)
        return buffer

    def _paint(self, buffer: PreviewBuffer, element: HostElement, area, flow, scale: float):
        if not element.visible or element.opacity <= 0:
            return

        rect = element.rect()
        if rect is not None:
            area = rect
            flow = [4.0]
            x, y, w, h = (v * scale for v in rect)
            if element.kind == "media":
                buffer.fill_rect(x, y, w, h, (60, 70, 90))
                buffer.outline_rect(x, y, w, h, (120, 140, 180))
                buffer.draw_text(x + 4, y + 4, os.path.basename(element.location or ""))
            else:
                buffer.outline_rect(x, y, w, h, (80, 80, 80))

        if element.text:
            buffer.draw_text((area[0] + 4) * scale, (area[1] + flow[0]) * scale, element.text)
            flow[0] += LINE_HEIGHT

        for child in element.children:
            self._paint(buffer, child, area, flow, scale)
