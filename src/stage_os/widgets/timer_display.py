"""
Countdown visuals drawn on a host-side vector canvas.
"""

import logging
import math
from typing import TYPE_CHECKING, Any, Optional

from ..core.proxy import RemoteProxy, px
from .timers import Timer

if TYPE_CHECKING:
    from ..core.ipc import MessageBridge

log = logging.getLogger(__name__)


class Figure:
    """One shape on a vector canvas."""

    HANDLE_PREFIX = "fig"

    def __init__(self, bridge: "MessageBridge", handle: str):
        self.bridge = bridge
        self.handle = handle

    def attr(self, params: dict) -> "Figure":
        self.bridge.call("Raphael", "attr", [self.handle, dict(params)])
        return self


class VectorCanvas:
    """A drawing surface the host creates inside an element."""

    HANDLE_PREFIX = "rph"

    def __init__(self, bridge: "MessageBridge", handle: str):
        self.bridge = bridge
        self.handle = handle

    @classmethod
    def create(
        cls, bridge: "MessageBridge", container_id: str, width: float, height: float
    ) -> "VectorCanvas":
        canvas = cls(bridge, bridge.next_unique(cls.HANDLE_PREFIX))
        bridge.call("Raphael", "create", [canvas.handle, container_id, width, height])
        return canvas

    def _figure(self, operation: str, *args: Any) -> Figure:
        figure = Figure(self.bridge, self.bridge.next_unique(Figure.HANDLE_PREFIX))
        self.bridge.call("Raphael", operation, [self.handle, figure.handle, *args])
        return figure

    def path(self, path_string: Optional[str] = None) -> Figure:
        return self._figure("path", path_string)

    def circle(self, cx: float, cy: float, r: float) -> Figure:
        return self._figure("circle", cx, cy, r)

    def clear(self) -> None:
        self.bridge.call("Raphael", "clear", [self.handle])

    def set_size(self, width: float, height: float) -> None:
        self.bridge.call("Raphael", "setSize", [self.handle, width, height])


class TimerDisplay(RemoteProxy):
    """Circular countdown with the remaining seconds in the middle."""

    def __init__(self, bridge: "MessageBridge"):
        super().__init__(bridge)
        self.element_id = bridge.next_unique("timerdisplay")
        self.canvas: Optional[VectorCanvas] = None
        self.size: Optional[float] = None
        self.timer: Optional[Timer] = None

        self.attr("id", self.element_id)
        self.add_class("timer-display")
        self.label = RemoteProxy(bridge).add_class("text").append_to(self)

    def apply_layout(self) -> None:
        if self._bounds is None or self.removed:
            return

        size = min(self._bounds.width, self._bounds.height)
        if self.canvas is None:
            self.canvas = VectorCanvas.create(self.bridge, self.element_id, size, size)
        else:
            self.canvas.set_size(size, size)

        self.css("width", px(size))
        self.css("height", px(size))
        self.label.css("line-height", px(size))
        if size > 100:
            self.label.css("font-size", "140%")

        self.size = size

    def follow(self, timer: Timer) -> None:
        """Redraw on every tick of ``timer``."""
        self.timer = timer
        timer.bind("tick", self._on_tick)
        timer.bind("complete", self._on_complete)

    def unfollow(self) -> None:
        if self.timer is not None:
            self.timer.unbind("tick", self._on_tick)
            self.timer.unbind("complete", self._on_complete)
            self.timer = None

    def remove(self) -> None:
        self.unfollow()
        super().remove()

    def _on_tick(self, event, current: float, total: float, timer=None) -> None:
        self.update(current, total)

    def _on_complete(self, event, timer=None) -> None:
        self.complete()

    def _ready(self) -> bool:
        return self.size is not None and self.canvas is not None and not self.removed

    def update(self, current: float, total: float) -> None:
        if not self._ready():
            return

        stroke = round(self.size / 10)
        half = self.size / 2

        self.canvas.clear()
        self.canvas.circle(half, half, half).attr({"fill": "#333"})
        self.canvas.circle(half, half, half - stroke).attr({"fill": "#555"})
        self.canvas.path().attr(
            {
                "stroke": "#fff",
                "stroke-width": stroke,
                "arc": [current, total, half - stroke / 2, half, half],
            }
        )

        self.label.text(math.ceil(total - current))

    def complete(self) -> None:
        if not self._ready():
            return
        self.canvas.clear()
        self.label.text("")


class UnknownTimerDisplay(TimerDisplay):
    """A ring with a question mark, for delays whose length is not shown."""

    def update(self, current: float, total: float) -> None:
        if not self._ready():
            return

        stroke = round(self.size / 10)
        half = self.size / 2

        self.canvas.clear()
        self.canvas.circle(half, half, half - stroke).attr({"fill": "#555"})
        self.canvas.circle(half, half, half - stroke / 2).attr(
            {"stroke": "#fff", "stroke-width": stroke}
        )

        self.label.text("?")
