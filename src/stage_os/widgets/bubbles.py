"""
Message and prompt bubbles and the queue that stacks them.

A bubble decides for itself when to go away: it listens to the queue it was
added to and closes on page changes or on new bubbles, depending on its
``auto_close`` policy.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence, Union

from ..core.errors import ConfigError, NotABubbleError
from ..core.proxy import RemoteProxy, px

if TYPE_CHECKING:
    from ..core.ipc import MessageBridge

log = logging.getLogger(__name__)

ANIMATION_DURATION = 300  # host milliseconds


class AutoClose(Enum):
    """When a bubble dismisses itself."""

    PAGE = "page"  # on any page change
    ALL = "all"  # when any bubble is added after it
    TEXT = "text"  # when a text bubble is added after it
    NEVER = "never"

    @classmethod
    def parse(cls, value: Union["AutoClose", str, bool, None]) -> "AutoClose":
        if isinstance(value, AutoClose):
            return value
        if value is None or value is False:
            return cls.NEVER
        if isinstance(value, str):
            try:
                return cls(value.lower())
            except ValueError:
                pass
        raise ConfigError(f"Unknown autoClose policy {value!r}")


@dataclass(frozen=True)
class ButtonSpec:
    """One prompt button. ``click`` is a callable, a slide name or a Slide."""

    label: str
    click: Any = None
    color: str = "orange"
    size: str = "medium"


class Bubble(RemoteProxy):
    """Base overlay bubble."""

    def __init__(
        self,
        bridge: "MessageBridge",
        auto_close: Union[AutoClose, str, None] = AutoClose.PAGE,
        anim: bool = True,
    ):
        super().__init__(bridge)
        self.auto_close = AutoClose.parse(auto_close)
        self.anim = anim
        self.closed = False
        self.queue: Optional["BubbleQueue"] = None
        self.add_class("bubble")

        if self.anim:
            self.css("margin-top", "30px")
            self.css("opacity", "0")
            self.animate(
                {"margin-top": 0, "opacity": 1},
                duration=ANIMATION_DURATION,
                easing="easeOutQuad",
            )

    def register_parent(self, queue: "BubbleQueue") -> None:
        """Subscribe to ``queue`` according to the auto-close policy."""
        self.queue = queue
        if self.auto_close is AutoClose.PAGE:
            queue.bind("pageChange", self._on_page_change)
        elif self.auto_close in (AutoClose.ALL, AutoClose.TEXT):
            queue.bind("bubbleAdded", self._on_bubble_added)

    def _on_page_change(self, event) -> None:
        self.close()

    def _on_bubble_added(self, event, bubble: "Bubble") -> None:
        if self.auto_close is AutoClose.ALL or isinstance(bubble, TextBubble):
            self.close()

    def close(self) -> None:
        """Dismiss the bubble, animated if it was created animated."""
        if self.closed:
            return
        self.closed = True

        if self.queue is not None:
            self.queue.unbind("pageChange", self._on_page_change)
            self.queue.unbind("bubbleAdded", self._on_bubble_added)
            self.queue.discard(self)

        if self.anim and not self.removed:
            self.outer_height(True, self._animate_out)
        else:
            self.remove()

    def _animate_out(self, height: float) -> None:
        self.animate(
            {"margin-top": f"-{px(height or 0)}", "opacity": 0},
            duration=ANIMATION_DURATION,
            complete=self.remove,
        )


class TextBubble(Bubble):
    """A bubble showing a line of text."""

    def __init__(self, bridge: "MessageBridge", text: str = "", **kwargs):
        super().__init__(bridge, **kwargs)
        self.add_class("text-bubble")
        self.message = text
        if text:
            self.text(text)


class PromptBubble(Bubble):
    """
    A bubble with a row of buttons.

    Buttons whose ``click`` names a slide need ``navigate`` to resolve it.
    """

    def __init__(
        self,
        bridge: "MessageBridge",
        buttons: Sequence[ButtonSpec] = (),
        navigate: Optional[Callable[[Any], None]] = None,
        **kwargs,
    ):
        super().__init__(bridge, **kwargs)
        self.add_class("prompt-bubble")
        self.navigate = navigate
        self.buttons: List[RemoteProxy] = []

        handlers = [self._resolve_click(spec) for spec in buttons]

        list_el = RemoteProxy(bridge, tag="ul")
        for spec, handler in zip(buttons, handlers):
            item = RemoteProxy(bridge, tag="li").append_to(list_el)
            button = RemoteProxy(bridge, tag="a").text(spec.label)
            button.add_class("button", spec.color, spec.size).append_to(item)
            if handler is not None:
                button.click(handler)
            self.buttons.append(button)
        list_el.append_to(self)

    def _resolve_click(self, spec: ButtonSpec) -> Optional[Callable]:
        from ..slides.base import Slide

        click = spec.click
        if click is None:
            return None
        if isinstance(click, (str, Slide)):
            if self.navigate is None:
                raise ConfigError(
                    f"Button {spec.label!r} targets slide {click!r} outside a slide manager"
                )
            navigate = self.navigate
            return lambda *args: navigate(click)
        if callable(click):
            return lambda *args: click()
        raise ConfigError(f"Button {spec.label!r} has an invalid click handler {click!r}")


class BubbleQueue(RemoteProxy):
    """
    Vertical stack of bubbles in insertion order.

    Events:
        bubbleAdded  [bubble] after a bubble joined the queue
        pageChange   [] when the presentation moved to another page
    """

    def __init__(self, bridge: "MessageBridge", container):
        super().__init__(bridge)
        self.add_class("bubble-queue")
        self.bubbles: List[Bubble] = []
        container.add_child(self)

    def apply_layout(self) -> None:
        if self._bounds is None:
            return
        self.css("width", px(self._bounds.width))

    def add_bubble(self, bubble: Bubble) -> None:
        if not isinstance(bubble, Bubble):
            raise NotABubbleError(f"Tried to add {bubble!r} to a bubble queue")

        self.bubbles.append(bubble)
        bubble.append_to(self)
        self.trigger("bubbleAdded", [bubble])
        bubble.register_parent(self)

    def page_change(self) -> None:
        self.trigger("pageChange")

    def discard(self, bubble: Bubble) -> None:
        if bubble in self.bubbles:
            self.bubbles.remove(bubble)
