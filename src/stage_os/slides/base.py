"""
Slides and the slide manager.

A slide is one presentation page. The manager keeps the named registry and
the current slide, and moves between slides one transition at a time.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, Optional, Union

from ..core.errors import ConfigError, UnknownSlideError
from ..core.observable import Observable

if TYPE_CHECKING:
    from ..core.config import LayoutConfig, TimerConfig
    from ..core.ipc import MessageBridge
    from ..core.layout import StandardContainer
    from ..core.scheduler import TimerScheduler
    from ..widgets.audio import MusicPlayer

log = logging.getLogger(__name__)


class Slide(ABC):
    """
    Base class for all slides.

    Lifecycle:
        1. setup(sm)            entering with nothing on screen
        2. transition(sm, old)  entering while ``old`` is on screen
        3. teardown()           leaving, releasing everything the slide owns

    The default transition tears the old slide down completely before setting
    this one up. Subclasses override it to hand resources over instead.
    """

    name: Optional[str] = None

    @abstractmethod
    def setup(self, sm: "SlideManager") -> None:
        """Create this slide's resources."""

    @abstractmethod
    def teardown(self) -> None:
        """Release this slide's resources. Must tolerate resources never created."""

    def transition(self, sm: "SlideManager", old: "Slide") -> None:
        old.teardown()
        self.setup(sm)

    def targets(self) -> Iterable[str]:
        """Names of the slides this slide can navigate to by itself."""
        return ()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name or '(unnamed)'}>"


class SlideManager(Observable):
    """
    Presentation state machine.

    Holds exactly one current slide (None before the first navigation).
    Children added through the manager go to its container.

    Events:
        slideChange  [new_slide, old_slide] after every completed navigation
    """

    def __init__(
        self,
        bridge: "MessageBridge",
        scheduler: "TimerScheduler",
        container: "StandardContainer",
        music: Optional["MusicPlayer"] = None,
        layout_config: Optional["LayoutConfig"] = None,
        timer_config: Optional["TimerConfig"] = None,
    ):
        from ..core.config import LayoutConfig, TimerConfig
        from ..widgets.audio import MusicPlayer

        self.bridge = bridge
        self.scheduler = scheduler
        self.container = container
        self.music = music or MusicPlayer(bridge)
        self.layout_config = layout_config or LayoutConfig()
        self.timer_config = timer_config or TimerConfig()

        self.slides: Dict[str, Slide] = {}
        self.current: Optional[Slide] = None
        self._navigating = False
        self._pending: deque = deque()

    # Registry

    def add(self, slides: Mapping[str, Any]) -> None:
        """Register slides by name. Plain configs become interactive slides."""
        from .interactive import InteractiveSlide

        added = {}
        for name, value in slides.items():
            slide = value if isinstance(value, Slide) else InteractiveSlide(value)
            if slide.name is None:
                slide.name = name
            added[name] = slide

        # Before the first navigation, later slides may still be on their way
        if self.current is not None:
            self._check_targets(added.values(), self.slides.keys() | added.keys())

        for name, slide in added.items():
            self.slides[name] = slide
            log.debug(f"Registered slide '{name}'")

    def check_targets(self) -> None:
        """Raise UnknownSlideError if a slide refers to a name that is not registered."""
        self._check_targets(self.slides.values(), self.slides.keys())

    @staticmethod
    def _check_targets(slides: Iterable[Slide], names) -> None:
        for slide in slides:
            for target in slide.targets():
                if target not in names:
                    raise UnknownSlideError(
                        f"Slide {slide.name!r} refers to unknown slide {target!r}"
                    )

    def get_slide(self, target: Union[str, Slide]) -> Slide:
        """Resolve a slide name or pass a Slide through."""
        if isinstance(target, str):
            slide = self.slides.get(target)
            if slide is None:
                raise UnknownSlideError(f"Unknown slide id {target!r}")
            return slide
        if isinstance(target, Slide):
            return target
        raise ConfigError(f"Invalid navigation target {target!r}, not a slide")

    # Navigation

    def navigate(self, target: Union[str, Slide]) -> None:
        """
        Make ``target`` the current slide.

        Navigation requested while a transition is running (e.g. from an
        onstart hook) is queued and performed once that transition finished.
        """
        slide = self.get_slide(target)
        if self.current is None and not self._navigating:
            self.check_targets()

        if self._navigating:
            self._pending.append(slide)
            return

        self._navigating = True
        try:
            self._go(slide)
            while self._pending:
                self._go(self._pending.popleft())
        finally:
            self._navigating = False
            self._pending.clear()

    go = navigate

    def _go(self, slide: Slide) -> None:
        old = self.current
        if old is None:
            log.info(f"Entering slide {slide!r}")
            slide.setup(self)
        else:
            log.info(f"Transition {old!r} -> {slide!r}")
            slide.transition(self, old)

        self.current = slide
        self.trigger("slideChange", [slide, old])

    def stop(self) -> None:
        """Tear down the current slide and return to the initial state."""
        if self.current is not None:
            self.current.teardown()
            self.current = None
        self.music.stop_all()

    # Container delegation

    def add_child(self, child) -> None:
        self.container.add_child(child)

    def remove_child(self, child) -> None:
        self.container.remove_child(child)
