"""
Interactive slides: media, bubbles, audio cues and delays declared in config.
"""

import logging
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Union

from ..core.layout import ActivitySidebar
from ..core.proxy import Media
from ..widgets.audio import Metronome, Sound
from ..widgets.bubbles import BubbleQueue, PromptBubble, TextBubble
from ..widgets.timer_display import TimerDisplay, UnknownTimerDisplay
from ..widgets.timers import Timer
from .base import Slide
from .config import BubbleKind, MetronomeDirective, SlideConfig, TimerStyle

if TYPE_CHECKING:
    from .base import SlideManager

log = logging.getLogger(__name__)


class InteractiveSlide(Slide):
    """
    A slide built from a ``SlideConfig``.

    Moving from one interactive slide to another hands over what can be
    reused: media marked "keep", the bubble queue, the activity sidebar and a
    metronome marked "keep". Everything else is rebuilt.
    """

    def __init__(self, config: Union[SlideConfig, Mapping[str, Any], None] = None):
        self.config = SlideConfig.parse(config)
        self.sm: Optional["SlideManager"] = None
        self.media: Optional[Media] = None
        self.bubble_queue: Optional[BubbleQueue] = None
        self.sidebar: Optional[ActivitySidebar] = None
        self.metronome: Optional[Metronome] = None
        self.sound: Optional[Sound] = None
        self.delay: Optional[Timer] = None
        self.timer_display: Optional[TimerDisplay] = None

    # Setup and teardown

    def setup(self, sm: "SlideManager") -> None:
        self.sm = sm

        media = self.config.media
        if media is not None and not media.keep:
            self.media = Media(sm.bridge, media.location)
            sm.add_child(self.media)

        self.bubble_queue = BubbleQueue(sm.bridge, sm)
        self.sidebar = ActivitySidebar(sm.bridge, sm, sm.layout_config)
        self.init_bubbles()

        if self.config.metronome is not None:
            self.metronome = self._new_metronome(self.config.metronome)
            self.metronome.start()

        self.start()

    def transition(self, sm: "SlideManager", old: Slide) -> None:
        if not isinstance(old, InteractiveSlide):
            super().transition(sm, old)
            return

        # Take everything from the old slide first; old may be this slide.
        old_media = old.media
        old_queue = old.bubble_queue
        old_sidebar = old.sidebar
        old_metronome = old.metronome
        old_sound = old.sound
        old._stop_delay()
        old._forget_resources()

        self.sm = sm

        # One-shot cues play out but are not carried over
        if old_sound is not None:
            old_sound.close(stop=False)

        media = self.config.media
        if media is not None and media.keep:
            self.media = old_media
        else:
            if old_media is not None:
                sm.remove_child(old_media)
            if media is not None:
                self.media = Media(sm.bridge, media.location)
                sm.add_child(self.media)

        if old_queue is not None and not old_queue.removed:
            self.bubble_queue = old_queue
            self.bubble_queue.page_change()
        else:
            self.bubble_queue = BubbleQueue(sm.bridge, sm)
        self.init_bubbles()

        if old_sidebar is not None and not old_sidebar.removed:
            self.sidebar = old_sidebar
        else:
            self.sidebar = ActivitySidebar(sm.bridge, sm, sm.layout_config)

        directive = self.config.metronome
        if directive is not None and directive.keep and old_metronome is not None:
            self.metronome = old_metronome
        else:
            if old_metronome is not None:
                old_metronome.close()
            if directive is not None:
                self.metronome = self._new_metronome(directive)
        if self.metronome is not None:
            self.metronome.start()

        self.start()

    def teardown(self) -> None:
        sm = self.sm
        self._stop_delay()

        if self.media is not None and sm is not None:
            sm.remove_child(self.media)
        if self.bubble_queue is not None and sm is not None:
            sm.remove_child(self.bubble_queue)
        if self.sidebar is not None and sm is not None:
            sm.remove_child(self.sidebar)
        if self.metronome is not None:
            self.metronome.close()
        if self.sound is not None:
            self.sound.close()

        self._forget_resources()

    def targets(self) -> List[str]:
        config = self.config
        clicks = [button.click for button in config.buttons]
        for spec in config.bubbles:
            clicks.extend(button.click for button in spec.buttons)
        if config.delay is not None:
            clicks.append(config.delay.complete)
        return [click for click in clicks if isinstance(click, str)]

    # Parts

    def _new_metronome(self, directive: MetronomeDirective) -> Metronome:
        timers = self.sm.timer_config
        metronome = Metronome(
            self.sm.bridge,
            self.sm.scheduler,
            sound_url=timers.click_sound,
            interval=timers.metronome_interval,
        )
        if not directive.keep:
            metronome.set_frequency(directive.bpm)
        return metronome

    def _stop_delay(self) -> None:
        if self.delay is not None:
            self.delay.stop()
            self.delay = None
        if self.timer_display is not None:
            if self.sidebar is not None and not self.sidebar.removed:
                self.sidebar.remove_child(self.timer_display)
            else:
                self.timer_display.remove()
            self.timer_display = None

    def _forget_resources(self) -> None:
        self.media = None
        self.bubble_queue = None
        self.sidebar = None
        self.metronome = None
        self.sound = None
        self.delay = None
        self.timer_display = None

    def init_bubbles(self) -> None:
        """Add the bubbles this slide declares to the queue."""
        sm = self.sm
        queue = self.bubble_queue

        if self.config.text:
            queue.add_bubble(TextBubble(sm.bridge, text=self.config.text))

        if self.config.buttons:
            queue.add_bubble(
                PromptBubble(sm.bridge, buttons=self.config.buttons, navigate=sm.navigate)
            )

        for spec in self.config.bubbles:
            options = {"auto_close": spec.auto_close, "anim": spec.anim}
            if spec.kind is BubbleKind.TEXT:
                bubble = TextBubble(sm.bridge, text=spec.text, **options)
            else:
                bubble = PromptBubble(
                    sm.bridge, buttons=spec.buttons, navigate=sm.navigate, **options
                )
            queue.add_bubble(bubble)

    def start(self) -> None:
        """Issue the per-visit cues: sound, music, delay and the onstart hook."""
        sm = self.sm
        config = self.config

        if config.sound:
            self.sound = Sound.create(sm.bridge, config.sound, {"autoPlay": True})

        if config.music is not None:
            if config.music.stop:
                sm.music.stop()
            else:
                sm.music.set(config.music.location)

        if config.delay is not None:
            self._start_delay()

        if config.onstart is not None:
            config.onstart(self)

    def _start_delay(self) -> None:
        sm = self.sm
        delay = self.config.delay

        complete = delay.complete
        if complete is not None and not callable(complete):
            sm.get_slide(complete)
            target = complete

            def navigate_to_target():
                sm.navigate(target)

            complete = navigate_to_target

        self.delay = Timer(
            sm.scheduler,
            delay.duration,
            complete=complete,
            autostart=False,
            tick_interval=sm.timer_config.tick_interval,
        )

        if delay.style is not TimerStyle.HIDDEN:
            display_cls = (
                UnknownTimerDisplay if delay.style is TimerStyle.UNKNOWN else TimerDisplay
            )
            self.timer_display = display_cls(sm.bridge)
            self.sidebar.add_child(self.timer_display)
            self.timer_display.follow(self.delay)

        # Started last so the display draws the first tick
        self.delay.start()
