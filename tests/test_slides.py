"""Tests for the slide manager and interactive slides."""

import pytest

from stage_os.core.errors import ConfigError, UnknownSlideError
from stage_os.slides.base import Slide
from stage_os.slides.interactive import InteractiveSlide
from stage_os.widgets.bubbles import PromptBubble, TextBubble
from stage_os.widgets.timer_display import TimerDisplay, UnknownTimerDisplay

from conftest import Stage, calls_to, drain, find_call


class Recorder(Slide):
    """Slide that only records its lifecycle."""

    def __init__(self, journal):
        self.journal = journal

    def setup(self, sm):
        self.journal.append((self.name, "setup"))

    def teardown(self):
        self.journal.append((self.name, "teardown"))


class Redirect(Recorder):
    """Navigates elsewhere while being set up."""

    def __init__(self, journal, target):
        super().__init__(journal)
        self.target = target

    def setup(self, sm):
        sm.navigate(self.target)
        super().setup(sm)


class TestSlideManager:
    """Registry, navigation and events."""

    def test_first_navigation_only_sets_up(self, sm):
        journal = []
        sm.add({"a": Recorder(journal), "b": Recorder(journal)})

        sm.navigate("a")
        assert journal == [("a", "setup")]
        assert sm.current is sm.slides["a"]

        sm.navigate("b")
        assert journal == [("a", "setup"), ("a", "teardown"), ("b", "setup")]
        assert sm.current is sm.slides["b"]

    def test_slide_change_reports_new_and_old(self, sm):
        changes = []
        sm.bind("slideChange", lambda event, new, old: changes.append((new.name, old)))
        sm.add({"a": Recorder([]), "b": Recorder([])})

        sm.navigate("a")
        sm.navigate(sm.slides["b"])

        assert changes[0] == ("a", None)
        assert changes[1] == ("b", sm.slides["a"])

    def test_navigation_during_setup_is_queued(self, sm):
        journal = []
        changes = []
        sm.bind("slideChange", lambda event, new, old: changes.append(new.name))
        sm.add({"a": Redirect(journal, "b"), "b": Recorder(journal)})

        sm.navigate("a")

        assert journal == [("a", "setup"), ("a", "teardown"), ("b", "setup")]
        assert changes == ["a", "b"]
        assert sm.current is sm.slides["b"]

    def test_unknown_slide(self, sm):
        sm.add({"a": Recorder([])})
        sm.navigate("a")

        with pytest.raises(UnknownSlideError):
            sm.navigate("missing")
        with pytest.raises(LookupError):
            sm.get_slide("missing")
        assert sm.current is sm.slides["a"]

    def test_invalid_target(self, sm):
        with pytest.raises(ConfigError):
            sm.get_slide(42)

    def test_plain_configs_become_interactive_slides(self, sm):
        sm.add({"intro": {"text": "Hello"}})

        slide = sm.slides["intro"]
        assert isinstance(slide, InteractiveSlide)
        assert slide.name == "intro"

    def test_bad_config_is_rejected_at_registration(self, sm):
        with pytest.raises(ConfigError):
            sm.add({"broken": {"txt": "typo"}})
        assert "broken" not in sm.slides

    def test_forward_references_are_allowed_until_the_first_navigation(self, sm):
        sm.add({"intro": {"buttons": {"Go": "quiz"}}})
        sm.add({"quiz": {"delay": {"duration": 1, "complete": "intro"}}})

        sm.navigate("intro")

        assert sm.current is sm.slides["intro"]

    @pytest.mark.parametrize(
        "config",
        [
            {"delay": {"duration": 1, "complete": "outro"}},
            {"buttons": {"Next": "outro"}},
            {"bubbles": [{"type": "buttons", "buttons": {"Next": "outro"}}]},
        ],
    )
    def test_dangling_target_fails_the_first_navigation(self, sm, scheduler, config):
        sm.add({"intro": config, "next": {}})

        with pytest.raises(UnknownSlideError, match="outro"):
            sm.navigate("next")
        assert sm.current is None
        assert scheduler.pending() == 0

    def test_slides_added_later_are_checked_on_registration(self, sm):
        sm.add({"intro": {}})
        sm.navigate("intro")

        with pytest.raises(UnknownSlideError, match="outro"):
            sm.add({"quiz": {"delay": {"duration": 1, "complete": "outro"}}})
        assert "quiz" not in sm.slides

        sm.add({"quiz": {"buttons": {"Back": "intro"}}, "outro": {"buttons": {"Quiz": "quiz"}}})
        assert {"quiz", "outro"} <= set(sm.slides)

    def test_stop_tears_down_current(self, sm):
        journal = []
        sm.add({"a": Recorder(journal)})
        sm.navigate("a")

        sm.stop()
        sm.stop()

        assert journal == [("a", "setup"), ("a", "teardown")]
        assert sm.current is None

    def test_generic_to_interactive_uses_full_teardown(self, sm):
        journal = []
        sm.add({"a": Recorder(journal), "b": {"text": "Hi"}})
        sm.navigate("a")

        sm.navigate("b")

        assert journal == [("a", "setup"), ("a", "teardown")]
        assert sm.current.bubble_queue is not None


class TestInteractiveSetup:
    """Building a slide from nothing."""

    def test_text_and_buttons_become_bubbles(self, sm):
        sm.add({"a": {"text": "Hello", "buttons": {"Next": "b"}}, "b": {}})

        sm.navigate("a")

        bubbles = sm.current.bubble_queue.bubbles
        assert [type(b) for b in bubbles] == [TextBubble, PromptBubble]
        assert bubbles[0].message == "Hello"

    def test_declared_bubbles_keep_their_options(self, sm):
        sm.add(
            {
                "a": {
                    "bubbles": [
                        {"type": "text", "text": "Hold on", "autoClose": "all", "anim": False},
                        {"type": "buttons", "buttons": [{"label": "Go", "click": "a"}]},
                    ]
                }
            }
        )

        sm.navigate("a")

        # The "all" text bubble made way for the prompt added after it
        bubbles = sm.current.bubble_queue.bubbles
        assert len(bubbles) == 1
        assert isinstance(bubbles[0], PromptBubble)

    def test_media_is_added_to_the_container(self, sm, bridge, channel):
        sm.add({"a": {"media": "cat.png"}})
        drain(channel)

        sm.navigate("a")

        media = sm.current.media
        assert media.location == "cat.png"
        assert media in sm.container.items
        assert find_call(drain(channel), "Media", "create").args == [media.handle, "cat.png"]

    def test_onstart_receives_the_slide(self, sm):
        seen = []
        sm.add({"a": {"onstart": seen.append}})

        sm.navigate("a")

        assert seen == [sm.slides["a"]]

    def test_music_layers(self, sm, channel):
        sm.add({"a": {"music": "theme.mp3"}, "b": {"music": "stop"}})

        sm.navigate("a")
        sound = sm.music.layers["primary"]
        drain(channel)

        sm.navigate("b")

        assert sm.music.layers == {}
        assert sound.closed
        assert find_call(drain(channel), "Sound", "stop").args == [sound.handle]

    def test_teardown_is_idempotent_and_tolerates_nothing(self, sm):
        slide = InteractiveSlide({"text": "x", "media": "y.png"})
        slide.teardown()

        sm.add({"a": slide})
        sm.navigate("a")
        slide.teardown()
        slide.teardown()

        assert slide.media is None and slide.bubble_queue is None


class TestInteractiveTransition:
    """Carrying resources between interactive slides."""

    def test_media_keep_preserves_the_element(self, sm, channel):
        sm.add({"a": {"media": "cat.png"}, "b": {"media": "keep"}})
        sm.navigate("a")
        media = sm.current.media
        drain(channel)

        sm.navigate("b")

        calls = drain(channel)
        assert sm.current.media is media
        assert sm.slides["a"].media is None
        assert calls_to(calls, "Media", "create") == []
        assert find_call(calls, "Element", "remove", media.handle) is None

    def test_new_media_replaces_old(self, sm, channel):
        sm.add({"a": {"media": "cat.png"}, "b": {"media": "dog.png"}})
        sm.navigate("a")
        old = sm.current.media
        drain(channel)

        sm.navigate("b")

        assert old.removed
        assert old not in sm.container.items
        assert sm.current.media.location == "dog.png"

    def test_media_dropped_when_not_declared(self, sm):
        sm.add({"a": {"media": "cat.png"}, "b": {}})
        sm.navigate("a")
        old = sm.current.media

        sm.navigate("b")

        assert old.removed
        assert sm.current.media is None

    def test_queue_and_sidebar_are_reused(self, sm):
        sm.add({"a": {"text": "one"}, "b": {"text": "two"}})
        sm.navigate("a")
        queue, sidebar = sm.current.bubble_queue, sm.current.sidebar
        first = queue.bubbles[0]

        sm.navigate("b")

        assert sm.current.bubble_queue is queue
        assert sm.current.sidebar is sidebar
        assert first.closed
        assert [b.message for b in queue.bubbles] == ["two"]

    def test_self_transition(self, sm):
        sm.add({"a": {"text": "again"}})
        sm.navigate("a")
        queue = sm.current.bubble_queue

        sm.navigate("a")

        assert sm.current.bubble_queue is queue
        assert len(queue.bubbles) == 1

    def test_metronome_keep_and_replace(self, sm):
        sm.add(
            {
                "a": {"metronome": 120},
                "b": {"metronome": "keep"},
                "c": {"metronome": 60},
                "d": {},
            }
        )

        sm.navigate("a")
        first = sm.current.metronome
        assert first.interval == pytest.approx(0.5)
        assert first.active

        sm.navigate("b")
        assert sm.current.metronome is first

        sm.navigate("c")
        second = sm.current.metronome
        assert second is not first
        assert second.interval == pytest.approx(1.0)
        assert first.sound.closed and not first.active

        sm.navigate("d")
        assert sm.current.metronome is None
        assert second.sound.closed

    def test_metronome_keep_without_predecessor_uses_default_rate(self, sm):
        sm.add({"a": {"metronome": "keep"}})
        sm.navigate("a")
        assert sm.current.metronome.interval == pytest.approx(sm.timer_config.metronome_interval)

    def test_one_shot_sound_plays_out(self, sm, channel):
        sm.add({"a": {"sound": "ding.mp3"}, "b": {}})
        sm.navigate("a")
        sound = sm.current.sound
        create = find_call(drain(channel), "Sound", "create")
        assert create.args[1:3] == ["ding.mp3", {"autoPlay": True}]

        sm.navigate("b")

        assert sound.closed
        assert calls_to(drain(channel), "Sound", "stop") == []


class TestDelay:
    """Timed navigation and countdown displays."""

    def test_delay_navigates_when_done(self, sm, scheduler, clock):
        sm.add({"a": {"delay": {"duration": 2, "complete": "b"}}, "b": {}})
        sm.navigate("a")

        clock.advance(1.5)
        scheduler.tick()
        assert sm.current is sm.slides["a"]

        clock.advance(1.0)
        scheduler.tick()
        assert sm.current is sm.slides["b"]
        assert sm.current.timer_display is None

    def test_callable_completion(self, sm, scheduler, clock):
        done = []
        sm.add({"a": {"delay": {"duration": "500ms", "complete": lambda: done.append(1)}}})
        sm.navigate("a")

        clock.advance(0.5)
        scheduler.tick()

        assert done == [1]

    def test_leaving_early_cancels_the_delay(self, sm, scheduler, clock):
        sm.add({"a": {"delay": {"duration": 1, "complete": "c"}}, "b": {}, "c": {}})
        sm.navigate("a")
        sm.navigate("b")

        clock.advance(5)
        scheduler.tick()

        assert sm.current is sm.slides["b"]

    def test_countdown_display_shows_remaining_seconds(self, sm, channel):
        sm.add({"a": {"delay": {"duration": 3, "complete": "a"}}})
        drain(channel)

        sm.navigate("a")

        display = sm.current.timer_display
        assert type(display) is TimerDisplay
        assert display in sm.current.sidebar.items
        label = find_call(drain(channel), "Element", "setInnerText", display.label.handle)
        assert label.args == [display.label.handle, 3]

    def test_unknown_and_hidden_styles(self, sm):
        sm.add(
            {
                "a": {"delay": {"duration": 3, "style": "unknown"}},
                "b": {"delay": {"duration": 3, "style": "hidden"}},
            }
        )

        sm.navigate("a")
        display = sm.current.timer_display
        assert isinstance(display, UnknownTimerDisplay)

        sm.navigate("b")
        assert display.removed
        assert sm.current.timer_display is None
        assert sm.current.delay is not None


class TestScenarios:
    """End to end against the simulated host."""

    def test_intro_and_quiz(self, clock):
        holder = {}

        def script(runtime):
            sm = runtime.create_slide_manager()
            sm.add({"intro": {"text": "Hello"}, "quiz": {"buttons": {"Yes": "intro"}}})
            sm.navigate("intro")
            holder["sm"] = sm

        stage = Stage(clock, script=script).boot()
        sm = holder["sm"]
        assert stage.host.find("Hello") is not None

        sm.navigate("quiz")
        stage.settle()

        assert stage.host.find("Hello") is None
        bubbles = sm.current.bubble_queue.bubbles
        assert len(bubbles) == 1 and isinstance(bubbles[0], PromptBubble)
        assert len(bubbles[0].buttons) == 1

        stage.click_text("Yes")

        assert sm.current is sm.slides["intro"]
        assert stage.host.find("Hello") is not None
        assert stage.host.find("Yes") is None

    def test_page_bubble_closes_exactly_once(self, clock):
        holder = {}

        def script(runtime):
            sm = runtime.create_slide_manager()
            sm.add({"a": {"text": "Only once"}, "b": {}})
            sm.navigate("a")
            holder["sm"] = sm

        stage = Stage(clock, script=script).boot()
        sm = holder["sm"]
        bubble = sm.current.bubble_queue.bubbles[0]
        bubble.register_parent(sm.current.bubble_queue)
        stage.host.calls.clear()

        sm.navigate("b")
        stage.settle()

        closing = [
            c
            for c in stage.host.recent_calls()
            if c["args"] and c["args"][0] == bubble.handle
        ]
        operations = [c["operation"] for c in closing]
        assert operations.count("getOuterHeight") == 1
        assert operations.count("remove") == 1
        assert bubble.removed
