"""Tests for bubbles and the bubble queue."""

import pytest

from stage_os.core.errors import ConfigError, NotABubbleError
from stage_os.core.proxy import RemoteProxy
from stage_os.widgets.bubbles import (
    AutoClose,
    BubbleQueue,
    ButtonSpec,
    PromptBubble,
    TextBubble,
)

from conftest import calls_to, drain, find_call


@pytest.fixture
def queue(bridge, container):
    return BubbleQueue(bridge, container)


class TestAutoClosePolicy:
    """Parsing the auto-close option."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("page", AutoClose.PAGE),
            ("ALL", AutoClose.ALL),
            ("text", AutoClose.TEXT),
            (None, AutoClose.NEVER),
            (False, AutoClose.NEVER),
            (AutoClose.TEXT, AutoClose.TEXT),
        ],
    )
    def test_parse(self, value, expected):
        assert AutoClose.parse(value) is expected

    def test_unknown_policy(self):
        with pytest.raises(ConfigError):
            AutoClose.parse("sometimes")
        with pytest.raises(ConfigError):
            AutoClose.parse(True)


class TestBubble:
    """Entry and exit animations."""

    def test_entry_animation(self, bridge, channel):
        bubble = TextBubble(bridge, "Hello")

        calls = drain(channel)
        styles = [c.args[1:] for c in calls_to(calls, "Element", "applyStyle")]
        assert ["margin-top", "30px"] in styles
        assert ["opacity", "0"] in styles
        animate = find_call(calls, "Element", "animate", bubble.handle)
        assert animate.args[1] == {"margin-top": 0, "opacity": 1}
        assert animate.args[2]["duration"] == 300
        assert animate.args[2]["easing"] == "easeOutQuad"
        assert find_call(calls, "Element", "setInnerText").args == [bubble.handle, "Hello"]

    def test_no_animation_when_disabled(self, bridge, channel):
        TextBubble(bridge, "Hello", anim=False)
        assert calls_to(drain(channel), "Element", "animate") == []

    def test_animated_close_measures_then_slides_out(self, bridge, channel, queue):
        bubble = TextBubble(bridge, "Bye")
        queue.add_bubble(bubble)
        drain(channel)

        bubble.close()

        measure = find_call(drain(channel), "Element", "getOuterHeight", bubble.handle)
        assert measure.args == [bubble.handle, True]
        bridge.handle_inbound(["return", measure.token, [40]])

        animate = find_call(drain(channel), "Element", "animate", bubble.handle)
        assert animate.args[1] == {"margin-top": "-40px", "opacity": 0}
        assert not bubble.removed

        bridge.handle_inbound(["return", animate.args[2]["complete"], []])
        assert bubble.removed
        assert bubble not in queue.bubbles

    def test_close_is_idempotent(self, bridge, channel):
        bubble = TextBubble(bridge, anim=False)
        drain(channel)

        bubble.close()
        bubble.close()

        assert len(calls_to(drain(channel), "Element", "remove")) == 1


class TestBubbleQueue:
    """Stacking and auto-close policies."""

    def test_queue_takes_container_width(self, bridge, channel, container):
        queue = BubbleQueue(bridge, container)
        call = find_call(drain(channel), "Element", "applyStyle", queue.handle)
        assert call.args == [queue.handle, "width", "1000px"]

    def test_add_bubble_appends_and_notifies(self, bridge, channel, queue):
        added = []
        queue.bind("bubbleAdded", lambda event, bubble: added.append(bubble))
        bubble = TextBubble(bridge, "Hi", anim=False)
        drain(channel)

        queue.add_bubble(bubble)

        assert queue.bubbles == [bubble]
        assert added == [bubble]
        assert find_call(drain(channel), "Element", "appendTo").args == [
            bubble.handle,
            queue.handle,
        ]

    def test_rejects_non_bubbles(self, bridge, queue):
        with pytest.raises(NotABubbleError):
            queue.add_bubble(RemoteProxy(bridge))
        with pytest.raises(TypeError):
            queue.add_bubble("text")

    def test_page_change_closes_page_bubbles_once(self, bridge, channel, queue):
        bubble = TextBubble(bridge, "Hi")
        queue.add_bubble(bubble)
        bubble.register_parent(queue)
        drain(channel)

        queue.page_change()
        queue.page_change()

        assert len(calls_to(drain(channel), "Element", "getOuterHeight")) == 1
        assert bubble.closed

    def test_page_change_without_animation_removes_once(self, bridge, channel, queue):
        bubble = TextBubble(bridge, "Hi", anim=False)
        queue.add_bubble(bubble)
        bubble.register_parent(queue)
        drain(channel)

        queue.page_change()

        assert [c.args for c in calls_to(drain(channel), "Element", "remove")] == [
            [bubble.handle]
        ]

    def test_all_policy_closes_on_any_new_bubble(self, bridge, queue):
        first = TextBubble(bridge, "first", auto_close="all", anim=False)
        queue.add_bubble(first)

        second = PromptBubble(bridge, [ButtonSpec("OK")], anim=False)
        queue.add_bubble(second)

        assert first.closed and first.removed
        assert not second.closed
        assert queue.bubbles == [second]

    def test_text_policy_ignores_prompts(self, bridge, queue):
        first = TextBubble(bridge, "first", auto_close="text", anim=False)
        queue.add_bubble(first)

        queue.add_bubble(PromptBubble(bridge, [ButtonSpec("OK")], anim=False))
        assert not first.closed

        queue.add_bubble(TextBubble(bridge, "second", anim=False))
        assert first.closed

    def test_never_policy_survives_everything(self, bridge, queue):
        bubble = TextBubble(bridge, "stay", auto_close=None, anim=False)
        queue.add_bubble(bubble)

        queue.page_change()
        queue.add_bubble(TextBubble(bridge, "other", anim=False))

        assert not bubble.closed


class TestPromptBubble:
    """Buttons and their click targets."""

    def test_slide_target_needs_navigate(self, bridge):
        with pytest.raises(ConfigError):
            PromptBubble(bridge, [ButtonSpec("Yes", click="intro")])

    def test_invalid_click(self, bridge):
        with pytest.raises(ConfigError):
            PromptBubble(bridge, [ButtonSpec("Yes", click=42)])

    def test_slide_button_navigates(self, bridge, channel):
        targets = []
        bubble = PromptBubble(bridge, [ButtonSpec("Yes", click="intro")], navigate=targets.append)

        button = bubble.buttons[0]
        calls = drain(channel)
        assert find_call(calls, "Element", "setInnerText", button.handle).args[1] == "Yes"
        assert find_call(calls, "Element", "addClass", button.handle) is not None
        token = find_call(calls, "Element", "bind", button.handle).args[2]

        bridge.handle_inbound(["callback", token, []])
        assert targets == ["intro"]

    def test_callable_button(self, bridge, channel):
        hits = []
        bubble = PromptBubble(bridge, [ButtonSpec("Go", click=lambda: hits.append(1))])

        token = find_call(drain(channel), "Element", "bind", bubble.buttons[0].handle).args[2]
        bridge.handle_inbound(["callback", token, [{"x": 1}]])

        assert hits == [1]

    def test_button_without_click_is_inert(self, bridge, channel):
        bubble = PromptBubble(bridge, [ButtonSpec("Later")])
        assert len(bubble.buttons) == 1
        assert calls_to(drain(channel), "Element", "bind") == []

    def test_button_classes(self, bridge, channel):
        bubble = PromptBubble(bridge, [ButtonSpec("Big", color="green", size="large")])
        handle = bubble.buttons[0].handle
        classes = [
            c.args[1]
            for c in calls_to(drain(channel), "Element", "addClass")
            if c.args[0] == handle
        ]
        assert classes == ["button", "green", "large"]
