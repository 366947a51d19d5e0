"""Tests for the simulated host, the preview buffer and the sandbox runtime."""

import logging

import numpy as np
import pytest
from PIL import Image

from stage_os.core.proxy import Media, Rect, RemoteProxy
from stage_os.core.sandbox import HostConsoleHandler, SandboxRuntime
from stage_os.host.display import PreviewBuffer
from stage_os.host.simulator import BODY, SimulatedHost, parse_px

from conftest import Stage, drain


class TestParsePx:
    @pytest.mark.parametrize(
        "value, expected",
        [("12px", 12.0), ("12.50px", 12.5), (" 3 px ", 3.0), (7, 7.0), ("-4px", -4.0)],
    )
    def test_lengths(self, value, expected):
        assert parse_px(value) == expected

    @pytest.mark.parametrize("value", [None, "auto", "50%", True])
    def test_not_lengths(self, value):
        assert parse_px(value) is None


class TestPreviewBuffer:
    def test_fill_is_clipped(self):
        buffer = PreviewBuffer(10, 10)
        buffer.fill_rect(-5, -5, 8, 8, (255, 0, 0))

        assert tuple(buffer.data[0, 0]) == (255, 0, 0)
        assert tuple(buffer.data[2, 2]) == (255, 0, 0)
        assert tuple(buffer.data[3, 3]) == (0, 0, 0)

    def test_outline(self):
        buffer = PreviewBuffer(10, 10)
        buffer.outline_rect(1, 1, 5, 5, (0, 255, 0))

        assert tuple(buffer.data[1, 3]) == (0, 255, 0)
        assert tuple(buffer.data[5, 3]) == (0, 255, 0)
        assert tuple(buffer.data[3, 3]) == (0, 0, 0)

    def test_draw_text_marks_pixels(self):
        buffer = PreviewBuffer(60, 20)
        buffer.draw_text(2, 2, "Hi")
        assert buffer.data.sum() > 0

    def test_blit_and_copy(self):
        buffer = PreviewBuffer(4, 4)
        buffer.blit(Image.new("RGB", (2, 2), (0, 0, 255)), x=3, y=3)
        clone = buffer.copy()
        clone.clear()

        assert tuple(buffer.data[3, 3]) == (0, 0, 255)
        assert clone.data.sum() == 0
        assert buffer.to_image().size == (4, 4)


class TestSimulatedHost:
    """The in-memory element table."""

    def test_start_is_acknowledged(self, stage):
        stage.boot()
        assert stage.host.acknowledged
        assert stage.runtime.started

    def test_viewport_gets_host_size(self, stage):
        stage.boot()
        assert stage.runtime.viewport.bounds() == Rect(0, 0, 1000, 600)

    def test_resize_reaches_children(self, stage):
        stage.boot()
        child = RemoteProxy(stage.runtime.bridge)
        stage.runtime.viewport.add_child(child)

        stage.host.resize(800, 400)
        stage.settle()

        assert child.bounds() == Rect(0, 0, 800, 400)
        element = stage.host.elements[child.handle]
        assert element.rect() == (0.0, 0.0, 800.0, 400.0)

    def test_snapshot_is_tree_ordered(self, stage):
        stage.boot()
        outer = RemoteProxy(stage.runtime.bridge).append_to("body")
        inner = RemoteProxy(stage.runtime.bridge, tag="span").append_to(outer)
        inner.text("deep")
        stage.settle()

        snapshot = stage.host.snapshot()

        assert [e["handle"] for e in snapshot[:3]] == [BODY, outer.handle, inner.handle]
        assert snapshot[2]["text"] == "deep"
        assert snapshot[2]["parent"] == outer.handle

    def test_remove_drops_subtree(self, stage):
        stage.boot()
        outer = RemoteProxy(stage.runtime.bridge).append_to("body")
        inner = RemoteProxy(stage.runtime.bridge).append_to(outer)
        stage.settle()

        outer.remove()
        stage.settle()

        assert outer.handle not in stage.host.elements
        assert inner.handle not in stage.host.elements

    def test_click(self, stage):
        stage.boot()
        clicks = []
        button = RemoteProxy(stage.runtime.bridge).append_to("body")
        button.text("Press").click(lambda *args: clicks.append(1))
        plain = RemoteProxy(stage.runtime.bridge).append_to("body")
        stage.settle()

        stage.click_text("Press")

        assert clicks == [1]
        assert stage.host.click(plain.handle) is False
        with pytest.raises(KeyError):
            stage.host.click("sel-does-not-exist")

    def test_selection_finds_by_class(self, stage):
        stage.boot()
        outer = RemoteProxy(stage.runtime.bridge).append_to("body")
        RemoteProxy(stage.runtime.bridge).add_class("title").append_to(outer)
        stage.settle()

        selection = outer.find(".title")
        selection.text("Found")
        stage.settle()

        assert stage.host.find("Found") is not None

    def test_measurement_round_trip(self, stage):
        stage.boot()
        box = RemoteProxy(stage.runtime.bridge).append_to("body")
        box.css("height", "40px")
        box.css("margin-top", "5px")
        heights = []
        box.outer_height(True, heights.append)
        box.height(heights.append)

        stage.settle()

        assert heights == [45.0, 40.0]

    def test_media_natural_size_from_file(self, stage, tmp_path):
        path = tmp_path / "wide.png"
        Image.new("RGB", (400, 100)).save(path)
        stage.boot()

        media = Media(stage.runtime.bridge, str(path))
        stage.runtime.viewport.add_child(media)
        stage.settle()

        assert media.natural_size == (400, 100)
        assert media.revealed
        element = stage.host.elements[media.handle]
        assert element.rect() == (0.0, 175.0, 1000.0, 250.0)

    def test_media_default_size(self, stage):
        stage.boot()
        media = Media(stage.runtime.bridge, "https://example.com/cat.png")
        stage.settle()
        assert media.natural_size == (640, 480)

    def test_unsupported_and_failing_calls_are_logged(self, channel, caplog):
        host = SimulatedHost(channel)

        with caplog.at_level(logging.WARNING):
            host.apply(["Teleport", "now", []])
            host.apply(["Element", "applyStyle", ["ghost", "color", "red"]])

        messages = [r.getMessage() for r in caplog.records]
        assert any("Unsupported host call Teleport.now" in m for m in messages)
        assert any("failed" in m for m in messages)
        assert len(host.recent_calls()) == 2

    def test_render_draws_positioned_elements(self, stage):
        stage.boot()
        box = RemoteProxy(stage.runtime.bridge)
        stage.runtime.viewport.add_child(box)
        box.text("Frame")
        stage.settle()

        frame = stage.host.render()

        assert (frame.width, frame.height) == (500, 300)
        background = np.array([16, 16, 20], dtype=np.uint8)
        assert (frame.data != background).any()

    def test_hidden_elements_are_not_drawn(self, stage):
        stage.boot()
        empty = stage.host.render().data.copy()
        box = RemoteProxy(stage.runtime.bridge)
        stage.runtime.viewport.add_child(box)
        box.text("Invisible").hide()
        stage.settle()

        assert (stage.host.render().data == empty).all()


class TestSandboxRuntime:
    """Dispatch loop and script start."""

    def test_script_runs_on_start(self, clock):
        runs = []
        stage = Stage(clock, script=runs.append)
        stage.settle()
        assert runs == []

        stage.boot()

        assert runs == [stage.runtime]

    def test_step_runs_due_timers(self, stage):
        stage.boot()
        fired = []
        stage.runtime.scheduler.call_later(1, fired.append, "tick")

        stage.advance(1)

        assert fired == ["tick"]

    def test_call_soon_runs_on_next_step(self, stage):
        stage.boot()
        ran = []
        stage.runtime.call_soon(ran.append, 1)
        assert ran == []

        stage.runtime.step()

        assert ran == [1]

    def test_create_slide_manager_uses_viewport(self, stage):
        sm = stage.runtime.create_slide_manager()
        assert sm.container is stage.runtime.viewport
        assert sm.music is stage.runtime.music
        assert sm.layout_config is stage.runtime.config.layout

    def test_logs_are_forwarded_to_host_console(self, stage):
        stage.boot()
        stage.runtime.forward_logs()
        try:
            logging.getLogger("stage_os.demo").warning("heads up")
            logging.getLogger("stage_os.demo").error("broken")
            stage.settle()
        finally:
            stage.runtime.forward_logs(False)

        assert ("log", "(stage_os.demo) heads up") in stage.host.console
        assert ("error", "(stage_os.demo) broken") in stage.host.console

    def test_console_handler_skips_bridge_and_host_records(self, bridge, channel):
        handler = HostConsoleHandler(bridge)
        for name in ("stage_os.core.ipc", "stage_os.host.simulator"):
            record = logging.LogRecord(name, logging.INFO, __file__, 1, "x", None, None)
            assert not handler.filter(record)
        record = logging.LogRecord("presentation", logging.INFO, __file__, 1, "x", None, None)
        assert handler.filter(record)

        handler.emit(record)
        assert drain(channel)[0].to_wire() == ["Console", "log", ["(presentation) x"]]

    def test_duplicate_start_is_ignored(self, clock, caplog):
        runs = []
        stage = Stage(clock, script=runs.append).boot()

        with caplog.at_level(logging.WARNING):
            stage.host.start()
            stage.settle()

        assert len(runs) == 1
        assert any("start twice" in r.getMessage() for r in caplog.records)

    def test_runtime_constructs_without_host(self, channel):
        runtime = SandboxRuntime(channel)
        assert runtime.step() == 0
