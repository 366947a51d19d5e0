"""Shared fixtures for the StageOS test suite."""

from typing import List, Optional

import pytest

from stage_os.core.config import SystemConfig
from stage_os.core.ipc import HostChannel, MessageBridge, OutboundCall, create_channel
from stage_os.core.layout import StandardContainer
from stage_os.core.proxy import Rect
from stage_os.core.sandbox import SandboxRuntime
from stage_os.core.scheduler import TimerScheduler
from stage_os.host.simulator import SimulatedHost
from stage_os.slides.base import SlideManager


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def drain(channel: HostChannel) -> List[OutboundCall]:
    """Take every pending outbound call off the channel."""
    calls = []
    while True:
        payload = channel.poll_outbound()
        if payload is None:
            return calls
        calls.append(OutboundCall.from_wire(payload))


def calls_to(calls: List[OutboundCall], module: str, operation: str) -> List[OutboundCall]:
    return [c for c in calls if c.module == module and c.operation == operation]


def find_call(
    calls: List[OutboundCall], module: str, operation: str, handle: Optional[str] = None
) -> Optional[OutboundCall]:
    for call in calls_to(calls, module, operation):
        if handle is None or (call.args and call.args[0] == handle):
            return call
    return None


class Stage:
    """A runtime and a simulated host sharing one channel, stepped by hand."""

    def __init__(self, clock: FakeClock, script=None, size=(1000, 600)):
        self.clock = clock
        self.channel = create_channel()
        self.runtime = SandboxRuntime(
            self.channel, script=script, config=SystemConfig(), clock=clock
        )
        self.host = SimulatedHost(self.channel, viewport_size=size)

    def boot(self) -> "Stage":
        self.host.start()
        self.settle()
        return self

    def settle(self, rounds: int = 100) -> None:
        for _ in range(rounds):
            applied = self.host.process()
            handled = self.runtime.step()
            if not applied and not handled and self.channel.send_queue.empty():
                return
        raise AssertionError("host and sandbox did not settle")

    def advance(self, seconds: float, step: float = 0.5) -> None:
        """Move the clock forward in steps, settling after each."""
        remaining = seconds
        while remaining > 0:
            delta = min(step, remaining)
            self.clock.advance(delta)
            remaining -= delta
            self.settle()

    def click_text(self, text: str) -> None:
        handle = self.host.find(text)
        assert handle is not None, f"no element reads {text!r}"
        assert self.host.click(handle), f"{text!r} has no click binding"
        self.settle()


@pytest.fixture
def channel() -> HostChannel:
    return create_channel()


@pytest.fixture
def bridge(channel) -> MessageBridge:
    return MessageBridge(channel)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock) -> TimerScheduler:
    return TimerScheduler(clock=clock)


@pytest.fixture
def container(bridge) -> StandardContainer:
    root = StandardContainer(bridge, handle="body")
    root.bounds(Rect(0, 0, 1000, 600))
    return root


@pytest.fixture
def sm(bridge, scheduler, container) -> SlideManager:
    return SlideManager(bridge, scheduler, container)


@pytest.fixture
def stage(clock) -> Stage:
    return Stage(clock)
