"""
Countdown timers.

Timers run on the sandbox's ``TimerScheduler``; ticking is local and only the
listeners (e.g. a timer display) talk to the host.
"""

import logging
import re
from typing import Callable, Optional, Union

from ..core.errors import ConfigError
from ..core.observable import Observable
from ..core.scheduler import ScheduledCall, TimerScheduler

log = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.04

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|sec|secs|m|min|mins|h|hr|hrs)?\s*$")
_UNIT_SECONDS = {
    None: 1.0,
    "ms": 0.001,
    "s": 1.0,
    "sec": 1.0,
    "secs": 1.0,
    "m": 60.0,
    "min": 60.0,
    "mins": 60.0,
    "h": 3600.0,
    "hr": 3600.0,
    "hrs": 3600.0,
}


def parse_duration(value: Union[int, float, str, None]) -> float:
    """
    Convert a duration to seconds.

    Numbers are seconds. Strings may carry a unit: "1500ms", "30s", "5m", "1h".
    """
    if value is None:
        raise ConfigError("No duration specified")
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        match = _DURATION_RE.match(value.lower())
        if not match:
            raise ConfigError(f"Invalid duration {value!r}")
        seconds = float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    else:
        raise ConfigError(f"Invalid duration {value!r}")

    if seconds < 0:
        raise ConfigError(f"Duration must not be negative, got {value!r}")
    return seconds


class Timer(Observable):
    """
    A one-shot countdown.

    Events:
        tick            [elapsed, duration, timer] every ``tick_interval``
        beforeComplete  [timer] right before ``complete`` runs
        complete        [timer] after ``complete`` ran
    """

    def __init__(
        self,
        scheduler: TimerScheduler,
        duration: Union[int, float, str],
        complete: Optional[Callable[[], None]] = None,
        autostart: bool = True,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
    ):
        self.scheduler = scheduler
        self.duration = parse_duration(duration)
        self.on_complete = complete
        self.tick_interval = tick_interval
        self.start_time: Optional[float] = None
        self._timeout: Optional[ScheduledCall] = None
        self._tick_call: Optional[ScheduledCall] = None

        if autostart:
            self.start()

    @property
    def running(self) -> bool:
        return self._timeout is not None

    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return min(self.duration, self.scheduler.now() - self.start_time)

    def remaining(self) -> float:
        return self.duration - self.elapsed()

    def start(self) -> None:
        if self.running:
            return
        self.start_time = self.scheduler.now()
        self._timeout = self.scheduler.call_later(self.duration, self._finish)
        self._tick()

    def stop(self) -> None:
        """Cancel the countdown without completing it."""
        for call in (self._timeout, self._tick_call):
            if call is not None:
                call.cancel()
        self._timeout = None
        self._tick_call = None

    def _tick(self) -> None:
        self._tick_call = None
        if not self.running:
            return

        self.trigger("tick", [self.elapsed(), self.duration, self])
        if self.running:
            self._tick_call = self.scheduler.call_later(self.tick_interval, self._tick)

    def _finish(self) -> None:
        self._timeout = None
        if self._tick_call is not None:
            self._tick_call.cancel()
            self._tick_call = None

        log.debug(f"Timer of {self.duration}s completed")
        self.trigger("beforeComplete", [self])
        if self.on_complete is not None:
            self.on_complete()
        self.trigger("complete", [self])
