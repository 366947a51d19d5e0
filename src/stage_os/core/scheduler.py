"""
Local timer scheduling for the sandbox.

Timers never round-trip through the host. The dispatch loop calls ``tick()``
and due callbacks run there, on the same thread that handles inbound messages.
"""

import heapq
import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple


@dataclass(order=True)
class ScheduledCall:
    """A pending callback. Ordered by deadline, then by scheduling order."""

    when: float
    seq: int
    callback: Callable = field(compare=False)
    args: Tuple[Any, ...] = field(default=(), compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        """Prevent the call from running. Has no effect once it ran."""
        self.cancelled = True


class TimerScheduler:
    """
    Cooperative timeout primitives.

    ``clock`` returns seconds; tests inject a fake one.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._queue: List[ScheduledCall] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callable, *args: Any) -> ScheduledCall:
        """Run ``callback(*args)`` once ``delay`` seconds have passed."""
        call = ScheduledCall(
            when=self._clock() + max(0.0, delay),
            seq=next(self._seq),
            callback=callback,
            args=args,
        )
        with self._lock:
            heapq.heappush(self._queue, call)
        return call

    def call_soon(self, callback: Callable, *args: Any) -> ScheduledCall:
        """Run ``callback(*args)`` on the next tick."""
        return self.call_later(0.0, callback, *args)

    def next_deadline(self) -> Optional[float]:
        """Deadline of the earliest pending call, or None."""
        with self._lock:
            while self._queue and self._queue[0].cancelled:
                heapq.heappop(self._queue)
            return self._queue[0].when if self._queue else None

    def pending(self) -> int:
        with self._lock:
            return sum(1 for call in self._queue if not call.cancelled)

    def tick(self, now: Optional[float] = None) -> int:
        """
        Run every call due at ``now`` in deadline order.

        Calls scheduled by a running callback run in the same tick only if
        they are already due. Returns the number of callbacks run.
        """
        if now is None:
            now = self._clock()

        ran = 0
        while True:
            with self._lock:
                if not self._queue or self._queue[0].when > now:
                    break
                call = heapq.heappop(self._queue)
            if call.cancelled:
                continue
            call.cancelled = True
            call.callback(*call.args)
            ran += 1
        return ran

    def clear(self) -> None:
        """Cancel everything pending."""
        with self._lock:
            for call in self._queue:
                call.cancelled = True
            self._queue.clear()
