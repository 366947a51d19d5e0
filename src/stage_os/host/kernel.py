"""
StageOS host kernel.

Runs one sandboxed presentation against the simulated host. The host loop
applies outbound calls and renders preview frames; it must never block on the
sandbox.
"""

import logging
import threading
import time
from typing import Callable, Optional

from ..core.config import SystemConfig
from ..core.ipc import create_channel
from ..core.sandbox import ExecutionMode, SandboxProcess, Script
from .display import PreviewBuffer
from .simulator import SimulatedHost

log = logging.getLogger(__name__)

# Outbound calls applied per host tick; a slide change issues a few hundred
MAX_CALLS_PER_TICK = 500

# Optional callback for frame updates (used by web interface)
_frame_callback: Optional[Callable[[PreviewBuffer], None]] = None


def set_frame_callback(callback: Optional[Callable[[PreviewBuffer], None]]) -> None:
    """Set a callback to receive preview frames."""
    global _frame_callback
    _frame_callback = callback


class HostKernel:
    """
    The StageOS host.

    Responsibilities:
    - Start the presentation sandbox
    - Apply its outbound calls to the simulated host (non-blocking)
    - Render preview frames and publish them
    """

    def __init__(
        self,
        script: Script,
        config: Optional[SystemConfig] = None,
        mode: Optional[ExecutionMode] = None,
    ):
        self.config = config or SystemConfig()
        if mode is None:
            use_processes = self.config.runtime.use_multiprocessing
            mode = ExecutionMode.PROCESS if use_processes else ExecutionMode.THREAD
        self.mode = mode

        env = self.config.env
        self.channel = create_channel(use_multiprocessing=mode is ExecutionMode.PROCESS)
        self.host = SimulatedHost(
            self.channel,
            self.config.preview,
            viewport_size=(env.viewport_width, env.viewport_height),
        )
        self.sandbox = SandboxProcess(script, self.channel, self.config, mode=mode)

        self._running = False
        self._host_thread: Optional[threading.Thread] = None

    def _host_loop(self) -> None:
        """
        Host loop. Runs in a dedicated thread.

        Calls are applied in bounded batches so rendering keeps its pace.
        """
        frame_time = 1.0 / max(1, self.config.preview.fps)
        last_frame_time = 0.0

        log.info("Host loop started")
        self.host.start()

        while self._running:
            loop_start = time.time()

            self.host.process(max_calls=MAX_CALLS_PER_TICK)

            if loop_start - last_frame_time >= frame_time:
                frame = self.host.render()
                last_frame_time = loop_start
                if _frame_callback:
                    try:
                        _frame_callback(frame)
                    except Exception as e:
                        log.debug(f"Frame callback failed: {e}")

            elapsed = time.time() - loop_start
            sleep_time = min(frame_time, self.config.runtime.poll_interval) - elapsed
            if sleep_time > 0:
                time.sleep(sleep_time)

        log.info("Host loop stopped")

    def start(self) -> None:
        """Start the sandbox and the host loop."""
        log.info("Starting StageOS host...")
        self._running = True

        self.sandbox.start()

        self._host_thread = threading.Thread(
            target=self._host_loop,
            name="stageos-host",
            daemon=True,
        )
        self._host_thread.start()

        log.info(f"StageOS host started ({self.mode.value} sandbox)")

    def run(self) -> None:
        """Start and run until interrupted."""
        self.start()

        try:
            while self._running:
                time.sleep(0.1)
        except KeyboardInterrupt:
            log.info("Keyboard interrupt received")
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop the sandbox and the host loop."""
        if not self._running and self._host_thread is None:
            return
        log.info("Stopping StageOS host...")

        self._running = False
        self.sandbox.stop()

        if self._host_thread and self._host_thread.is_alive():
            self._host_thread.join(timeout=2.0)
        self._host_thread = None

        log.info("StageOS host stopped")
