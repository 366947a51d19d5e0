"""
Sandbox execution for StageOS.

Presentation code runs in its own process (or a dispatch thread) and only
talks to the host through a HostChannel. One dispatch loop per sandbox pumps
inbound messages and ticks local timers.
"""

import logging
import logging.handlers
import multiprocessing
import threading
import time
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Union

from .config import SystemConfig
from .errors import ProtocolError
from .ipc import HostChannel, MessageBridge
from .layout import Viewport
from .scheduler import TimerScheduler

if TYPE_CHECKING:
    from ..slides.base import SlideManager
    from ..widgets.audio import MusicPlayer

log = logging.getLogger(__name__)

# Shared queue for forwarding logs from child processes to main process
_log_queue: Optional[multiprocessing.Queue] = None


def set_log_queue(queue: multiprocessing.Queue) -> None:
    """Set the log queue for child processes to use."""
    global _log_queue
    _log_queue = queue


def get_log_queue() -> Optional[multiprocessing.Queue]:
    """Get the log queue."""
    return _log_queue


def _setup_child_logging(log_queue: multiprocessing.Queue) -> None:
    """Set up logging in child process to forward to main process."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    queue_handler = logging.handlers.QueueHandler(log_queue)
    queue_handler.setLevel(logging.INFO)
    root.addHandler(queue_handler)
    root.setLevel(logging.INFO)


class ExecutionMode(Enum):
    """Where a sandbox's dispatch loop runs."""

    THREAD = "thread"
    PROCESS = "process"


class HostConsoleHandler(logging.Handler):
    """
    Logging handler that forwards sandbox records to the host console.

    Records from the bridge and from the host side are never forwarded: in
    thread mode they share the root logger and would echo back forever.
    """

    EXCLUDED = ("stage_os.core.ipc", "stage_os.host", "stage_os.web", "stage_os.main")

    def __init__(self, bridge: MessageBridge, level: int = logging.INFO):
        super().__init__(level)
        self.bridge = bridge
        self.setFormatter(logging.Formatter("(%(name)s) %(message)s"))

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(self.EXCLUDED):
            return False
        return super().filter(record)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            operation = "error" if record.levelno >= logging.ERROR else "log"
            self.bridge.call("Console", operation, [self.format(record)])
        except Exception:
            self.handleError(record)


Script = Callable[["SandboxRuntime"], None]


class SandboxRuntime:
    """
    Everything a presentation script needs, bound to one channel.

    The script runs once, on the dispatch thread, after the host sends
    ``start``. All callbacks, timers and navigation happen on that thread; other
    threads hand work over with ``call_soon``.
    """

    def __init__(
        self,
        channel: HostChannel,
        script: Optional[Script] = None,
        config: Optional[SystemConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        from ..widgets.audio import MusicPlayer

        self.config = config or SystemConfig()
        self.channel = channel
        self.script = script

        self.bridge = MessageBridge(channel)
        self.scheduler = TimerScheduler(clock=clock)
        self.viewport = Viewport(self.bridge)
        self.music: "MusicPlayer" = MusicPlayer(self.bridge)

        self.started = False
        self._running = False
        self._console_handler: Optional[HostConsoleHandler] = None

        self.bridge.bind("started", self._on_started)

    def _on_started(self, event) -> None:
        if self.started:
            log.warning("Host sent start twice, ignoring")
            return
        self.started = True
        log.info("Host started, running presentation script")
        if self.script is not None:
            self.script(self)

    def create_slide_manager(self) -> "SlideManager":
        """A slide manager laid out in this runtime's viewport."""
        from ..slides.base import SlideManager

        return SlideManager(
            self.bridge,
            self.scheduler,
            self.viewport,
            music=self.music,
            layout_config=self.config.layout,
            timer_config=self.config.timers,
        )

    def call_soon(self, callback: Callable, *args) -> None:
        """Run ``callback`` on the dispatch thread. Safe from any thread."""
        self.scheduler.call_soon(callback, *args)

    def forward_logs(self, enabled: bool = True) -> None:
        """Mirror INFO and above to the host console."""
        root = logging.getLogger()
        if enabled and self._console_handler is None:
            self._console_handler = HostConsoleHandler(self.bridge)
            root.addHandler(self._console_handler)
        elif not enabled and self._console_handler is not None:
            root.removeHandler(self._console_handler)
            self._console_handler = None

    def step(self, timeout: float = 0.0) -> int:
        """
        One dispatch iteration: handle pending inbound messages, then run due
        timers. Returns the number of messages handled.
        """
        handled = self.bridge.pump(
            max_messages=self.config.runtime.max_messages_per_tick, timeout=timeout
        )
        self.scheduler.tick()
        return handled

    run_once = step

    def _idle_timeout(self) -> float:
        poll = self.config.runtime.poll_interval
        deadline = self.scheduler.next_deadline()
        if deadline is None:
            return poll
        return max(0.0, min(poll, deadline - self.scheduler.now()))

    def run(self, stop_event=None) -> None:
        """Dispatch until ``stop_event`` is set or ``stop`` is called."""
        self._running = True
        log.debug("Sandbox dispatch loop started")

        try:
            while self._running and not (stop_event is not None and stop_event.is_set()):
                try:
                    self.step(timeout=self._idle_timeout())
                except ProtocolError as e:
                    log.exception(f"Protocol error from host: {e}")
                    raise
                except Exception as e:
                    log.exception(f"Presentation callback failed: {e}")
        finally:
            self._running = False
            self.forward_logs(False)
            log.debug("Sandbox dispatch loop stopped")

    def stop(self) -> None:
        self._running = False


def _process_run_loop(
    script: Script, send_queue, recv_queue, config: SystemConfig, stop_event, log_queue
) -> None:
    """
    Run loop for a sandbox. Runs in a separate process.
    """
    if log_queue:
        _setup_child_logging(log_queue)

    channel = HostChannel(send_queue=send_queue, recv_queue=recv_queue)
    runtime = SandboxRuntime(channel, script=script, config=config)
    if config.env is not None and config.env.forward_logs_to_host:
        runtime.forward_logs()

    try:
        runtime.run(stop_event)
    except Exception as e:
        log.exception(f"Sandbox crashed: {e}")


class SandboxProcess:
    """
    Runs a presentation script in an isolated sandbox.

    In PROCESS mode the script must be a picklable module-level callable.
    """

    def __init__(
        self,
        script: Script,
        channel: HostChannel,
        config: Optional[SystemConfig] = None,
        mode: ExecutionMode = ExecutionMode.PROCESS,
        name: str = "presentation",
    ):
        self.script = script
        self.channel = channel
        self.config = config or SystemConfig()
        self.mode = mode
        self.name = name
        self.runtime: Optional[SandboxRuntime] = None
        self._running = False
        self._worker: Optional[Union[multiprocessing.Process, threading.Thread]] = None
        self._stop_event = None

    def start(self) -> None:
        """Start the sandbox in its own process or thread."""
        if self._running:
            return

        self._running = True

        if self.mode is ExecutionMode.PROCESS:
            self._stop_event = multiprocessing.Event()
            self._worker = multiprocessing.Process(
                target=_process_run_loop,
                args=(
                    self.script,
                    self.channel.send_queue,
                    self.channel.recv_queue,
                    self.config,
                    self._stop_event,
                    get_log_queue(),
                ),
                name=f"stageos-{self.name}",
                daemon=True,
            )
            self._worker.start()
            log.info(f"Started sandbox '{self.name}' in process {self._worker.pid}")
        else:
            self._stop_event = threading.Event()
            self.runtime = SandboxRuntime(self.channel, script=self.script, config=self.config)
            if self.config.env is not None and self.config.env.forward_logs_to_host:
                self.runtime.forward_logs()
            self._worker = threading.Thread(
                target=self.runtime.run,
                args=(self._stop_event,),
                name=f"stageos-{self.name}",
                daemon=True,
            )
            self._worker.start()
            log.info(f"Started sandbox '{self.name}' in thread")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the sandbox gracefully."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

        if self._worker is not None and self._worker.is_alive():
            self._worker.join(timeout=timeout)
            if self._worker.is_alive():
                if isinstance(self._worker, multiprocessing.Process):
                    log.warning(f"Force terminating sandbox '{self.name}'")
                    self._worker.terminate()
                    self._worker.join(timeout=1.0)
                else:
                    log.warning(f"Sandbox thread '{self.name}' did not stop in time")

    @property
    def is_running(self) -> bool:
        return self._running and self._worker is not None and self._worker.is_alive()
