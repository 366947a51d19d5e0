"""
FastAPI application for the StageOS dev interface.

Provides:
- Live preview of the simulated host via MJPEG streaming
- Real-time log streaming via SSE
- Element tree and host call inspection
- Resize and click injection
"""

import asyncio
import base64
import io
import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, StreamingResponse
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

if TYPE_CHECKING:
    from ..host.display import PreviewBuffer
    from ..host.simulator import SimulatedHost

log = logging.getLogger(__name__)

INDEX_HTML = """<!doctype html>
<html>
<head><title>StageOS</title></head>
<body style="background:#111;color:#ddd;font-family:sans-serif">
<h1>StageOS preview</h1>
<img src="/stream" alt="preview" style="border:1px solid #444">
<pre id="logs" style="height:240px;overflow:auto"></pre>
<script>
const logs = document.getElementById("logs");
new EventSource("/api/logs/stream").onmessage = (e) => {
  logs.textContent += JSON.parse(e.data).formatted + "\\n";
  logs.scrollTop = logs.scrollHeight;
};
</script>
</body>
</html>
"""


class ResizeRequest(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)


@dataclass
class SharedState:
    """
    Shared state between the host kernel and the web server.

    Thread-safe container for the current preview frame and log messages.
    """

    _frame: Optional["PreviewBuffer"] = None
    _frame_lock: threading.Lock = field(default_factory=threading.Lock)
    _logs: Deque[Dict] = field(default_factory=lambda: deque(maxlen=1000))
    _log_lock: threading.Lock = field(default_factory=threading.Lock)
    _log_total: int = 0
    preview_width: int = 512
    preview_height: int = 384

    def set_frame(self, frame: "PreviewBuffer") -> None:
        """Update the current frame (thread-safe)."""
        with self._frame_lock:
            self._frame = frame.copy()
            self.preview_width, self.preview_height = frame.width, frame.height

    def get_frame(self) -> Optional["PreviewBuffer"]:
        """Get a copy of the current frame (thread-safe)."""
        with self._frame_lock:
            return self._frame.copy() if self._frame else None

    def add_log(self, record: Dict) -> None:
        """Add a log record (thread-safe)."""
        with self._log_lock:
            self._logs.append(record)
            self._log_total += 1

    def get_logs(self, since: int = 0) -> List[Dict]:
        """
        Get logs added after the first ``since`` records (thread-safe).

        ``since`` counts every record ever added, so it stays valid once old
        records fall out of the buffer.
        """
        return self.read_logs(since)[0]

    def read_logs(self, since: int = 0) -> Tuple[List[Dict], int]:
        """Like ``get_logs``, plus the ``since`` value for the next read."""
        with self._log_lock:
            logs = list(self._logs)
            total = self._log_total
        first = total - len(logs)
        return logs[max(0, since - first) :], total

    def get_log_count(self) -> int:
        """Total number of records ever added."""
        with self._log_lock:
            return self._log_total


# Global shared state
_shared_state: Optional[SharedState] = None


def get_shared_state() -> SharedState:
    """Get or create the global shared state."""
    global _shared_state
    if _shared_state is None:
        _shared_state = SharedState()
    return _shared_state


class WebLogHandler(logging.Handler):
    """
    Logging handler that forwards logs to the web interface.
    """

    def __init__(self, shared_state: SharedState):
        super().__init__()
        self.shared_state = shared_state
        self.setFormatter(
            logging.Formatter(
                "%(asctime)s : %(levelname)-8s : (%(name)s) %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    def emit(self, record: logging.LogRecord) -> None:
        try:
            formatted = self.format(record)
            log_entry = {
                "timestamp": time.time(),
                "time": formatted.split(" : ")[0],
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                "formatted": formatted,
            }
            self.shared_state.add_log(log_entry)
        except Exception:
            self.handleError(record)


async def log_events(
    shared_state: SharedState,
    is_disconnected: Callable[[], Awaitable[bool]],
    poll_interval: float = 0.1,
):
    """Yield SSE events for each new log record until the client goes away."""
    since = 0

    while True:
        if await is_disconnected():
            break

        logs, since = shared_state.read_logs(since)
        for log_entry in logs:
            yield {
                "event": "message",
                "data": json.dumps(log_entry),
            }

        await asyncio.sleep(poll_interval)


def _placeholder(shared_state: SharedState, color=(5, 5, 5)):
    from PIL import Image

    return Image.new("RGB", (shared_state.preview_width, shared_state.preview_height), color)


def create_app(
    shared_state: Optional[SharedState] = None, host: Optional["SimulatedHost"] = None
) -> FastAPI:
    """Create the FastAPI application."""
    if shared_state is None:
        shared_state = get_shared_state()

    app = FastAPI(
        title="StageOS Dev Interface",
        description="Live preview, logs and host inspection for StageOS presentations",
        version="1.0.0",
    )

    from starlette.middleware.base import BaseHTTPMiddleware

    class NoCacheMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request, call_next):
            response = await call_next(request)
            if "text/html" in response.headers.get("content-type", ""):
                response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
                response.headers["Pragma"] = "no-cache"
                response.headers["Expires"] = "0"
            return response

    app.add_middleware(NoCacheMiddleware)

    def require_host() -> "SimulatedHost":
        if host is None:
            raise HTTPException(status_code=503, detail="No host attached")
        return host

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "host": host is not None}

    @app.get("/", response_class=HTMLResponse)
    async def index():
        """Preview page."""
        return INDEX_HTML

    @app.get("/stream")
    async def stream_preview():
        """MJPEG stream of the current preview."""

        async def generate():
            frame_interval = 1.0 / 30

            while True:
                frame = shared_state.get_frame()
                img = frame.to_image() if frame else _placeholder(shared_state)

                buffer = io.BytesIO()
                img.save(buffer, format="JPEG", quality=85)
                jpeg_bytes = buffer.getvalue()

                yield (
                    b"--frame\r\n"
                    b"Content-Type: image/jpeg\r\n"
                    b"Content-Length: " + str(len(jpeg_bytes)).encode() + b"\r\n"
                    b"\r\n" + jpeg_bytes + b"\r\n"
                )

                await asyncio.sleep(frame_interval)

        return StreamingResponse(
            generate(),
            media_type="multipart/x-mixed-replace; boundary=frame",
            headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
        )

    @app.get("/api/frame")
    async def get_frame():
        """Get current preview as base64 PNG."""
        frame = shared_state.get_frame()
        img = frame.to_image() if frame else _placeholder(shared_state, (0, 0, 0))

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return {
            "frame": base64.b64encode(buffer.getvalue()).decode(),
            "width": img.width,
            "height": img.height,
        }

    @app.get("/api/logs/stream")
    async def stream_logs(request: Request):
        """SSE endpoint for real-time log streaming."""
        return EventSourceResponse(log_events(shared_state, request.is_disconnected))

    @app.get("/api/elements")
    async def get_elements():
        """The host's element tree, body first."""
        return require_host().snapshot()

    @app.get("/api/calls")
    async def get_calls(limit: int = 100):
        """Most recent host calls, oldest first."""
        return require_host().recent_calls(max(1, limit))

    @app.post("/api/resize")
    async def resize(request: ResizeRequest):
        """Resize the host window."""
        require_host().resize(request.width, request.height)
        return {"width": request.width, "height": request.height}

    @app.post("/api/elements/{handle}/click")
    async def click(handle: str):
        """Click an element."""
        current = require_host()
        try:
            delivered = current.click(handle)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"No element {handle}") from None
        return {"handle": handle, "delivered": delivered}

    return app
