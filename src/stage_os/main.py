#!/usr/bin/env python3
"""
StageOS - Main Entry Point

Runs the welcome presentation in a sandbox against the simulated host and
serves the dev web interface.

Usage:
    stage-os
    python -m stage_os.main --port 8080
    python -m stage_os.main --no-web --thread
"""

import argparse
import logging
import threading

from stage_os.core import ExecutionMode, SystemConfig
from stage_os.demo import welcome_presentation
from stage_os.host import HostKernel, set_frame_callback

# Setup logging
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s : %(levelname)-8s : (%(name)s) %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("stage_os")

# Suppress noisy third-party loggers
logging.getLogger("sse_starlette").setLevel(logging.WARNING)
logging.getLogger("uvicorn").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
logging.getLogger("PIL").setLevel(logging.WARNING)


def setup_web_integration(kernel: HostKernel):
    """Publish preview frames to the web interface."""
    from stage_os.web import get_shared_state

    shared_state = get_shared_state()

    def on_frame(frame):
        shared_state.set_frame(frame)

    set_frame_callback(on_frame)
    return shared_state


def setup_logging(level: str, web: bool = True):
    """Apply the configured level and collect sandbox process logs."""
    import multiprocessing
    from logging.handlers import QueueListener

    from stage_os.core.sandbox import set_log_queue

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handlers = [h for h in root_logger.handlers if isinstance(h, logging.StreamHandler)]

    if web:
        from stage_os.web import WebLogHandler, get_shared_state

        # Stores records for the web interface, prints nothing
        web_handler = WebLogHandler(get_shared_state())
        root_logger.addHandler(web_handler)
        handlers.append(web_handler)

    log_queue = multiprocessing.Queue()
    set_log_queue(log_queue)

    queue_listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    queue_listener.start()
    return queue_listener


def run_web_server_thread(kernel: HostKernel, host: str = "0.0.0.0", port: int = 8000):
    """Run the web server in a background thread."""
    import asyncio
    import time

    import uvicorn

    from stage_os.web import create_app, get_shared_state

    app = create_app(get_shared_state(), host=kernel.host)

    log.info("Starting web server at http://%s:%d", host, port)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
    )
    server = uvicorn.Server(config)

    def run_server():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        loop.run_until_complete(server.serve())

    thread = threading.Thread(target=run_server, name="stageos-web", daemon=True)
    thread.start()

    # Give the server a moment to start
    time.sleep(0.5)

    return thread


def main():
    """Main entry point."""
    config = SystemConfig()

    parser = argparse.ArgumentParser(description="StageOS - sandboxed presentation runtime")
    parser.add_argument(
        "--host",
        default=config.env.web_host,
        help=f"Web server host (default: {config.env.web_host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=config.env.web_port,
        help=f"Web server port (default: {config.env.web_port})",
    )
    parser.add_argument(
        "--no-web",
        action="store_true",
        help="Do not start the dev web interface",
    )
    parser.add_argument(
        "--thread",
        action="store_true",
        help="Run the sandbox in a thread instead of a child process",
    )
    args = parser.parse_args()

    queue_listener = setup_logging(config.env.log_level, web=not args.no_web)

    log.info("=" * 50)
    log.info("StageOS Starting...")
    log.info("=" * 50)

    mode = ExecutionMode.THREAD if args.thread else ExecutionMode.PROCESS
    kernel = HostKernel(welcome_presentation, config, mode=mode)

    if not args.no_web:
        setup_web_integration(kernel)
        run_web_server_thread(kernel, args.host, args.port)

    try:
        kernel.run()
    except KeyboardInterrupt:
        log.info("Shutdown requested...")
    finally:
        kernel.stop()
        queue_listener.stop()

    log.info("StageOS shutdown complete.")


if __name__ == "__main__":
    main()
