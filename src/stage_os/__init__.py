"""
StageOS - A sandboxed presentation runtime.

Architecture:
    - Core: message bridge, remote proxies, layout, timers, sandbox execution
    - Widgets: bubbles, timers and timer displays, audio, preloading
    - Slides: the slide manager and config-driven interactive slides
    - Host: a simulated host with a rendered preview, for development

Presentation code runs in a sandbox that never touches the display. It keeps
a tree of proxy objects and drives the host through asynchronous messages.

Example:
    from stage_os.core import ExecutionMode
    from stage_os.host import HostKernel

    def presentation(runtime):
        sm = runtime.create_slide_manager()
        sm.add({"hello": {"text": "Hello"}})
        sm.navigate("hello")

    HostKernel(presentation, mode=ExecutionMode.THREAD).run()
"""

__version__ = "1.0.0"
__author__ = "StageOS Team"

from .core import MessageBridge, SandboxRuntime, StandardContainer, SystemConfig, Viewport
from .slides import InteractiveSlide, Slide, SlideManager

__all__ = [
    # Core
    "MessageBridge",
    "SandboxRuntime",
    "StandardContainer",
    "Viewport",
    "SystemConfig",
    # Slides
    "Slide",
    "SlideManager",
    "InteractiveSlide",
]
