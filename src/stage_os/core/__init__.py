"""
StageOS Core - Message bridge, remote proxies, layout, scheduling and sandboxing.
"""

from .config import LayoutConfig, PreviewConfig, RuntimeConfig, SystemConfig, TimerConfig
from .errors import (
    CallbackError,
    ConfigError,
    DuplicateCompletionError,
    NotABubbleError,
    NotLayoutableError,
    ProtocolError,
    StageError,
    UnknownSlideError,
)
from .ipc import CallbackRegistry, HostChannel, MessageBridge, MessageType, create_channel
from .layout import ActivitySidebar, StandardContainer, Viewport
from .observable import Event, Observable
from .proxy import Element, Media, Rect, RemoteProxy
from .sandbox import ExecutionMode, HostConsoleHandler, SandboxProcess, SandboxRuntime
from .scheduler import TimerScheduler

__all__ = [
    "MessageBridge",
    "CallbackRegistry",
    "HostChannel",
    "MessageType",
    "create_channel",
    "Observable",
    "Event",
    "RemoteProxy",
    "Element",
    "Media",
    "Rect",
    "StandardContainer",
    "Viewport",
    "ActivitySidebar",
    "TimerScheduler",
    "SandboxRuntime",
    "SandboxProcess",
    "ExecutionMode",
    "HostConsoleHandler",
    "SystemConfig",
    "RuntimeConfig",
    "LayoutConfig",
    "TimerConfig",
    "PreviewConfig",
    "StageError",
    "ConfigError",
    "UnknownSlideError",
    "NotLayoutableError",
    "NotABubbleError",
    "CallbackError",
    "ProtocolError",
    "DuplicateCompletionError",
]
