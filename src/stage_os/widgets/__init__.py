"""
StageOS Widgets - Components presentations are built from.
"""

from .audio import Metronome, MusicPlayer, Sound
from .bubbles import AutoClose, Bubble, BubbleQueue, ButtonSpec, PromptBubble, TextBubble
from .preloader import Preloader
from .timer_display import TimerDisplay, UnknownTimerDisplay, VectorCanvas
from .timers import Timer, parse_duration

__all__ = [
    "Bubble",
    "TextBubble",
    "PromptBubble",
    "BubbleQueue",
    "ButtonSpec",
    "AutoClose",
    "Timer",
    "parse_duration",
    "TimerDisplay",
    "UnknownTimerDisplay",
    "VectorCanvas",
    "Sound",
    "MusicPlayer",
    "Metronome",
    "Preloader",
]
