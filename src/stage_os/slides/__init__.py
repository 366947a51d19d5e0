"""
StageOS Slides - The presentation state machine.
"""

from .base import Slide, SlideManager
from .config import SlideConfig
from .interactive import InteractiveSlide

__all__ = ["Slide", "SlideManager", "SlideConfig", "InteractiveSlide"]
