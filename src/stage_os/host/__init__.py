"""
StageOS Host - Simulated host, preview rendering and the host kernel.
"""

from .display import PreviewBuffer
from .kernel import HostKernel, set_frame_callback
from .simulator import HostElement, SimulatedHost

__all__ = ["HostKernel", "SimulatedHost", "HostElement", "PreviewBuffer", "set_frame_callback"]
