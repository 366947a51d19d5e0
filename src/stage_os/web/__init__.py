"""
StageOS Web - FastAPI dev interface for the simulated host preview and logs.
"""

from .app import SharedState, WebLogHandler, create_app, get_shared_state

__all__ = ["create_app", "get_shared_state", "SharedState", "WebLogHandler"]
