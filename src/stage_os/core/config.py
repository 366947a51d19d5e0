"""
System configuration for StageOS.
"""

from dataclasses import dataclass, field
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvSettings(BaseSettings):
    """Environment-based settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STAGE_",
        extra="ignore",
    )

    log_level: str = "INFO"
    web_host: str = "0.0.0.0"
    web_port: int = 8000
    forward_logs_to_host: bool = False
    viewport_width: int = 1024
    viewport_height: int = 768


@dataclass
class RuntimeConfig:
    """Sandbox dispatch loop configuration."""

    poll_interval: float = 0.01  # seconds, upper bound on idle sleep
    max_messages_per_tick: int = 10
    use_multiprocessing: bool = True


@dataclass
class LayoutConfig:
    """Layout constants for built-in containers."""

    sidebar_fraction: float = 0.2
    sidebar_max_width: int = 200


@dataclass
class TimerConfig:
    """Local timing configuration."""

    tick_interval: float = 0.04  # seconds between timer tick events
    metronome_interval: float = 0.1  # seconds between clicks until tuned
    click_sound: str = "builtin:click.mp3"


@dataclass
class PreviewConfig:
    """Simulated host preview rendering."""

    fps: int = 30
    scale: float = 0.5
    default_media_size: tuple = (640, 480)


@dataclass
class SystemConfig:
    """Complete system configuration."""

    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    timers: TimerConfig = field(default_factory=TimerConfig)
    preview: PreviewConfig = field(default_factory=PreviewConfig)
    env: Optional[EnvSettings] = None

    def __post_init__(self):
        if self.env is None:
            try:
                self.env = EnvSettings()
            except Exception:
                self.env = EnvSettings.model_construct()
