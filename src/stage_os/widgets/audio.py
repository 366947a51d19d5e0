"""
Sound proxies, background music layers and the metronome.
"""

import logging
from typing import TYPE_CHECKING, Dict, Optional

from ..core.errors import ConfigError
from ..core.observable import Observable
from ..core.scheduler import ScheduledCall, TimerScheduler

if TYPE_CHECKING:
    from ..core.ipc import MessageBridge

log = logging.getLogger(__name__)

DEFAULT_CLICK_SOUND = "builtin:click.mp3"


class Sound(Observable):
    """
    A host-owned sound.

    Events:
        load  fired once the host has the sound ready
    """

    HANDLE_PREFIX = "snd"

    def __init__(self, bridge: "MessageBridge", handle: str):
        self.bridge = bridge
        self.handle = handle
        self.loaded = False
        self.closed = False
        self._load_token: Optional[str] = None

    @classmethod
    def create(cls, bridge: "MessageBridge", url: str, props: Optional[dict] = None) -> "Sound":
        if not url:
            raise ConfigError("Sound needs a location")
        sound = cls(bridge, bridge.next_unique(cls.HANDLE_PREFIX))
        sound._load_token = bridge.make_callback(sound._on_load)
        bridge.call("Sound", "create", [sound.handle, url, dict(props or {}), sound._load_token])
        return sound

    def _on_load(self, *args) -> None:
        if self.closed:
            return
        self.loaded = True
        self.trigger("load")

    def play(self) -> None:
        if not self.closed:
            self.bridge.call("Sound", "play", [self.handle])

    def stop(self) -> None:
        if not self.closed:
            self.bridge.call("Sound", "stop", [self.handle])

    def close(self, stop: bool = True) -> None:
        """Release the load notification, stopping playback unless told not to."""
        if self.closed:
            return
        if stop:
            self.stop()
        self.closed = True
        self.bridge.release(self._load_token)
        self._load_token = None


class MusicPlayer:
    """Background music on named layers; each layer plays one looping sound."""

    DEFAULT_LAYER = "primary"

    def __init__(self, bridge: "MessageBridge"):
        self.bridge = bridge
        self.layers: Dict[str, Sound] = {}

    def set(self, url: str, layer: str = DEFAULT_LAYER) -> Sound:
        """Replace whatever plays on ``layer`` with ``url``."""
        current = self.layers.pop(layer, None)
        if current is not None:
            current.close()
        sound = Sound.create(self.bridge, url, {"autoPlay": True, "loops": 0})
        self.layers[layer] = sound
        log.info(f"Music layer '{layer}' now playing {url}")
        return sound

    def stop(self, layer: str = DEFAULT_LAYER) -> None:
        sound = self.layers.pop(layer, None)
        if sound is not None:
            sound.close()
            log.info(f"Music layer '{layer}' stopped")

    def stop_all(self) -> None:
        for layer in list(self.layers):
            self.stop(layer)


class Metronome:
    """
    Plays a click at a fixed rate.

    Clicking waits for the click sound to load; ``start`` before that only
    marks the metronome active.
    """

    def __init__(
        self,
        bridge: "MessageBridge",
        scheduler: TimerScheduler,
        sound_url: str = DEFAULT_CLICK_SOUND,
        interval: float = 0.1,
    ):
        self.scheduler = scheduler
        self.interval = interval
        self.active = False
        self._pending: Optional[ScheduledCall] = None
        self.sound = Sound.create(bridge, sound_url)
        self.sound.bind("load", self._on_sound_loaded)

    @property
    def loaded(self) -> bool:
        return self.sound.loaded

    @property
    def bpm(self) -> float:
        return 60.0 / self.interval

    def set_frequency(self, bpm: float) -> None:
        """Set the click rate in beats per minute."""
        if isinstance(bpm, bool) or not isinstance(bpm, (int, float)) or bpm <= 0:
            raise ConfigError(f"Metronome frequency must be a positive number, got {bpm!r}")
        self.interval = 60.0 / bpm

    def _on_sound_loaded(self, event) -> None:
        if self.active and self._pending is None:
            self._tick()

    def start(self) -> None:
        self.active = True
        if self._pending is not None or not self.loaded:
            return
        self._tick()

    def _tick(self) -> None:
        self._pending = None
        if not self.active:
            return
        if self.sound.loaded:
            self.sound.play()
        self._pending = self.scheduler.call_later(self.interval, self._tick)

    def stop(self) -> None:
        self.active = False
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def close(self) -> None:
        """Stop for good and release the click sound."""
        self.stop()
        self.sound.unbind("load", self._on_sound_loaded)
        self.sound.close()
