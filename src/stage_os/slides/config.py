"""
Slide configuration parsing.

Authored slide configs are plain mappings. ``SlideConfig.parse`` turns one into
normalized, typed directives once, when the slide is registered, so the state
machine never has to sniff value types while navigating.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from ..core.errors import ConfigError
from ..widgets.bubbles import AutoClose, ButtonSpec
from ..widgets.timers import parse_duration

log = logging.getLogger(__name__)

KEEP = "keep"
STOP = "stop"

SLIDE_KEYS = {
    "media",
    "text",
    "buttons",
    "bubbles",
    "metronome",
    "sound",
    "music",
    "delay",
    "onstart",
}
BUTTON_KEYS = {"label", "click", "color", "size"}
DELAY_KEYS = {"duration", "complete", "style"}


@dataclass(frozen=True)
class MediaDirective:
    """Show ``location``, or keep the previous slide's media."""

    keep: bool = False
    location: Optional[str] = None

    @classmethod
    def parse(cls, value: Any) -> Optional["MediaDirective"]:
        if value is None:
            return None
        if value == KEEP:
            return cls(keep=True)
        if isinstance(value, str) and value:
            return cls(location=value)
        raise ConfigError(f"Invalid media {value!r}, expected a location or {KEEP!r}")


@dataclass(frozen=True)
class MetronomeDirective:
    """Run a metronome at ``bpm``, or keep the previous slide's metronome."""

    keep: bool = False
    bpm: Optional[float] = None

    @classmethod
    def parse(cls, value: Any) -> Optional["MetronomeDirective"]:
        if value is None:
            return None
        if value == KEEP:
            return cls(keep=True)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            return cls(bpm=float(value))
        raise ConfigError(f"Invalid metronome {value!r}, expected beats per minute or {KEEP!r}")


@dataclass(frozen=True)
class MusicDirective:
    """Start ``location`` on the primary music layer, or stop it."""

    stop: bool = False
    location: Optional[str] = None

    @classmethod
    def parse(cls, value: Any) -> Optional["MusicDirective"]:
        if value is None:
            return None
        if value == STOP:
            return cls(stop=True)
        if isinstance(value, str) and value:
            return cls(location=value)
        raise ConfigError(f"Invalid music {value!r}, expected a location or {STOP!r}")


class TimerStyle(Enum):
    """How a delay is shown in the activity sidebar."""

    COUNTDOWN = "countdown"
    UNKNOWN = "unknown"
    HIDDEN = "hidden"

    @classmethod
    def parse(cls, value: Any) -> "TimerStyle":
        if value is None or value == "default":
            return cls.COUNTDOWN
        try:
            return cls(value)
        except ValueError:
            raise ConfigError(f"Unknown delay style {value!r}") from None


@dataclass(frozen=True)
class DelaySpec:
    """Leave the slide after ``duration`` seconds."""

    duration: float
    complete: Any = None  # callable, slide name or Slide
    style: TimerStyle = TimerStyle.COUNTDOWN

    @classmethod
    def parse(cls, value: Any) -> Optional["DelaySpec"]:
        if value is None:
            return None
        if not isinstance(value, Mapping):
            raise ConfigError(f"Invalid delay {value!r}, expected a mapping")
        _reject_unknown("delay", value, DELAY_KEYS)
        return cls(
            duration=parse_duration(value.get("duration")),
            complete=_check_target("delay completion", value.get("complete")),
            style=TimerStyle.parse(value.get("style")),
        )


class BubbleKind(Enum):
    TEXT = "text"
    BUTTONS = "buttons"


@dataclass(frozen=True)
class BubbleSpec:
    kind: BubbleKind
    text: str = ""
    buttons: Tuple[ButtonSpec, ...] = ()
    auto_close: AutoClose = AutoClose.PAGE
    anim: bool = True

    @classmethod
    def parse(cls, value: Any) -> "BubbleSpec":
        if not isinstance(value, Mapping):
            raise ConfigError(f"Invalid bubble {value!r}, expected a mapping")

        raw_type = value.get("type")
        try:
            kind = BubbleKind(str(raw_type).lower())
        except ValueError:
            raise ConfigError(f"Unknown bubble type {raw_type!r}") from None

        _reject_unknown(
            "bubble", value, {"type", "text", "buttons", "autoClose", "anim", "timeout"}
        )
        # Older presentations set timeout; bubbles have never acted on it
        if value.get("timeout") is not None:
            log.debug(f"Ignoring bubble timeout {value['timeout']!r}")
        buttons = parse_buttons(value.get("buttons")) if kind is BubbleKind.BUTTONS else ()
        if kind is BubbleKind.BUTTONS and not buttons:
            raise ConfigError("A buttons bubble needs at least one button")

        return cls(
            kind=kind,
            text=str(value.get("text", "")),
            buttons=buttons,
            auto_close=AutoClose.parse(value.get("autoClose", AutoClose.PAGE)),
            anim=bool(value.get("anim", True)),
        )


def _reject_unknown(what: str, value: Mapping, allowed: set) -> None:
    unknown = set(value) - allowed
    if unknown:
        raise ConfigError(f"Unknown {what} option(s): {', '.join(sorted(map(str, unknown)))}")


def _check_target(what: str, target: Any) -> Any:
    from .base import Slide

    if target is None or callable(target) or isinstance(target, (str, Slide)):
        return target
    raise ConfigError(f"Invalid {what} {target!r}, expected a callable or a slide")


def parse_buttons(value: Any) -> Tuple[ButtonSpec, ...]:
    """
    Normalize button declarations.

    Accepts ``{label: handler}``, ``{label: {click, color, size}}`` or a list of
    ``{label, click, color, size}`` mappings.
    """
    if value is None:
        return ()

    entries = []
    if isinstance(value, Mapping):
        for label, option in value.items():
            if isinstance(option, Mapping):
                _reject_unknown("button", option, BUTTON_KEYS - {"label"})
                entries.append({**option, "label": label})
            else:
                entries.append({"label": label, "click": option})
    elif isinstance(value, Sequence) and not isinstance(value, str):
        for option in value:
            if not isinstance(option, Mapping) or "label" not in option:
                raise ConfigError(f"Invalid button {option!r}, expected a mapping with a label")
            _reject_unknown("button", option, BUTTON_KEYS)
            entries.append(dict(option))
    else:
        raise ConfigError(f"Invalid buttons {value!r}")

    specs = []
    for entry in entries:
        defaults = ButtonSpec(label=str(entry["label"]))
        specs.append(
            ButtonSpec(
                label=defaults.label,
                click=_check_target("button click", entry.get("click")),
                color=entry.get("color", defaults.color),
                size=entry.get("size", defaults.size),
            )
        )
    return tuple(specs)


@dataclass(frozen=True)
class SlideConfig:
    """Normalized declaration of an interactive slide."""

    media: Optional[MediaDirective] = None
    text: Optional[str] = None
    buttons: Tuple[ButtonSpec, ...] = ()
    bubbles: Tuple[BubbleSpec, ...] = ()
    metronome: Optional[MetronomeDirective] = None
    sound: Optional[str] = None
    music: Optional[MusicDirective] = None
    delay: Optional[DelaySpec] = None
    onstart: Optional[Callable] = None

    @classmethod
    def parse(cls, value: Optional[Mapping]) -> "SlideConfig":
        if value is None:
            return cls()
        if isinstance(value, SlideConfig):
            return value
        if not isinstance(value, Mapping):
            raise ConfigError(f"Invalid slide {value!r}, expected a mapping")
        _reject_unknown("slide", value, SLIDE_KEYS)

        onstart = value.get("onstart")
        if onstart is not None and not callable(onstart):
            raise ConfigError(f"onstart must be callable, got {onstart!r}")

        sound = value.get("sound")
        if sound is not None and (not isinstance(sound, str) or not sound):
            raise ConfigError(f"Invalid sound {sound!r}, expected a location")

        text = value.get("text")
        bubbles = value.get("bubbles") or ()
        if isinstance(bubbles, (str, Mapping)) or not isinstance(bubbles, Sequence):
            raise ConfigError(f"Invalid bubbles {bubbles!r}, expected a list")

        return cls(
            media=MediaDirective.parse(value.get("media")),
            text=str(text) if text else None,
            buttons=parse_buttons(value.get("buttons")),
            bubbles=tuple(BubbleSpec.parse(b) for b in bubbles),
            metronome=MetronomeDirective.parse(value.get("metronome")),
            sound=sound,
            music=MusicDirective.parse(value.get("music")),
            delay=DelaySpec.parse(value.get("delay")),
            onstart=onstart,
        )
