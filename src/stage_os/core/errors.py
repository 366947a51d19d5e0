"""
Error types raised by the StageOS sandbox core.

Misuse errors also derive from the builtin exception that best describes them,
so callers may catch either.
"""


class StageError(Exception):
    """Base class for all StageOS errors."""


class ConfigError(StageError, ValueError):
    """Invalid construction arguments or slide configuration."""


class UnknownSlideError(ConfigError, LookupError):
    """Navigation to a slide name that is not registered."""


class NotLayoutableError(StageError, TypeError):
    """A container was asked to hold something that cannot be laid out."""


class NotABubbleError(StageError, TypeError):
    """A bubble queue was given something that is not a bubble."""


class CallbackError(StageError, TypeError):
    """A callback token was requested for a non-callable value."""


class ProtocolError(StageError):
    """The host sent a message the bridge cannot account for."""


class DuplicateCompletionError(StageError):
    """A tracked resource reported completion more than once."""
