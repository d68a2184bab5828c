"""
Exception types for deckfs.

Every error raised by the storage layer derives from DeckError so callers
can catch the whole family at the service boundary. I/O related errors also
derive from OSError so existing ``except OSError`` handlers keep working.
"""

from __future__ import annotations


class DeckError(Exception):
    """Base class for all deckfs errors."""


class CapabilityUnavailableError(DeckError):
    """Directory access is not available on this platform/session."""


class UserCancelledError(DeckError):
    """The user dismissed an interactive prompt.

    Only raised by flows whose contract must return a value. Flows that can
    return ``None`` report cancellation that way instead.
    """


class DeckIOError(DeckError, OSError):
    """A file system operation failed."""


class PermissionDeniedError(DeckIOError):
    """Directory access was denied, revoked or has expired."""


class NotFoundError(DeckIOError):
    """A required file or directory does not exist."""


class CorruptProjectError(DeckError):
    """A project document is missing required data or cannot be parsed."""


class ValidationFailedError(DeckError):
    """An import document failed validation.

    Attributes:
        errors: Field-level messages, suitable for display as-is.
    """

    def __init__(self, errors: list[str], message: str | None = None):
        self.errors = list(errors)
        if message is None:
            message = "Invalid project file:\n" + "\n".join(self.errors)
        super().__init__(message)


class StateError(DeckError):
    """An operation was called in a state that does not allow it."""
