"""Core utilities for deckfs."""

from deckfs.core.backup import create_backup, safe_write_json
from deckfs.core.config import get_home_dir, get_paths
from deckfs.core.errors import (
    CapabilityUnavailableError,
    CorruptProjectError,
    DeckError,
    DeckIOError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    UserCancelledError,
    ValidationFailedError,
)
from deckfs.core.fsaccess import DirectoryAccess, DirectoryHandle

__all__ = [
    # Backup
    "create_backup",
    "safe_write_json",
    # Config
    "get_home_dir",
    "get_paths",
    # Directory access
    "DirectoryAccess",
    "DirectoryHandle",
    # Errors
    "DeckError",
    "CapabilityUnavailableError",
    "UserCancelledError",
    "DeckIOError",
    "PermissionDeniedError",
    "NotFoundError",
    "CorruptProjectError",
    "ValidationFailedError",
    "StateError",
]
