"""
Directory access adapter.

Thin capability over the local file system: pick or open a directory,
create subdirectories, read/write files and enumerate entries. No project
logic lives here.

A DirectoryHandle is a session-scoped capability. It is never persisted;
after a restart (or after it is revoked) a new one has to be acquired,
which may mean asking the user again.
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
import sys
from collections.abc import Callable, Iterator
from pathlib import Path, PurePosixPath

from deckfs.core.errors import (
    CapabilityUnavailableError,
    DeckIOError,
    NotFoundError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)

# (message, suggested path) -> chosen path, or None when the user cancels
DirectoryPicker = Callable[[str, str | None], str | None]

UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')

FILE = "file"
DIRECTORY = "directory"


def sanitize_file_name(name: str) -> str:
    """Replace characters that are unsafe in file names with underscores."""
    return UNSAFE_FILENAME_CHARS.sub("_", name).strip()


@contextlib.contextmanager
def _translate_errors(action: str, path: Path) -> Iterator[None]:
    """Map OS errors to deckfs I/O errors."""
    try:
        yield
    except PermissionError as e:
        raise PermissionDeniedError(f"Permission denied: cannot {action} {path}") from e
    except FileNotFoundError as e:
        raise NotFoundError(f"Not found: cannot {action} {path}") from e
    except (IsADirectoryError, NotADirectoryError) as e:
        raise DeckIOError(f"Cannot {action} {path}: {e.strerror}") from e
    except OSError as e:
        if isinstance(e, DeckIOError):
            raise
        raise DeckIOError(f"Cannot {action} {path}: {e}") from e


class DirectoryHandle:
    """Capability to work inside one directory for the current session."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._revoked = False

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def revoked(self) -> bool:
        return self._revoked

    def revoke(self) -> None:
        """Invalidate the handle; further use raises PermissionDeniedError."""
        self._revoked = True

    def ensure_usable(self) -> None:
        if self._revoked:
            raise PermissionDeniedError(
                f"Access to {self.path} has been revoked; select the directory again"
            )

    def __repr__(self) -> str:
        state = ", revoked" if self._revoked else ""
        return f"DirectoryHandle({str(self.path)!r}{state})"


class DirectoryAccess:
    """File system operations on top of directory handles.

    Args:
        picker: Interactive directory picker. Defaults to a terminal prompt,
            which is only available when stdin is a TTY.
    """

    def __init__(self, picker: DirectoryPicker | None = None):
        self._picker = picker

    def is_supported(self) -> bool:
        """Whether interactive directory selection is possible."""
        if self._picker is not None:
            return True
        return sys.stdin is not None and sys.stdin.isatty()

    def check_directory_support(self) -> tuple[bool, str]:
        """Return (supported, human readable explanation)."""
        if self.is_supported():
            return True, "Directory access is available"
        return False, (
            "Directory access is not available: no interactive terminal and "
            "no directory picker configured"
        )

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def select_directory(
        self,
        message: str = "Project directory",
        default: str | None = None,
    ) -> DirectoryHandle | None:
        """Ask the user for a directory.

        Returns:
            A handle for the chosen directory, or None if the user cancelled.

        Raises:
            CapabilityUnavailableError: No picker is available.
            NotFoundError: The chosen path does not exist.
            PermissionDeniedError: The chosen directory is not writable.
        """
        if not self.is_supported():
            raise CapabilityUnavailableError(self.check_directory_support()[1])

        if self._picker is not None:
            answer = self._picker(message, default)
        else:
            from deckfs.core.prompts import prompt_directory

            answer = prompt_directory(message, default)

        if not answer:
            logger.debug("Directory selection cancelled")
            return None
        return self.open_directory(answer)

    def open_directory(self, path: str | Path) -> DirectoryHandle:
        """Acquire a handle for a known directory without prompting."""
        resolved = Path(path).expanduser().resolve()
        if not resolved.exists():
            raise NotFoundError(f"Directory does not exist: {resolved}")
        if not resolved.is_dir():
            raise NotFoundError(f"Not a directory: {resolved}")
        if not os.access(resolved, os.R_OK | os.W_OK | os.X_OK):
            raise PermissionDeniedError(f"No read/write access to {resolved}")
        return DirectoryHandle(resolved)

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    def create_subdirectory(
        self,
        parent: DirectoryHandle,
        name: str,
        create_if_missing: bool = True,
    ) -> DirectoryHandle:
        """Get (and optionally create) a direct subdirectory of parent."""
        parent.ensure_usable()
        target = parent.path / name
        if target.is_dir():
            return DirectoryHandle(target)
        if not create_if_missing:
            raise NotFoundError(f"Directory does not exist: {target}")
        with _translate_errors("create directory", target):
            target.mkdir(parents=False, exist_ok=True)
        return DirectoryHandle(target)

    def get_file(
        self,
        directory: DirectoryHandle,
        name: str,
        create_if_missing: bool = False,
    ) -> Path:
        """Get a reference to a file inside directory."""
        directory.ensure_usable()
        file_ref = directory.path / name
        if file_ref.is_file():
            return file_ref
        if not create_if_missing:
            raise NotFoundError(f"File does not exist: {file_ref}")
        with _translate_errors("create file", file_ref):
            file_ref.touch()
        return file_ref

    def write_file(self, file_ref: Path, content: str) -> None:
        with _translate_errors("write", file_ref):
            file_ref.write_text(content, encoding="utf-8")

    def read_file(self, file_ref: Path) -> str:
        with _translate_errors("read", file_ref):
            return file_ref.read_text(encoding="utf-8")

    def delete_file(self, file_ref: Path) -> None:
        with _translate_errors("delete", file_ref):
            file_ref.unlink(missing_ok=True)

    def list_entries(self, directory: DirectoryHandle) -> list[tuple[str, str]]:
        """List (name, kind) pairs; kind is "file" or "directory".

        The order is whatever the file system returns and carries no meaning.
        """
        directory.ensure_usable()
        entries = []
        with _translate_errors("list", directory.path):
            for child in directory.path.iterdir():
                entries.append((child.name, DIRECTORY if child.is_dir() else FILE))
        return entries

    # ------------------------------------------------------------------
    # Relative path helpers
    # ------------------------------------------------------------------

    def _resolve(self, handle: DirectoryHandle, relative: str) -> Path:
        handle.ensure_usable()
        parts = PurePosixPath(relative).parts
        if not parts or any(part in ("..", "") for part in parts) or parts[0] == "/":
            raise DeckIOError(f"Invalid path inside project directory: {relative!r}")
        return handle.path.joinpath(*parts)

    def create_directory(self, handle: DirectoryHandle, relative: str) -> DirectoryHandle:
        """Create a (possibly nested) directory below handle."""
        target = self._resolve(handle, relative)
        with _translate_errors("create directory", target):
            target.mkdir(parents=True, exist_ok=True)
        return DirectoryHandle(target)

    def read_relative(self, handle: DirectoryHandle, relative: str) -> str:
        """Read a file given by a POSIX path relative to handle."""
        return self.read_file(self._resolve(handle, relative))

    def write_relative(self, handle: DirectoryHandle, relative: str, content: str) -> Path:
        """Write a file relative to handle, creating parent directories."""
        target = self._resolve(handle, relative)
        with _translate_errors("create directory", target.parent):
            target.parent.mkdir(parents=True, exist_ok=True)
        self.write_file(target, content)
        return target

    def file_exists(self, handle: DirectoryHandle, relative: str) -> bool:
        if handle.revoked:
            return False
        try:
            return self._resolve(handle, relative).is_file()
        except DeckIOError:
            return False
