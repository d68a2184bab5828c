"""
Backup and safe file writing utilities.

Provides atomic JSON writes with optional timestamped backups and rotation.
Used for project.json (with backups) and for the recent-projects index
(without backups, since it is regenerable).
"""

from __future__ import annotations

import contextlib
import json
import os
import re
import shutil
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from deckfs.core.config import DEFAULT_BACKUP_KEEP_COUNT, DEFAULT_BACKUP_KEEP_DAYS

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S_%f"
TIMESTAMP_PATTERN = re.compile(r"_(\d{8}_\d{6}_\d{6})\.")


def parse_backup_timestamp(filename: str) -> datetime | None:
    """Extract timestamp from backup filename.

    Args:
        filename: Backup filename like 'project_20251212_144234_000123.json'

    Returns:
        datetime if parseable, None otherwise
    """
    match = TIMESTAMP_PATTERN.search(filename)
    if match:
        try:
            return datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
        except ValueError:
            return None
    return None


def create_backup(file_path: Path, backup_dir: Path | None = None) -> Path:
    """Create a timestamped backup of a file.

    Args:
        file_path: Path to file to backup
        backup_dir: Directory to store backups (defaults to file_path.parent / '.backups')

    Returns:
        Path to created backup file

    Raises:
        FileNotFoundError: If file_path doesn't exist
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Cannot backup non-existent file: {file_path}")

    if backup_dir is None:
        backup_dir = file_path.parent / ".backups"

    backup_dir = Path(backup_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime(TIMESTAMP_FORMAT)
    backup_path = backup_dir / f"{file_path.stem}_{timestamp}{file_path.suffix}"

    shutil.copy2(file_path, backup_path)

    return backup_path


def cleanup_old_backups(
    backup_dir: Path,
    pattern: str,
    keep_last: int = DEFAULT_BACKUP_KEEP_COUNT,
    keep_days: int | None = None,
) -> list[Path]:
    """Remove old backup files based on count and/or age.

    Args:
        backup_dir: Directory containing backups
        pattern: Glob pattern to match backup files
        keep_last: Number of most recent backups to keep (regardless of age)
        keep_days: Remove backups older than this many days (None = no age limit)

    Returns:
        List of removed backup file paths

    Note:
        When both keep_last and keep_days are specified, a backup is kept if it
        satisfies EITHER condition (within count OR within age).
    """
    backup_dir = Path(backup_dir)
    if not backup_dir.exists():
        return []

    # Newest first; the timestamp in the name breaks mtime ties
    backups = sorted(
        backup_dir.glob(pattern),
        key=lambda p: (p.stat().st_mtime, p.name),
        reverse=True,
    )

    removed = []
    cutoff_time = None
    if keep_days is not None:
        cutoff_time = datetime.now() - timedelta(days=keep_days)

    for i, backup in enumerate(backups):
        if i < keep_last:
            continue

        if cutoff_time is None:
            backup.unlink()
            removed.append(backup)
            continue

        timestamp = parse_backup_timestamp(backup.name)
        if timestamp and timestamp < cutoff_time:
            backup.unlink()
            removed.append(backup)

    return removed


def safe_write_json(
    file_path: Path,
    data: Any,
    create_backup_first: bool = True,
    backup_dir: Path | None = None,
    indent: int = 2,
    ensure_ascii: bool = False,
    keep_backups: int = DEFAULT_BACKUP_KEEP_COUNT,
    keep_days: int | None = DEFAULT_BACKUP_KEEP_DAYS,
) -> Path | None:
    """Safely write JSON data to a file with atomic operation and optional backup.

    This function:
    1. Creates a backup of the existing file (if requested)
    2. Validates the data can be serialized to JSON
    3. Writes to a temporary file first
    4. Atomically replaces the original file

    Args:
        file_path: Path to JSON file to write
        data: Data to write
        create_backup_first: Create timestamped backup before writing
        backup_dir: Custom backup directory (defaults to file_path.parent / '.backups')
        indent: JSON indentation
        ensure_ascii: Whether to escape non-ASCII characters
        keep_backups: Number of most recent backups to always keep
        keep_days: Remove backups older than this (None = no age limit)

    Returns:
        Path to backup file if created, None otherwise

    Raises:
        ValueError: If data cannot be serialized to JSON
        OSError: If file operations fail
    """
    file_path = Path(file_path)
    backup_path = None

    if create_backup_first and file_path.exists():
        backup_path = create_backup(file_path, backup_dir)

        actual_backup_dir = backup_dir or (file_path.parent / ".backups")
        cleanup_old_backups(
            actual_backup_dir,
            f"{file_path.stem}_*{file_path.suffix}",
            keep_backups,
            keep_days,
        )

    try:
        json_str = json.dumps(data, indent=indent, ensure_ascii=ensure_ascii)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Cannot serialize data to JSON: {e}") from e

    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Temporary file in the same directory so the replace is atomic
    temp_fd, temp_path = tempfile.mkstemp(
        suffix=".json",
        prefix=f".{file_path.name}.",
        dir=file_path.parent,
        text=True,
    )

    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
            f.write(json_str)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())

        Path(temp_path).replace(file_path)

    except Exception as e:
        with contextlib.suppress(OSError):
            Path(temp_path).unlink()
        raise OSError(f"Failed to write {file_path}: {e}") from e

    return backup_path
