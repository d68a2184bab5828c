"""
Recent-projects index.

A single JSON file holding a list of project summaries, used to list known
projects without opening their directories. Every mutation reads the whole
list, changes it and writes it back; there is no locking, so two processes
writing at the same time can lose an update.

The index is derived data. Failures to update it are logged and swallowed
so they never undo a successful project save.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from deckfs.core.backup import safe_write_json
from deckfs.core.config import get_paths
from deckfs.projects.models import ProjectCache, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def entry_to_dict(entry: ProjectCache) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": entry.id,
        "name": entry.name,
        "path": entry.path,
        "pageCount": entry.page_count,
        "updatedAt": format_timestamp(entry.updated_at),
    }
    if entry.description is not None:
        record["description"] = entry.description
    if entry.thumbnail is not None:
        record["thumbnail"] = entry.thumbnail
    return record


def entry_from_dict(record: Any) -> ProjectCache | None:
    """Parse one stored record; returns None when it is unusable."""
    if not isinstance(record, dict):
        return None
    if not all(isinstance(record.get(key), str) for key in ("id", "name", "path")):
        return None
    updated = parse_timestamp(record.get("updatedAt"))
    if updated is None:
        return None
    page_count = record.get("pageCount")
    description = record.get("description")
    thumbnail = record.get("thumbnail")
    return ProjectCache(
        id=record["id"],
        name=record["name"],
        path=record["path"],
        page_count=page_count if isinstance(page_count, int) and not isinstance(page_count, bool) else 0,
        updated_at=updated,
        description=description if isinstance(description, str) else None,
        thumbnail=thumbnail if isinstance(thumbnail, str) else None,
    )


class ProjectIndex:
    """Manages the recent-projects index file."""

    def __init__(self, index_path: Path | None = None):
        """Initialize index.

        Args:
            index_path: Path to the index file (uses default if not provided)
        """
        if index_path is None:
            index_path = get_paths().index_file
        self.index_path = Path(index_path)

    def list(self) -> list[ProjectCache]:
        """Return all entries in stored order.

        A missing or unreadable file yields an empty list.
        """
        if not self.index_path.exists():
            return []
        try:
            with open(self.index_path, encoding="utf-8") as f:
                records = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load project index %s: %s", self.index_path, e)
            return []

        if not isinstance(records, list):
            logger.warning("Ignoring project index %s: expected a list", self.index_path)
            return []

        entries = []
        for record in records:
            entry = entry_from_dict(record)
            if entry is None:
                logger.debug("Skipping malformed index record: %r", record)
                continue
            entries.append(entry)
        return entries

    def __len__(self) -> int:
        return len(self.list())

    def __contains__(self, project_id: str) -> bool:
        return self.get(project_id) is not None

    def get(self, project_id: str) -> ProjectCache | None:
        for entry in self.list():
            if entry.id == project_id:
                return entry
        return None

    def _write(self, entries: list[ProjectCache]) -> None:
        safe_write_json(
            self.index_path,
            [entry_to_dict(entry) for entry in entries],
            create_backup_first=False,
        )

    def _mutate(self, action: str, change: Callable[[list[ProjectCache]], list[ProjectCache]]) -> bool:
        """Read-modify-write the whole list; returns False if the write failed."""
        try:
            self._write(change(self.list()))
        except (OSError, ValueError) as e:
            logger.warning("Failed to %s in project index %s: %s", action, self.index_path, e)
            return False
        return True

    def upsert_by_path(self, entry: ProjectCache) -> bool:
        """Replace the entry with the same path, or append."""

        def change(entries: list[ProjectCache]) -> list[ProjectCache]:
            return _replace_or_append(entries, entry, lambda e: e.path == entry.path)

        return self._mutate("add project", change)

    def upsert_by_id(self, entry: ProjectCache) -> bool:
        """Replace the entry with the same id, or append."""

        def change(entries: list[ProjectCache]) -> list[ProjectCache]:
            return _replace_or_append(entries, entry, lambda e: e.id == entry.id)

        return self._mutate("update project", change)

    def remove_by_id(self, project_id: str) -> bool:
        return self._mutate(
            "remove project",
            lambda entries: [e for e in entries if e.id != project_id],
        )

    def clear(self) -> bool:
        """Remove the index file."""
        try:
            self.index_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to clear project index %s: %s", self.index_path, e)
            return False
        return True


def _replace_or_append(
    entries: list[ProjectCache],
    entry: ProjectCache,
    matches: Callable[[ProjectCache], bool],
) -> list[ProjectCache]:
    for index, existing in enumerate(entries):
        if matches(existing):
            entries[index] = entry
            return entries
    entries.append(entry)
    return entries
