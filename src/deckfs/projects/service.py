"""
Project service.

Orchestrates directory access, the project codec, validation and the
recent-projects index. Owns the currently open project together with the
``loading`` flag and ``last_error`` message exposed to callers.

Directory handles are held only for the lifetime of the service instance.
When none is held (or it was revoked), reacquire() is the only way to get
a usable one back.
"""

from __future__ import annotations

import contextlib
import json
import logging
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from deckfs.core.backup import safe_write_json
from deckfs.core.config import DEFAULT_BACKUP_KEEP_COUNT, DEFAULT_BACKUP_KEEP_DAYS
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
from deckfs.core.fsaccess import FILE, DirectoryAccess, DirectoryHandle, sanitize_file_name
from deckfs.core.index import ProjectIndex
from deckfs.projects.codec import (
    BODY_EXTENSIONS,
    GLOBAL_DIR,
    METADATA_FILE,
    PAGES_DIR,
    THUMBNAILS_DIR,
    decode_project,
    encode_project,
    page_file_path,
    project_to_document,
    split_page_filename,
)
from deckfs.projects.defaults import GLOBAL_FILES, make_page, new_project
from deckfs.projects.models import (
    Page,
    Project,
    ProjectCache,
    RawDocument,
    utcnow,
)
from deckfs.projects.validation import load_import_file

logger = logging.getLogger(__name__)

BACKUP_DIR = ".backups"

EDITABLE_PAGE_FIELDS = {"name", "html", "css", "js", "thumbnail"}
EDITABLE_PROJECT_FIELDS = {"name", "description"}
CONFIG_FIELDS = {
    "auto_save",
    "auto_save_interval",
    "default_transition",
    "show_page_numbers",
    "loop_presentation",
}
THEME_GROUPS = ("colors", "fonts", "spacing")


def _assign_page_paths(page: Page) -> None:
    page.html_path = page_file_path(page.id, "html")
    page.css_path = page_file_path(page.id, "css")
    page.js_path = page_file_path(page.id, "js")


def _check_fields(kind: str, changes: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValueError(f"Cannot update {kind} field(s): {', '.join(unknown)}")


class ProjectService:
    """Use-case layer for directory-backed and in-memory projects.

    Args:
        access: Directory access adapter (a terminal picker by default)
        index: Recent-projects index (default location by default)
        default_parent: Suggested parent directory when creating projects
        backup_keep_count: project.json backups kept per project, 0 disables
        backup_keep_days: Age limit for project.json backups
    """

    def __init__(
        self,
        access: DirectoryAccess | None = None,
        index: ProjectIndex | None = None,
        default_parent: str | None = None,
        backup_keep_count: int = DEFAULT_BACKUP_KEEP_COUNT,
        backup_keep_days: int | None = DEFAULT_BACKUP_KEEP_DAYS,
    ):
        self.access = access if access is not None else DirectoryAccess()
        self.index = index if index is not None else ProjectIndex()
        self.default_parent = default_parent
        self.backup_keep_count = backup_keep_count
        self.backup_keep_days = backup_keep_days

        self.current_project: Project | None = None
        self.loading = False
        self.last_error: str | None = None
        self.handle: DirectoryHandle | None = None
        self.projects_cache: list[ProjectCache] = []
        self._save_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def has_current_project(self) -> bool:
        return self.current_project is not None

    @property
    def current_page(self) -> Page | None:
        if self.current_project is None:
            return None
        return self.current_project.current_page

    @property
    def total_pages(self) -> int:
        return len(self.current_project.pages) if self.current_project else 0

    @property
    def cached_projects_count(self) -> int:
        return len(self.projects_cache)

    def check_directory_support(self) -> tuple[bool, str]:
        return self.access.check_directory_support()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _operation(self) -> Iterator[None]:
        """Track loading state and record failures in last_error."""
        self.loading = True
        try:
            yield
        except UserCancelledError:
            raise
        except (DeckError, OSError, ValueError) as e:
            self.last_error = str(e)
            raise
        finally:
            self.loading = False

    def _succeeded(self) -> None:
        self.last_error = None

    def refresh_cache(self) -> list[ProjectCache]:
        self.projects_cache = self.index.list()
        return self.projects_cache

    def _index_by_path(self, project: Project) -> None:
        self.index.upsert_by_path(ProjectCache.from_project(project))
        self.refresh_cache()

    def _index_by_id(self, project: Project) -> None:
        self.index.upsert_by_id(ProjectCache.from_project(project))
        self.refresh_cache()

    def _holds(self, path: str) -> bool:
        if self.handle is None or self.handle.revoked:
            return False
        return str(self.handle.path) == str(Path(path).expanduser().resolve())

    def _handle_for(self, path: str) -> DirectoryHandle:
        if self._holds(path):
            assert self.handle is not None
            return self.handle
        return self.reacquire(path)

    def _create_layout(self, root: DirectoryHandle) -> None:
        """Create pages/, global/ and thumbnails/ plus the default global files."""
        self.access.create_subdirectory(root, PAGES_DIR)
        global_dir = self.access.create_subdirectory(root, GLOBAL_DIR)
        self.access.create_subdirectory(root, THUMBNAILS_DIR)
        for name, content in GLOBAL_FILES.items():
            file_ref = self.access.get_file(global_dir, name, create_if_missing=True)
            if not self.access.read_file(file_ref):
                self.access.write_file(file_ref, content)

    def _new_project_directory(self, parent_location: str | None, name: str) -> DirectoryHandle:
        folder_name = sanitize_file_name(name)
        if not folder_name.strip("."):
            raise ValidationFailedError([f"Invalid project name: {name!r}"])

        if parent_location is not None:
            parent = self.access.open_directory(parent_location)
        else:
            parent = self.access.select_directory(
                "Parent directory for the new project",
                default=self.default_parent,
            )
            if parent is None:
                raise UserCancelledError("Directory selection was cancelled")

        if self.access.file_exists(parent, f"{folder_name}/{METADATA_FILE}"):
            raise DeckIOError(f"A project already exists at {parent.path / folder_name}")

        project_dir = self.access.create_subdirectory(parent, folder_name)
        self._create_layout(project_dir)
        return project_dir

    def _write_project(self, root: DirectoryHandle, project: Project) -> None:
        """Write page bodies first, then project.json, then prune stale page files."""
        encoded = encode_project(project)
        self.access.create_subdirectory(root, PAGES_DIR)
        for file_write in encoded.files:
            self.access.write_relative(root, file_write.path, file_write.content)

        keep = self.backup_keep_count > 0
        try:
            safe_write_json(
                root.path / METADATA_FILE,
                encoded.metadata,
                create_backup_first=keep,
                backup_dir=root.path / BACKUP_DIR,
                keep_backups=self.backup_keep_count,
                keep_days=self.backup_keep_days,
            )
        except PermissionError as e:
            raise PermissionDeniedError(f"Permission denied writing {METADATA_FILE}: {e}") from e
        except OSError as e:
            if isinstance(e, DeckIOError):
                raise
            raise DeckIOError(str(e)) from e

        for page in project.pages:
            _assign_page_paths(page)
        self._prune_page_files(root, project)

    def _prune_page_files(self, root: DirectoryHandle, project: Project) -> None:
        """Remove body files that no longer belong to any page."""
        pages_dir = self.access.create_subdirectory(root, PAGES_DIR, create_if_missing=False)
        scripts = {page.id for page in project.pages if page.js}
        known = {page.id for page in project.pages}
        for name, kind in self.access.list_entries(pages_dir):
            page_id, extension = split_page_filename(name)
            if kind != FILE or extension not in BODY_EXTENSIONS:
                continue
            stale = page_id not in known or (extension == "js" and page_id not in scripts)
            if stale:
                logger.debug("Removing stale page file %s", name)
                self.access.delete_file(pages_dir.path / name)

    def _read_project(self, root: DirectoryHandle) -> Project:
        try:
            meta_ref = self.access.get_file(root, METADATA_FILE)
        except NotFoundError as e:
            raise NotFoundError(f"Not a project directory ({METADATA_FILE} missing): {root.path}") from e

        try:
            data = json.loads(self.access.read_file(meta_ref))
        except json.JSONDecodeError as e:
            raise CorruptProjectError(f"{meta_ref}: invalid JSON: {e}") from e

        entries = []
        try:
            pages_dir = self.access.create_subdirectory(root, PAGES_DIR, create_if_missing=False)
        except NotFoundError:
            logger.warning("Project %s has no %s directory", root.path, PAGES_DIR)
        else:
            for name, kind in self.access.list_entries(pages_dir):
                if kind != FILE or split_page_filename(name)[1] not in BODY_EXTENSIONS:
                    continue
                entries.append((name, self.access.read_file(pages_dir.path / name)))

        return decode_project(RawDocument(data, source=str(meta_ref)), entries, str(root.path))

    # ------------------------------------------------------------------
    # Directory-backed projects
    # ------------------------------------------------------------------

    def initialize_project_storage(self) -> list[ProjectCache]:
        """Load the recent-projects listing."""
        return self.refresh_cache()

    def reacquire(self, hint: str | None = None) -> DirectoryHandle:
        """Get a usable directory handle again.

        Tries the known location first and falls back to asking the user.

        Raises:
            PermissionDeniedError: The user declined to select a directory.
        """
        if hint:
            try:
                self.handle = self.access.open_directory(hint)
                return self.handle
            except (NotFoundError, PermissionDeniedError) as e:
                logger.debug("Cannot reopen %s directly: %s", hint, e)

        handle = self.access.select_directory("Select the project directory", default=hint)
        if handle is None:
            raise PermissionDeniedError("Directory access is required to load the project")
        self.handle = handle
        return handle

    def create_directory_backed_project(
        self,
        name: str,
        description: str | None = None,
        parent_location: str | None = None,
    ) -> Project:
        """Create a project directory, write the initial project and open it.

        Without parent_location the user is asked for a parent directory.
        The current project is left unchanged on failure.
        """
        with self._operation():
            if parent_location is None and not self.access.is_supported():
                raise CapabilityUnavailableError(self.access.check_directory_support()[1])

            project_dir = self._new_project_directory(parent_location, name)
            project = new_project(name, description, path=str(project_dir.path))
            self._write_project(project_dir, project)

            self.handle = project_dir
            self._index_by_path(project)
            self.current_project = project
            self._succeeded()
            logger.info("Created project %s at %s", project.name, project.path)
            return project

    def open_directory_backed_project(self) -> Project | None:
        """Ask for a project directory and open it.

        Returns:
            The project, or None if the user cancelled (nothing else changes).
        """
        with self._operation():
            handle = self.access.select_directory("Project directory")
            if handle is None:
                return None

            project = self._read_project(handle)
            self.handle = handle
            self._index_by_path(project)
            self.current_project = project
            self._succeeded()
            return project

    def load_from_index_entry(self, entry: ProjectCache) -> Project:
        """Open the project an index entry points at."""
        with self._operation():
            handle = self._handle_for(entry.path)
            project = self._read_project(handle)
            self._index_by_id(project)
            self.current_project = project
            self._succeeded()
            return project

    def save_current_project(self) -> None:
        """Write the open project back to its directory.

        Raises:
            StateError: No project is open, it has no directory, or a save
                is already running.
        """
        project = self.current_project
        if project is None:
            raise StateError("No project is open")
        if not project.is_directory_backed:
            raise StateError("Project has no directory; promote it before saving")
        if not self._save_lock.acquire(blocking=False):
            raise StateError("Save already in progress")

        try:
            with self._operation():
                handle = self._handle_for(project.path)
                project.touch()
                self._write_project(handle, project)
                self._index_by_id(project)
                self._succeeded()
        finally:
            self._save_lock.release()

    def promote_current_project(self, parent_location: str | None = None) -> Project:
        """Give a transient (or imported) project its own directory and save it."""
        project = self.current_project
        if project is None:
            raise StateError("No project is open")
        if project.is_directory_backed:
            raise StateError(f"Project is already stored at {project.path}")

        with self._operation():
            project_dir = self._new_project_directory(parent_location, project.name)
            project.path = str(project_dir.path)
            try:
                project.touch()
                self._write_project(project_dir, project)
            except Exception:
                project.path = ""
                raise

            self.handle = project_dir
            self._index_by_path(project)
            self._succeeded()
            return project

    def remove_from_index(self, project_id: str) -> None:
        """Forget a project in the recent list. Its directory is not touched."""
        self.index.remove_by_id(project_id)
        self.refresh_cache()
        if self.current_project is not None and self.current_project.id == project_id:
            self.close_project()

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def import_project_file(self, path: str | Path, strict: bool = True) -> Project:
        """Open a flat JSON project document as a transient project.

        With strict=True an invalid document raises ValidationFailedError;
        with strict=False it is repaired instead.
        """
        with self._operation():
            project = load_import_file(path, strict=strict)
            self.current_project = project
            self._succeeded()
            return project

    def export_project_file(self, path: str | Path, project: Project | None = None) -> Path:
        """Write a project as a flat JSON document."""
        project = project or self.current_project
        if project is None:
            raise StateError("No project is open")
        with self._operation():
            target = Path(path)
            safe_write_json(target, project_to_document(project), create_backup_first=False)
            self._succeeded()
            return target

    # ------------------------------------------------------------------
    # In-memory projects
    # ------------------------------------------------------------------

    def create_transient_project(self, name: str, description: str | None = None) -> Project:
        project = new_project(name, description)
        self.current_project = project
        return project

    def open_project(self, project: Project) -> None:
        self.current_project = project
        self.last_error = None

    def close_project(self) -> None:
        self.current_project = None

    def delete_project(self, project_id: str) -> None:
        """Close the project if it is the open one. Nothing is removed from disk."""
        if self.current_project is not None and self.current_project.id == project_id:
            self.current_project = None

    # ------------------------------------------------------------------
    # Mutators on the open project
    # ------------------------------------------------------------------

    def update_project(self, **changes: Any) -> None:
        """Update name/description; refreshes the index entry of stored projects."""
        project = self.current_project
        if project is None:
            return
        _check_fields("project", changes, EDITABLE_PROJECT_FIELDS)
        for key, value in changes.items():
            setattr(project, key, value)
        project.touch()
        if project.is_directory_backed:
            self._index_by_id(project)

    def add_page(self, name: str) -> Page:
        project = self.current_project
        if project is None:
            raise StateError("No project is open")

        page = make_page(name, len(project.pages))
        if project.is_directory_backed:
            _assign_page_paths(page)
        project.pages.append(page)
        project.normalize_order()
        project.touch()
        return page

    def update_page(self, page_id: str, **changes: Any) -> None:
        project = self.current_project
        if project is None:
            return
        _check_fields("page", changes, EDITABLE_PAGE_FIELDS)
        page = project.find_page(page_id)
        if page is None:
            return
        for key, value in changes.items():
            setattr(page, key, value)
        page.updated_at = utcnow()
        project.touch()

    def delete_page(self, page_id: str) -> None:
        project = self.current_project
        if project is None:
            return
        index = project.page_index(page_id)
        if index == -1:
            return

        project.pages.pop(index)
        project.normalize_order()
        if project.current_page_id == page_id:
            if project.pages:
                project.current_page_id = project.pages[min(index, len(project.pages) - 1)].id
            else:
                project.current_page_id = None
        project.touch()

    def reorder_pages(self, from_index: int, to_index: int) -> None:
        """Move the page at from_index to to_index. Out-of-range moves are ignored."""
        project = self.current_project
        if project is None:
            return
        count = len(project.pages)
        if not (0 <= from_index < count and 0 <= to_index < count):
            return

        page = project.pages.pop(from_index)
        project.pages.insert(to_index, page)
        project.normalize_order()
        project.touch()
        if project.is_directory_backed:
            self._index_by_id(project)

    def set_current_page(self, page_id: str) -> None:
        project = self.current_project
        if project is None or project.find_page(page_id) is None:
            return
        project.current_page_id = page_id
        project.touch()

    def update_config(self, **changes: Any) -> None:
        project = self.current_project
        if project is None:
            return
        _check_fields("config", changes, CONFIG_FIELDS)
        for key, value in changes.items():
            setattr(project.config, key, value)
        project.touch()

    def update_theme(self, **changes: Any) -> None:
        """Update theme id/name, or merge dicts into colors/fonts/spacing."""
        project = self.current_project
        if project is None:
            return
        _check_fields("theme", changes, {"id", "name", *THEME_GROUPS})
        theme = project.theme
        for key, value in changes.items():
            if key in THEME_GROUPS and isinstance(value, dict):
                group = getattr(theme, key)
                _check_fields(f"theme {key}", value, set(vars(group)))
                for name, item in value.items():
                    setattr(group, name, item)
            else:
                setattr(theme, key, value)
        project.touch()
