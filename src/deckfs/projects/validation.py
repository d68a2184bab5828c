"""
Validation and repair of raw project documents.

Two separate recovery policies are offered and never combined implicitly:

- validate() then reject: strict. Used for import files, the caller gets
  every field-level problem and nothing is changed.
- repair(): lenient. Always returns a Project, filling anything missing or
  malformed with defaults.

Callers decide which failure mode they want.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from deckfs.core.errors import DeckIOError, NotFoundError, ValidationFailedError
from deckfs.projects.codec import is_valid_page_id
from deckfs.projects.defaults import UNTITLED_PROJECT
from deckfs.projects.models import (
    Page,
    Project,
    ProjectConfig,
    RawDocument,
    Theme,
    generate_id,
    is_number,
    parse_timestamp,
    utcnow,
)

REQUIRED_PROJECT_FIELDS = ("id", "name", "createdAt", "updatedAt", "pages", "config", "theme")
REQUIRED_PAGE_FIELDS = ("id", "name", "order", "html", "css", "createdAt", "updatedAt")

PROJECT_FILE_EXTENSIONS = {".json"}


@dataclass
class ValidationResult:
    ok: bool
    errors: list[str] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        if not self.ok:
            raise ValidationFailedError(self.errors)


def _check_date(value: Any, label: str, errors: list[str]) -> None:
    if parse_timestamp(value) is None:
        errors.append(f"{label} must be a valid date")


def validate_page(page: Any, index: int) -> list[str]:
    """Return field-level errors for one page entry."""
    prefix = f"Page {index}"
    if not isinstance(page, dict):
        return [f"{prefix}: invalid page data"]

    errors = [
        f"{prefix}: missing required field {name}"
        for name in REQUIRED_PAGE_FIELDS
        if name not in page
    ]

    for name in ("id", "name", "html", "css"):
        if name in page and not isinstance(page[name], str):
            errors.append(f"{prefix}: {name} must be a string")
    if isinstance(page.get("id"), str) and not is_valid_page_id(page["id"]):
        errors.append(f"{prefix}: id must be non-empty and cannot contain . / or \\")
    if page.get("js") is not None and not isinstance(page["js"], str):
        errors.append(f"{prefix}: js must be a string")
    if "order" in page and not is_number(page["order"]):
        errors.append(f"{prefix}: order must be a finite number")
    for name in ("createdAt", "updatedAt"):
        if name in page:
            _check_date(page[name], f"{prefix}: {name}", errors)

    return errors


def validate(raw: RawDocument) -> ValidationResult:
    """Check a raw document against the project shape. Does not mutate it."""
    data = raw.data
    if not isinstance(data, dict):
        return ValidationResult(ok=False, errors=["Invalid project data: expected a JSON object"])

    errors = [
        f"Missing required field: {name}"
        for name in REQUIRED_PROJECT_FIELDS
        if name not in data
    ]

    if "id" in data and not isinstance(data["id"], str):
        errors.append("Project id must be a string")
    if "name" in data and not isinstance(data["name"], str):
        errors.append("Project name must be a string")
    if data.get("description") is not None and not isinstance(data["description"], str):
        errors.append("Project description must be a string")
    for name in ("createdAt", "updatedAt"):
        if name in data:
            _check_date(data[name], f"Project {name}", errors)
    for name in ("config", "theme"):
        if name in data and not isinstance(data[name], dict):
            errors.append(f"Project {name} must be an object")
    config = data.get("config")
    if isinstance(config, dict) and "autoSaveInterval" in config:
        if not is_number(config["autoSaveInterval"]):
            errors.append("Project config autoSaveInterval must be a finite number")

    if "pages" in data:
        pages = data["pages"]
        if not isinstance(pages, list):
            errors.append("Project pages must be a list")
        else:
            seen: set[str] = set()
            for index, page in enumerate(pages):
                errors.extend(validate_page(page, index))
                page_id = page.get("id") if isinstance(page, dict) else None
                if isinstance(page_id, str):
                    if page_id in seen:
                        errors.append(f"Page {index}: duplicate id {page_id}")
                    seen.add(page_id)

    return ValidationResult(ok=not errors, errors=errors)


def _text(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value else default


def _optional_text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def repair_page(page: Any, index: int, seen_ids: set[str]) -> Page:
    """Rebuild one page entry, filling defaults."""
    data = page if isinstance(page, dict) else {}
    page_id = data.get("id")
    if not is_valid_page_id(page_id) or page_id in seen_ids:
        page_id = generate_id()
    seen_ids.add(page_id)

    order = data.get("order")
    created = parse_timestamp(data.get("createdAt")) or utcnow()
    return Page(
        id=page_id,
        name=_text(data.get("name"), f"Page {index + 1}"),
        order=int(order) if is_number(order) else index,
        html=_text(data.get("html"), "<div></div>"),
        css=data["css"] if isinstance(data.get("css"), str) else "",
        js=_optional_text(data.get("js")) or None,
        thumbnail=_optional_text(data.get("thumbnail")),
        created_at=created,
        updated_at=parse_timestamp(data.get("updatedAt")) or utcnow(),
    )


def repair(raw: RawDocument) -> Project:
    """Best-effort reconstruction of a project. Never fails.

    The result is a transient project (no path); page order follows the
    recorded ``order`` values and is then normalized.
    """
    data = raw.data if isinstance(raw.data, dict) else {}

    pages_data = data.get("pages")
    if not isinstance(pages_data, list):
        pages_data = []
    seen_ids: set[str] = set()
    pages = [repair_page(page, index, seen_ids) for index, page in enumerate(pages_data)]
    pages.sort(key=lambda p: p.order)

    config = data.get("config")
    theme = data.get("theme")
    project = Project(
        id=_text(data.get("id"), "") or generate_id(),
        name=_text(data.get("name"), UNTITLED_PROJECT),
        description=_optional_text(data.get("description")),
        created_at=parse_timestamp(data.get("createdAt")) or utcnow(),
        updated_at=parse_timestamp(data.get("updatedAt")) or utcnow(),
        pages=pages,
        config=ProjectConfig.from_dict(config) if isinstance(config, dict) else ProjectConfig(),
        theme=Theme.from_dict(theme) if isinstance(theme, dict) else Theme(),
        path="",
    )
    project.normalize_order()

    current = _optional_text(data.get("currentPageId"))
    if current is not None and project.find_page(current) is not None:
        project.current_page_id = current
    elif project.pages:
        project.current_page_id = project.pages[0].id
    return project


def document_to_project(raw: RawDocument) -> Project:
    """Convert a document that passed validate() into a Project.

    Raises:
        ValidationFailedError: If the document does not validate.
    """
    validate(raw).raise_for_errors()
    data = raw.data

    pages = []
    for page in sorted(data["pages"], key=lambda p: p["order"]):
        pages.append(
            Page(
                id=page["id"],
                name=page["name"],
                order=int(page["order"]),
                html=page["html"],
                css=page["css"],
                js=page.get("js") or None,
                thumbnail=_optional_text(page.get("thumbnail")),
                created_at=parse_timestamp(page["createdAt"]),
                updated_at=parse_timestamp(page["updatedAt"]),
            )
        )

    project = Project(
        id=data["id"],
        name=data["name"],
        description=data.get("description"),
        created_at=parse_timestamp(data["createdAt"]),
        updated_at=parse_timestamp(data["updatedAt"]),
        pages=pages,
        config=ProjectConfig.from_dict(data["config"]),
        theme=Theme.from_dict(data["theme"]),
        path="",
    )
    current = _optional_text(data.get("currentPageId"))
    if current is not None and project.find_page(current) is not None:
        project.current_page_id = current
    return project


def is_valid_project_file(filename: str | Path) -> bool:
    """Whether a file name looks like an importable project document."""
    return Path(filename).suffix.lower() in PROJECT_FILE_EXTENSIONS


def read_raw_document(path: str | Path) -> RawDocument:
    """Read and parse a JSON file into a RawDocument.

    Raises:
        NotFoundError: The file does not exist.
        DeckIOError: The file cannot be read.
        ValidationFailedError: The file is not valid JSON.
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise NotFoundError(f"Project file not found: {path}") from e
    except OSError as e:
        raise DeckIOError(f"Cannot read project file {path}: {e}") from e

    try:
        return RawDocument(json.loads(content), source=str(path))
    except json.JSONDecodeError as e:
        raise ValidationFailedError([f"Invalid JSON: {e}"]) from e


def load_import_file(path: str | Path, strict: bool = True) -> Project:
    """Load a flat project document from disk.

    Args:
        path: JSON file to import
        strict: Reject invalid documents (True) or repair them (False)

    Returns:
        A transient project (``path`` is empty).
    """
    if not is_valid_project_file(path):
        raise ValidationFailedError([f"Not a project file (expected .json): {path}"])
    raw = read_raw_document(path)
    if strict:
        return document_to_project(raw)
    return repair(raw)
