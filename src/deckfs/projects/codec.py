"""
Project codec.

Converts between the in-memory Project and its directory encoding:

    <root>/project.json          metadata and page descriptors, no bodies
    <root>/pages/<id>.html       markup (required for a page to load)
    <root>/pages/<id>.css        style
    <root>/pages/<id>.js         script, omitted when the page has none

Encoding is pure: it returns the metadata document and the list of file
writes, and the caller performs the I/O in whatever order it wants.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from deckfs.core.errors import CorruptProjectError
from deckfs.projects.models import (
    Page,
    Project,
    ProjectConfig,
    RawDocument,
    Theme,
    format_timestamp,
    is_number,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

METADATA_FILE = "project.json"
PAGES_DIR = "pages"
GLOBAL_DIR = "global"
THUMBNAILS_DIR = "thumbnails"

# File extension -> Page attribute
BODY_EXTENSIONS = {"html": "html", "css": "css", "js": "js"}

REQUIRED_METADATA_FIELDS = ("id", "name")

# Page ids become file stems, so they cannot contain the extension dot or a separator
PAGE_ID_FORBIDDEN = frozenset("./\\")


@dataclass(frozen=True)
class FileWrite:
    """A file the caller has to write, relative to the project root."""

    path: str
    content: str


@dataclass
class EncodedProject:
    metadata: dict[str, Any]
    files: list[FileWrite]


def page_file_path(page_id: str, extension: str) -> str:
    return f"{PAGES_DIR}/{page_id}.{extension}"


def is_valid_page_id(page_id: object) -> bool:
    """Whether page_id can be used as the stem of a page file."""
    return isinstance(page_id, str) and bool(page_id) and not PAGE_ID_FORBIDDEN & set(page_id)


def encode_page_descriptor(page: Page) -> dict[str, Any]:
    return {
        "id": page.id,
        "name": page.name,
        "order": page.order,
        "thumbnail": page.thumbnail,
        "createdAt": format_timestamp(page.created_at),
        "updatedAt": format_timestamp(page.updated_at),
    }


def encode_metadata(project: Project) -> dict[str, Any]:
    """Build the project.json document (everything except page bodies)."""
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "createdAt": format_timestamp(project.created_at),
        "updatedAt": format_timestamp(project.updated_at),
        "config": project.config.to_dict(),
        "theme": project.theme.to_dict(),
        "currentPageId": project.current_page_id,
        "pages": [encode_page_descriptor(page) for page in project.pages],
    }


def encode_project(project: Project) -> EncodedProject:
    """Encode a project into its metadata document and page file writes."""
    files = []
    for page in project.pages:
        files.append(FileWrite(page_file_path(page.id, "html"), page.html))
        files.append(FileWrite(page_file_path(page.id, "css"), page.css))
        if page.js:
            files.append(FileWrite(page_file_path(page.id, "js"), page.js))
    return EncodedProject(metadata=encode_metadata(project), files=files)


def split_page_filename(filename: str) -> tuple[str, str]:
    """Split 'abc.html' into ('abc', 'html'); the id is everything before the first dot."""
    page_id, _, extension = filename.partition(".")
    return page_id, extension.lower()


def group_page_files(entries: Iterable[tuple[str, str]]) -> dict[str, dict[str, str]]:
    """Group (filename, content) pairs by page id.

    Files whose extension is not a body extension are ignored.
    """
    grouped: dict[str, dict[str, str]] = {}
    for filename, content in entries:
        page_id, extension = split_page_filename(filename)
        attribute = BODY_EXTENSIONS.get(extension)
        if not page_id or attribute is None:
            continue
        grouped.setdefault(page_id, {})[attribute] = content
    return grouped


def _descriptor_order(descriptor: dict[str, Any]) -> int | float:
    order = descriptor.get("order")
    if is_number(order):
        return order
    return 0


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def decode_pages(
    descriptors: Any,
    entries: Iterable[tuple[str, str]],
) -> list[Page]:
    """Rebuild pages from descriptors plus the contents of the pages directory.

    Descriptors are emitted in recorded ``order`` (stable for ties). A
    descriptor whose markup file is missing is dropped.
    """
    if not isinstance(descriptors, list):
        descriptors = []
    files = group_page_files(entries)

    valid = [d for d in descriptors if isinstance(d, dict) and isinstance(d.get("id"), str)]
    ordered = sorted(valid, key=_descriptor_order)

    pages = []
    seen: set[str] = set()
    for descriptor in ordered:
        page_id = descriptor["id"]
        bodies = files.get(page_id, {})
        if "html" not in bodies:
            logger.debug("Dropping page %s: no markup file", page_id)
            continue
        if page_id in seen:
            logger.debug("Dropping duplicate page descriptor %s", page_id)
            continue
        seen.add(page_id)

        created = parse_timestamp(descriptor.get("createdAt")) or utcnow()
        updated = parse_timestamp(descriptor.get("updatedAt")) or created
        name = descriptor.get("name")
        pages.append(
            Page(
                id=page_id,
                name=name if isinstance(name, str) else page_id,
                order=int(_descriptor_order(descriptor)),
                html=bodies["html"],
                css=bodies.get("css", ""),
                js=bodies.get("js"),
                thumbnail=_optional_str(descriptor.get("thumbnail")),
                created_at=created,
                updated_at=updated,
                html_path=page_file_path(page_id, "html"),
                css_path=page_file_path(page_id, "css"),
                js_path=page_file_path(page_id, "js"),
            )
        )
    return pages


def decode_project(
    metadata: RawDocument,
    entries: Iterable[tuple[str, str]],
    path: str,
) -> Project:
    """Rebuild a directory-backed project.

    Args:
        metadata: Parsed project.json
        entries: (filename, content) pairs from the pages directory
        path: Location of the project directory

    Raises:
        CorruptProjectError: project.json is not an object or lacks id/name.
    """
    data = metadata.data
    if not isinstance(data, dict):
        raise CorruptProjectError(f"{metadata.source}: project metadata must be a JSON object")
    missing = [f for f in REQUIRED_METADATA_FIELDS if not isinstance(data.get(f), str)]
    if missing:
        raise CorruptProjectError(
            f"{metadata.source}: missing required field(s): {', '.join(missing)}"
        )

    pages = decode_pages(data.get("pages"), entries)
    created = parse_timestamp(data.get("createdAt")) or utcnow()
    updated = parse_timestamp(data.get("updatedAt")) or created
    config = data.get("config")
    theme = data.get("theme")

    current_page_id = _optional_str(data.get("currentPageId"))
    if current_page_id is not None and not any(p.id == current_page_id for p in pages):
        current_page_id = None

    return Project(
        id=data["id"],
        name=data["name"],
        description=_optional_str(data.get("description")),
        created_at=created,
        updated_at=updated,
        pages=pages,
        config=ProjectConfig.from_dict(config) if isinstance(config, dict) else ProjectConfig(),
        theme=Theme.from_dict(theme) if isinstance(theme, dict) else Theme(),
        path=path,
        current_page_id=current_page_id,
    )


def project_to_document(project: Project) -> dict[str, Any]:
    """Build the flat import/export document (bodies inline, no path)."""
    document = encode_metadata(project)
    document["pages"] = [
        {
            **encode_page_descriptor(page),
            "html": page.html,
            "css": page.css,
            "js": page.js,
        }
        for page in project.pages
    ]
    return document
