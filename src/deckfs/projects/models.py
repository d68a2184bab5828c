"""
Project data model.

A Project owns an ordered list of Pages. Display order is list order; the
``order`` attribute of each page is derived from it by normalize_order().
ProjectCache is the detached summary kept in the recent-projects index.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """Generate an opaque unique identifier."""
    return uuid.uuid4().hex


def is_number(value: Any) -> bool:
    """Whether value is a finite int or float (bools and NaN/Infinity excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime as ISO-8601 (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string, datetime or epoch milliseconds.

    Returns:
        An aware datetime, or None if value is missing or not date-like.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class RawDocument:
    """Untyped parsed JSON that has not been validated yet.

    Only validation/repair and the project codec look inside ``data``.
    """

    data: Any
    source: str = "<memory>"


@dataclass
class ProjectConfig:
    """Editor and playback settings for a project."""

    auto_save: bool = True
    auto_save_interval: int = 30000
    default_transition: str = "fade"
    show_page_numbers: bool = True
    loop_presentation: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "autoSave": self.auto_save,
            "autoSaveInterval": self.auto_save_interval,
            "defaultTransition": self.default_transition,
            "showPageNumbers": self.show_page_numbers,
            "loopPresentation": self.loop_presentation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectConfig:
        """Build a config, keeping defaults for missing or mistyped keys."""
        config = cls()
        if data.get("autoSave") in (True, False):
            config.auto_save = data["autoSave"]
        interval = data.get("autoSaveInterval")
        if is_number(interval):
            config.auto_save_interval = int(interval)
        if isinstance(data.get("defaultTransition"), str):
            config.default_transition = data["defaultTransition"]
        if data.get("showPageNumbers") in (True, False):
            config.show_page_numbers = data["showPageNumbers"]
        if data.get("loopPresentation") in (True, False):
            config.loop_presentation = data["loopPresentation"]
        return config


@dataclass
class ThemeColors:
    primary: str = "#409eff"
    secondary: str = "#67c23a"
    background: str = "#ffffff"
    text: str = "#303133"
    accent: str = "#e6a23c"


@dataclass
class ThemeFonts:
    heading: str = "Arial, sans-serif"
    body: str = "Arial, sans-serif"
    code: str = "Consolas, monospace"


@dataclass
class ThemeSpacing:
    small: int = 8
    medium: int = 16
    large: int = 24


def _merge_fields(target: Any, data: Any) -> None:
    """Copy values of matching type from data onto a dataclass instance."""
    if not isinstance(data, dict):
        return
    for name, current in vars(target).items():
        value = data.get(name)
        if value is None or isinstance(value, bool):
            continue
        if isinstance(current, str) and isinstance(value, str):
            setattr(target, name, value)
        elif isinstance(current, int) and is_number(value):
            setattr(target, name, int(value))


@dataclass
class Theme:
    """Color palette, font triad and spacing scale."""

    id: str = "default"
    name: str = "Default Theme"
    colors: ThemeColors = field(default_factory=ThemeColors)
    fonts: ThemeFonts = field(default_factory=ThemeFonts)
    spacing: ThemeSpacing = field(default_factory=ThemeSpacing)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "colors": dict(vars(self.colors)),
            "fonts": dict(vars(self.fonts)),
            "spacing": dict(vars(self.spacing)),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Theme:
        """Build a theme, keeping defaults for missing or mistyped keys."""
        theme = cls()
        if isinstance(data.get("id"), str):
            theme.id = data["id"]
        if isinstance(data.get("name"), str):
            theme.name = data["name"]
        _merge_fields(theme.colors, data.get("colors"))
        _merge_fields(theme.fonts, data.get("fonts"))
        _merge_fields(theme.spacing, data.get("spacing"))
        return theme


@dataclass
class Page:
    """One slide: markup, style and optional script bodies."""

    id: str
    name: str
    order: int
    html: str
    css: str
    js: str | None = None
    thumbnail: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    # Only set for directory-backed projects
    html_path: str | None = None
    css_path: str | None = None
    js_path: str | None = None


@dataclass
class Project:
    """Root aggregate: a named deck with ordered pages."""

    id: str
    name: str
    description: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    pages: list[Page] = field(default_factory=list)
    config: ProjectConfig = field(default_factory=ProjectConfig)
    theme: Theme = field(default_factory=Theme)
    path: str = ""
    current_page_id: str | None = None

    @property
    def is_directory_backed(self) -> bool:
        return bool(self.path)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def current_page(self) -> Page | None:
        if self.current_page_id is None:
            return None
        return self.find_page(self.current_page_id)

    def find_page(self, page_id: str) -> Page | None:
        for page in self.pages:
            if page.id == page_id:
                return page
        return None

    def page_index(self, page_id: str) -> int:
        """Return the list index of a page, or -1."""
        for index, page in enumerate(self.pages):
            if page.id == page_id:
                return index
        return -1

    def normalize_order(self) -> None:
        """Re-derive every page's order from its list position."""
        for index, page in enumerate(self.pages):
            page.order = index

    def touch(self) -> None:
        self.updated_at = utcnow()


@dataclass
class ProjectCache:
    """Summary of a project as stored in the recent-projects index."""

    id: str
    name: str
    path: str
    page_count: int
    updated_at: datetime
    description: str | None = None
    thumbnail: str | None = None

    @classmethod
    def from_project(cls, project: Project) -> ProjectCache:
        thumbnail = project.pages[0].thumbnail if project.pages else None
        return cls(
            id=project.id,
            name=project.name,
            description=project.description,
            path=project.path,
            page_count=len(project.pages),
            updated_at=project.updated_at,
            thumbnail=thumbnail,
        )
