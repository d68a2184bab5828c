"""
Configuration and path management.

Provides the deckfs home directory and the standard paths below it.
The home directory holds the settings file and the recent-projects index.

Resolution order for the home directory:
  1. DECKFS_HOME environment variable (highest priority)
  2. $XDG_CONFIG_HOME/deckfs
  3. ~/.config/deckfs
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

# Defaults for settings read from config.yaml
DEFAULT_BACKUP_KEEP_COUNT = 5
DEFAULT_BACKUP_KEEP_DAYS = 30


@dataclass(frozen=True)
class DeckPaths:
    """Standard paths for deckfs data."""

    home: Path
    config_file: Path
    cache_dir: Path
    index_file: Path


def get_home_dir() -> Path:
    """Return the deckfs home directory (may not exist yet).

    Returns:
        Path to the home directory.
    """
    env_home = os.environ.get("DECKFS_HOME")
    if env_home:
        return Path(env_home).expanduser()

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        base = Path(xdg_config_home)
    else:
        base = Path.home() / ".config"
    return base / "deckfs"


def read_config_file(config_path: Path) -> dict[str, Any]:
    """Load a settings file (supports YAML and JSON).

    Returns:
        Configuration dict, or empty dict if file is missing or invalid.
    """
    if not config_path.is_file():
        return {}
    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError:
        return {}
    if not content.strip():
        return {}

    try:
        # Detect format: YAML files typically don't start with '{'
        if content.strip().startswith("{"):
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (ValueError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def get_paths(home: Path | None = None) -> DeckPaths:
    """Get all standard paths.

    The index location can be moved with the ``index.path`` setting.

    Args:
        home: Home directory (resolved from the environment if not provided)

    Returns:
        DeckPaths dataclass with all paths
    """
    if home is None:
        home = get_home_dir()
    home = Path(home)
    config_file = home / "config.yaml"
    cache_dir = home / "cache"

    index_file = cache_dir / "recent_projects.json"
    override = read_config_file(config_file).get("index", {})
    if isinstance(override, dict) and override.get("path"):
        index_file = Path(str(override["path"])).expanduser()

    return DeckPaths(
        home=home,
        config_file=config_file,
        cache_dir=cache_dir,
        index_file=index_file,
    )
