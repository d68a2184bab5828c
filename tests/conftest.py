"""Shared test fixtures for deckfs."""

import json

import pytest

from deckfs.core.fsaccess import DirectoryAccess
from deckfs.core.index import ProjectIndex
from deckfs.projects.service import ProjectService


class ScriptedPicker:
    """Directory picker that answers from a queue and records prompts."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = []

    def push(self, *answers):
        self.answers.extend(answers)

    def __call__(self, message, default):
        self.calls.append((message, default))
        if not self.answers:
            return None
        answer = self.answers.pop(0)
        return str(answer) if answer is not None else None


@pytest.fixture(autouse=True)
def deck_home(tmp_path, monkeypatch):
    """Point DECKFS_HOME at a temporary directory for every test."""
    home = tmp_path / "deckfs-home"
    monkeypatch.setenv("DECKFS_HOME", str(home))
    return home


@pytest.fixture
def workspace(tmp_path):
    """Directory in which tests create project folders."""
    path = tmp_path / "decks"
    path.mkdir()
    return path


@pytest.fixture
def picker():
    return ScriptedPicker()


@pytest.fixture
def access(picker):
    return DirectoryAccess(picker=picker)


@pytest.fixture
def index(tmp_path):
    return ProjectIndex(tmp_path / "index" / "recent_projects.json")


@pytest.fixture
def service(access, index):
    return ProjectService(access=access, index=index, backup_keep_count=0)


@pytest.fixture
def sample_document():
    """A valid flat project document, as produced by an export."""
    return {
        "id": "proj-1",
        "name": "Sample",
        "description": "A sample deck",
        "createdAt": "2024-01-01T10:00:00.000Z",
        "updatedAt": "2024-01-02T10:00:00.000Z",
        "config": {
            "autoSave": False,
            "autoSaveInterval": 10000,
            "defaultTransition": "slide",
            "showPageNumbers": True,
            "loopPresentation": True,
        },
        "theme": {"id": "dark", "name": "Dark", "colors": {"primary": "#000000"}},
        "currentPageId": "p2",
        "pages": [
            {
                "id": "p2",
                "name": "Second",
                "order": 1,
                "html": "<p>two</p>",
                "css": "p { color: red; }",
                "createdAt": "2024-01-01T10:00:00.000Z",
                "updatedAt": "2024-01-01T10:00:00.000Z",
            },
            {
                "id": "p1",
                "name": "First",
                "order": 0,
                "html": "<p>one</p>",
                "css": "",
                "js": "console.log(1);",
                "createdAt": "2024-01-01T10:00:00.000Z",
                "updatedAt": "2024-01-01T10:00:00.000Z",
            },
        ],
    }


@pytest.fixture
def sample_document_file(tmp_path, sample_document):
    path = tmp_path / "sample.json"
    path.write_text(json.dumps(sample_document, indent=2), encoding="utf-8")
    return path
