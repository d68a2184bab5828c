"""Tests for deckfs.projects.service module."""

import io
import json
import threading

import pytest

from deckfs.core.errors import (
    CapabilityUnavailableError,
    CorruptProjectError,
    DeckIOError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    UserCancelledError,
    ValidationFailedError,
)
from deckfs.core.fsaccess import DirectoryAccess
from deckfs.core.index import ProjectIndex
from deckfs.projects.models import Project, ProjectCache
from deckfs.projects.service import ProjectService


@pytest.fixture
def demo(service, workspace):
    """A freshly created directory-backed project named Demo."""
    return service.create_directory_backed_project("Demo", "A demo deck", str(workspace))


def fresh_service(index, access=None):
    """A service for a new session, sharing the index file."""
    return ProjectService(
        access=access or DirectoryAccess(picker=lambda message, default: None),
        index=ProjectIndex(index.index_path),
        backup_keep_count=0,
    )


class TestCreateDirectoryBackedProject:

    def test_creates_layout(self, demo, workspace):
        root = workspace.resolve() / "Demo"

        assert demo.path == str(root)
        assert (root / "project.json").is_file()
        assert (root / "pages").is_dir()
        assert (root / "thumbnails").is_dir()
        assert (root / "global" / "styles.css").read_text().startswith("/* Global styles */")
        assert (root / "global" / "scripts.js").is_file()

        title = demo.pages[0]
        assert (root / "pages" / f"{title.id}.html").read_text() == title.html
        assert (root / "pages" / f"{title.id}.css").read_text() == title.css
        assert (root / "pages" / f"{title.id}.js").read_text() == title.js

    def test_project_json_has_no_bodies(self, demo, workspace):
        data = json.loads((workspace / "Demo" / "project.json").read_text())

        assert data["id"] == demo.id
        assert data["description"] == "A demo deck"
        assert "html" not in data["pages"][0]
        assert data["currentPageId"] == demo.pages[0].id

    def test_sets_state_and_index(self, service, demo, index):
        assert service.current_project is demo
        assert service.has_current_project
        assert service.current_page is demo.pages[0]
        assert service.total_pages == 1
        assert service.loading is False
        assert service.last_error is None

        entries = index.list()
        assert [(e.id, e.path, e.page_count) for e in entries] == [(demo.id, demo.path, 1)]
        assert service.cached_projects_count == 1

    def test_page_paths_are_assigned(self, demo):
        page = demo.pages[0]

        assert page.html_path == f"pages/{page.id}.html"
        assert page.js_path == f"pages/{page.id}.js"

    def test_prompts_for_parent(self, service, picker, workspace):
        service.default_parent = str(workspace)
        picker.push(workspace)

        project = service.create_directory_backed_project("Prompted")

        assert project.path == str(workspace.resolve() / "Prompted")
        assert picker.calls[0][1] == str(workspace)

    def test_cancel_raises_without_error_state(self, service, picker):
        picker.push(None)
        service.last_error = "earlier"

        with pytest.raises(UserCancelledError):
            service.create_directory_backed_project("Nope")

        assert service.last_error == "earlier"
        assert service.current_project is None

    def test_sanitizes_folder_name(self, service, workspace):
        project = service.create_directory_backed_project("Q1: Plan/Review", parent_location=str(workspace))

        assert project.name == "Q1: Plan/Review"
        assert (workspace / "Q1_ Plan_Review" / "project.json").is_file()

    @pytest.mark.parametrize("name", ["..", "   ", "."])
    def test_rejects_unusable_names(self, service, workspace, name):
        with pytest.raises(ValidationFailedError):
            service.create_directory_backed_project(name, parent_location=str(workspace))

    def test_existing_project_fails_and_keeps_current(self, service, demo, workspace):
        with pytest.raises(DeckIOError):
            service.create_directory_backed_project("Demo", parent_location=str(workspace))

        assert service.current_project is demo
        assert "already exists" in service.last_error

    def test_missing_parent(self, service, tmp_path):
        with pytest.raises(NotFoundError):
            service.create_directory_backed_project("Demo", parent_location=str(tmp_path / "missing"))

        assert service.current_project is None
        assert service.last_error

    def test_capability_unavailable(self, index, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(""))
        service = ProjectService(access=DirectoryAccess(), index=index)

        assert service.check_directory_support()[0] is False
        with pytest.raises(CapabilityUnavailableError):
            service.create_directory_backed_project("Demo")

        assert service.current_project is None
        assert service.last_error

    def test_explicit_parent_needs_no_picker(self, index, workspace, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(""))
        service = ProjectService(access=DirectoryAccess(), index=index, backup_keep_count=0)

        project = service.create_directory_backed_project("Demo", parent_location=str(workspace))

        assert project.is_directory_backed


class TestOpenDirectoryBackedProject:

    def test_open(self, service, demo, picker, index):
        other = ProjectService(access=service.access, index=index)
        picker.push(demo.path)

        project = other.open_directory_backed_project()

        assert project.id == demo.id
        assert other.current_project is project
        assert project.path == demo.path

    def test_reopen_does_not_duplicate_index_entry(self, service, demo, picker, index):
        picker.push(demo.path)

        service.open_directory_backed_project()

        assert len(index) == 1

    def test_cancel_changes_nothing(self, service, demo, picker):
        service.last_error = "earlier"
        picker.push(None)

        assert service.open_directory_backed_project() is None

        assert service.last_error == "earlier"
        assert service.current_project is demo
        assert service.loading is False

    def test_not_a_project_directory(self, service, picker, workspace):
        picker.push(workspace)

        with pytest.raises(NotFoundError):
            service.open_directory_backed_project()

        assert "project.json" in service.last_error
        assert service.current_project is None

    def test_corrupt_metadata(self, service, picker, workspace):
        (workspace / "project.json").write_text("{broken")
        picker.push(workspace)

        with pytest.raises(CorruptProjectError):
            service.open_directory_backed_project()

        assert service.last_error

    def test_page_without_markup_is_dropped(self, service, demo, picker):
        second = service.add_page("Second")
        third = service.add_page("Third")
        service.save_current_project()
        (service.handle.path / "pages" / f"{second.id}.html").unlink()
        picker.push(demo.path)

        project = service.open_directory_backed_project()

        assert [p.id for p in project.pages] == [demo.pages[0].id, third.id]

    def test_missing_pages_directory(self, service, picker, workspace, caplog):
        root = workspace / "bare"
        root.mkdir()
        (root / "project.json").write_text(json.dumps({"id": "b", "name": "Bare", "pages": []}))
        picker.push(root)

        project = service.open_directory_backed_project()

        assert project.pages == []
        assert "has no pages directory" in caplog.text


class TestSaveAndReload:

    def test_demo_overview_scenario(self, service, demo, index):
        service.add_page("Overview")
        saved = [(p.name, p.html, p.css) for p in demo.pages]
        service.save_current_project()

        other = fresh_service(index)
        reloaded = other.load_from_index_entry(index.get(demo.id))

        assert [p.name for p in reloaded.pages] == ["Demo's title page", "Overview"]
        assert [(p.name, p.html, p.css) for p in reloaded.pages] == saved

    def test_round_trip_preserves_pages(self, service, demo, index):
        for name in ("B", "C", "D"):
            service.add_page(name)
        service.reorder_pages(3, 0)
        service.update_page(demo.pages[2].id, js="console.log('c');", thumbnail="thumbnails/c.png")
        service.update_config(loop_presentation=True)
        service.update_theme(colors={"primary": "#111111"})
        service.save_current_project()

        reloaded = fresh_service(index).load_from_index_entry(index.get(demo.id))

        def shape(project):
            return [(p.id, p.name, p.order, p.html, p.css, p.js, p.thumbnail) for p in project.pages]

        assert shape(reloaded) == shape(demo)
        assert reloaded.config.loop_presentation is True
        assert reloaded.theme.colors.primary == "#111111"
        assert reloaded.current_page_id == demo.current_page_id

    def test_save_stamps_updated_at_and_index(self, service, demo, index):
        before = demo.updated_at

        service.save_current_project()

        assert demo.updated_at >= before
        assert index.get(demo.id).updated_at == demo.updated_at

    def test_load_reuses_nothing_across_sessions(self, service, demo, index):
        other = fresh_service(index)

        other.load_from_index_entry(index.get(demo.id))

        assert other.handle is not None
        assert other.handle is not service.handle
        assert str(other.handle.path) == demo.path

    def test_load_upserts_by_id(self, service, demo, index):
        moved = ProjectCache.from_project(demo)
        index.upsert_by_id(moved)

        other = fresh_service(index)
        other.load_from_index_entry(index.get(demo.id))

        assert len(index) == 1

    def test_load_with_non_finite_numbers(self, service, demo, index):
        service.add_page("Overview")
        service.save_current_project()
        metadata_path = service.handle.path / "project.json"
        data = json.loads(metadata_path.read_text())
        data["pages"][0]["order"] = float("inf")
        data["config"]["autoSaveInterval"] = float("nan")
        metadata_path.write_text(json.dumps(data))

        reloaded = fresh_service(index).load_from_index_entry(index.get(demo.id))

        assert [p.name for p in reloaded.pages] == ["Demo's title page", "Overview"]
        assert [p.order for p in reloaded.pages] == [0, 1]
        assert reloaded.config.auto_save_interval == 30000

    def test_removed_pages_are_pruned(self, service, demo):
        page = service.add_page("Temp")
        service.save_current_project()
        pages_dir = service.handle.path / "pages"
        assert (pages_dir / f"{page.id}.html").exists()

        service.delete_page(page.id)
        service.update_page(demo.pages[0].id, js=None)
        service.save_current_project()

        assert not (pages_dir / f"{page.id}.html").exists()
        assert not (pages_dir / f"{page.id}.css").exists()
        assert not (pages_dir / f"{demo.pages[0].id}.js").exists()
        assert (pages_dir / f"{demo.pages[0].id}.html").exists()

    def test_save_without_project(self, service):
        with pytest.raises(StateError):
            service.save_current_project()

    def test_save_transient_project(self, service):
        service.create_transient_project("Memory")

        with pytest.raises(StateError, match="promote"):
            service.save_current_project()

    def test_overlapping_save_fails_fast(self, service, demo):
        service._save_lock.acquire()
        try:
            with pytest.raises(StateError, match="Save already in progress"):
                service.save_current_project()
        finally:
            service._save_lock.release()

        service.save_current_project()

    def test_concurrent_saves_never_overlap(self, service, demo):
        errors = []

        def save():
            try:
                service.save_current_project()
            except StateError as e:
                errors.append(e)

        threads = [threading.Thread(target=save) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert all("Save already in progress" in str(e) for e in errors)
        assert not service._save_lock.locked()

    def test_index_failure_does_not_undo_save(self, workspace, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        service = ProjectService(
            access=DirectoryAccess(picker=lambda message, default: None),
            index=ProjectIndex(blocker / "recent.json"),
            backup_keep_count=0,
        )

        project = service.create_directory_backed_project("Demo", parent_location=str(workspace))
        service.add_page("Second")
        service.save_current_project()

        data = json.loads((workspace / "Demo" / "project.json").read_text())
        assert len(data["pages"]) == 2
        assert service.current_project is project
        assert service.last_error is None
        assert "project index" in caplog.text

    def test_backups_of_project_json(self, index, workspace):
        service = ProjectService(
            access=DirectoryAccess(picker=lambda message, default: None),
            index=index,
            backup_keep_count=2,
        )
        service.create_directory_backed_project("Demo", parent_location=str(workspace))
        backup_dir = workspace / "Demo" / ".backups"
        assert not backup_dir.exists()

        service.save_current_project()

        backups = list(backup_dir.glob("project_*.json"))
        assert len(backups) == 1
        assert json.loads(backups[0].read_text())["name"] == "Demo"


class TestReacquire:

    def test_revoked_handle_is_reacquired(self, service, demo):
        old = service.handle
        old.revoke()

        service.save_current_project()

        assert service.handle is not old
        assert not service.handle.revoked

    def test_prompts_when_directory_moved(self, service, demo, picker, index, workspace):
        moved = workspace / "Moved"
        (workspace / "Demo").rename(moved)
        picker.push(moved)
        entry = index.get(demo.id)

        project = fresh_service(index, service.access).load_from_index_entry(entry)

        assert project.path == str(moved.resolve())
        assert picker.calls[-1][1] == entry.path
        # Index entry follows the project id to its new location
        assert index.get(demo.id).path == str(moved.resolve())
        assert len(index) == 1

    def test_declined_prompt_is_permission_denied(self, service, demo, picker, index, workspace):
        (workspace / "Demo").rename(workspace / "Gone")
        picker.push(None)
        other = fresh_service(index, service.access)

        with pytest.raises(PermissionDeniedError):
            other.load_from_index_entry(index.get(demo.id))

        assert other.last_error
        assert other.current_project is None

    def test_reacquire_known_path(self, service, demo, picker):
        handle = service.reacquire(demo.path)

        assert str(handle.path) == demo.path
        assert picker.calls == []


class TestIndexOperations:

    def test_initialize_project_storage(self, service, demo, index):
        fresh = fresh_service(index)

        entries = fresh.initialize_project_storage()

        assert [e.id for e in entries] == [demo.id]
        assert fresh.cached_projects_count == 1

    def test_remove_current_closes_it(self, service, demo, workspace):
        service.remove_from_index(demo.id)

        assert service.current_project is None
        assert service.projects_cache == []
        # The directory stays on disk
        assert (workspace / "Demo" / "project.json").exists()

    def test_remove_other_keeps_current(self, service, demo, index):
        index.upsert_by_id(ProjectCache.from_project(Project(id="other", name="Other", path="/x")))

        service.remove_from_index("other")

        assert service.current_project is demo
        assert [e.id for e in index.list()] == [demo.id]

    def test_update_project_refreshes_index(self, service, demo, index):
        service.update_project(name="Renamed", description="New")

        assert demo.name == "Renamed"
        assert index.get(demo.id).name == "Renamed"
        assert index.get(demo.id).description == "New"

    def test_update_project_rejects_unknown_fields(self, service, demo):
        with pytest.raises(ValueError):
            service.update_project(path="/elsewhere")

    def test_reorder_refreshes_index(self, service, demo, index):
        service.add_page("Second")
        before = index.get(demo.id).updated_at

        service.reorder_pages(1, 0)

        assert index.get(demo.id).updated_at >= before
        assert index.get(demo.id).updated_at == demo.updated_at


class TestImportExport:

    def test_import_strict(self, service, sample_document_file):
        project = service.import_project_file(sample_document_file)

        assert service.current_project is project
        assert project.path == ""
        assert [p.id for p in project.pages] == ["p1", "p2"]

    def test_import_invalid_sets_last_error(self, service, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text("{}")

        with pytest.raises(ValidationFailedError) as exc_info:
            service.import_project_file(path)

        assert len(exc_info.value.errors) == 7
        assert service.last_error.startswith("Invalid project file")
        assert service.current_project is None

    def test_import_with_repair(self, service, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text("{}")

        project = service.import_project_file(path, strict=False)

        assert project.name == "Untitled Project"

    def test_promote_imported_project(self, service, sample_document_file, workspace, index):
        service.import_project_file(sample_document_file)

        project = service.promote_current_project(str(workspace))

        root = workspace.resolve() / "Sample"
        assert project.path == str(root)
        assert (root / "pages" / "p1.js").read_text() == "console.log(1);"
        assert not (root / "pages" / "p2.js").exists()
        assert index.get("proj-1").path == str(root)
        service.save_current_project()

    def test_unusable_page_ids_survive_promote_and_reload(
        self, service, sample_document, tmp_path, workspace, index
    ):
        sample_document["pages"][0]["id"] = "intro.v2"
        sample_document["pages"][1]["id"] = "sec/a"
        path = tmp_path / "odd.json"
        path.write_text(json.dumps(sample_document))

        with pytest.raises(ValidationFailedError):
            service.import_project_file(path)

        service.import_project_file(path, strict=False)
        project = service.promote_current_project(str(workspace))
        saved = [(p.id, p.name, p.html) for p in project.pages]

        reloaded = fresh_service(index).load_from_index_entry(index.get(project.id))

        assert [p.name for p in reloaded.pages] == ["First", "Second"]
        assert [(p.id, p.name, p.html) for p in reloaded.pages] == saved

    def test_promote_requires_transient_project(self, service, demo, workspace):
        with pytest.raises(StateError):
            service.promote_current_project(str(workspace))

    def test_promote_failure_keeps_project_transient(self, service, tmp_path):
        project = service.create_transient_project("Memory")

        with pytest.raises(NotFoundError):
            service.promote_current_project(str(tmp_path / "missing"))

        assert project.path == ""

    def test_export_then_import(self, service, demo, tmp_path):
        service.add_page("Overview")
        target = tmp_path / "out" / "demo.json"

        written = service.export_project_file(target)

        assert written == target
        data = json.loads(target.read_text())
        assert "path" not in data
        assert data["pages"][1]["html"] == demo.pages[1].html

        imported = service.import_project_file(target)
        assert [p.html for p in imported.pages] == [p.html for p in demo.pages]

    def test_export_without_project(self, service, tmp_path):
        with pytest.raises(StateError):
            service.export_project_file(tmp_path / "x.json")


class TestInMemoryProjects:

    def test_create_transient(self, service, index):
        project = service.create_transient_project("Memory", "Scratch")

        assert service.current_project is project
        assert not project.is_directory_backed
        assert project.pages[0].name == "Memory's title page"
        assert len(index) == 0

    def test_open_and_close(self, service):
        project = Project(id="p", name="Loose")
        service.last_error = "earlier"

        service.open_project(project)
        assert service.current_project is project
        assert service.last_error is None

        service.close_project()
        assert service.current_project is None
        assert service.current_page is None
        assert service.total_pages == 0

    def test_delete_project(self, service):
        project = service.create_transient_project("Memory")

        service.delete_project("other")
        assert service.current_project is project

        service.delete_project(project.id)
        assert service.current_project is None


class TestMutators:

    @pytest.fixture
    def project(self, service):
        return service.create_transient_project("Deck")

    def test_add_page_requires_project(self, service):
        with pytest.raises(StateError):
            service.add_page("Orphan")

    def test_mutators_without_project_are_noops(self, service):
        service.update_page("x", name="y")
        service.delete_page("x")
        service.reorder_pages(0, 1)
        service.set_current_page("x")
        service.update_config(auto_save=False)
        service.update_theme(name="Dark")
        service.update_project(name="x")

        assert service.current_project is None

    def test_order_invariant(self, service, project):
        ids = [service.add_page(f"P{i}").id for i in range(5)]
        service.delete_page(ids[1])
        service.reorder_pages(0, 4)
        service.add_page("Last")
        service.reorder_pages(2, 1)
        service.delete_page(project.pages[0].id)

        assert [p.order for p in project.pages] == list(range(len(project.pages)))

    def test_add_page_on_transient_has_no_paths(self, service, project):
        page = service.add_page("Next")

        assert page.order == 1
        assert page.html_path is None

    def test_reorder_out_of_range_is_ignored(self, service, project):
        service.add_page("Second")
        before = [p.id for p in project.pages]

        service.reorder_pages(0, 5)
        service.reorder_pages(-1, 0)

        assert [p.id for p in project.pages] == before

    def test_delete_current_page_selects_neighbour(self, service, project):
        second = service.add_page("Second")
        third = service.add_page("Third")
        service.set_current_page(second.id)

        service.delete_page(second.id)
        assert project.current_page_id == third.id

        service.delete_page(third.id)
        assert project.current_page_id == project.pages[0].id

        service.delete_page(project.pages[0].id)
        assert project.current_page_id is None

    def test_delete_unknown_page(self, service, project):
        service.delete_page("missing")

        assert len(project.pages) == 1

    def test_update_page(self, service, project):
        page = project.pages[0]

        service.update_page(page.id, name="Cover", html="<h1>Hi</h1>")

        assert page.name == "Cover"
        assert page.html == "<h1>Hi</h1>"
        assert page.updated_at >= page.created_at

    def test_update_page_rejects_unknown_fields(self, service, project):
        with pytest.raises(ValueError):
            service.update_page(project.pages[0].id, order=7)

    def test_set_current_page_ignores_unknown(self, service, project):
        current = project.current_page_id

        service.set_current_page("missing")

        assert project.current_page_id == current

    def test_mutators_restamp_updated_at(self, service, project):
        stamps = [project.updated_at]
        service.add_page("A")
        stamps.append(project.updated_at)
        service.update_config(default_transition="slide")
        stamps.append(project.updated_at)
        service.update_theme(name="Other")
        stamps.append(project.updated_at)

        assert stamps == sorted(stamps)
        assert project.config.default_transition == "slide"
        assert project.theme.name == "Other"

    def test_update_config_rejects_unknown(self, service, project):
        with pytest.raises(ValueError):
            service.update_config(autoSave=False)

    def test_update_theme_groups(self, service, project):
        service.update_theme(fonts={"heading": "Georgia, serif"}, spacing={"small": 4})

        assert project.theme.fonts.heading == "Georgia, serif"
        assert project.theme.fonts.body == "Arial, sans-serif"
        assert project.theme.spacing.small == 4

    def test_update_theme_rejects_unknown_group_key(self, service, project):
        with pytest.raises(ValueError):
            service.update_theme(colors={"shadow": "#000"})
