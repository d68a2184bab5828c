"""CLI commands for deck projects and their pages."""

from __future__ import annotations

import json as json_module
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from deckfs.config.commands import get_config_value
from deckfs.core.config import DEFAULT_BACKUP_KEEP_COUNT, DEFAULT_BACKUP_KEEP_DAYS
from deckfs.core.errors import DeckError, UserCancelledError, ValidationFailedError
from deckfs.core.fsaccess import DirectoryAccess
from deckfs.core.index import ProjectIndex, entry_to_dict
from deckfs.core.prompts import error_message, info_message, progress_message, warning_message
from deckfs.projects.models import Project
from deckfs.projects.service import ProjectService
from deckfs.projects.validation import read_raw_document, validate

console = Console()


def make_service(path: str | None = None) -> ProjectService:
    """Build a service from the user's settings.

    Args:
        path: When given, every directory prompt is answered with this path.
    """
    picker = (lambda _message, _default: path) if path is not None else None
    return ProjectService(
        access=DirectoryAccess(picker=picker),
        index=ProjectIndex(),
        default_parent=get_config_value("projects.default_parent"),
        backup_keep_count=int(get_config_value("backup.keep_count", DEFAULT_BACKUP_KEEP_COUNT)),
        backup_keep_days=int(get_config_value("backup.keep_days", DEFAULT_BACKUP_KEEP_DAYS)),
    )


@contextmanager
def _reporting_errors() -> Iterator[None]:
    """Print deckfs errors and abort with a non-zero exit code."""
    try:
        yield
    except ValidationFailedError as e:
        console.print("[red]Validation failed:[/red]")
        for error in e.errors:
            console.print(f"  - {error}")
        raise click.Abort() from e
    except DeckError as e:
        error_message(str(e))
        raise click.Abort() from e


def open_target(target: str) -> tuple[ProjectService, Project]:
    """Open a project given either a recent-project id or a directory."""
    index = ProjectIndex()
    entry = index.get(target)
    if entry is not None:
        service = make_service(entry.path)
        return service, service.load_from_index_entry(entry)

    service = make_service(str(Path(target).expanduser()))
    project = service.open_directory_backed_project()
    if project is None:
        raise UserCancelledError("Directory selection cancelled")
    return service, project


def _print_pages(project: Project) -> None:
    table = Table(title=f"{project.name} ({len(project.pages)} pages)")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Name")
    table.add_column("Id", style="dim")
    table.add_column("Script", justify="center")

    for page in project.pages:
        marker = " *" if page.id == project.current_page_id else ""
        table.add_row(str(page.order + 1), f"{page.name}{marker}", page.id, "js" if page.js else "")

    console.print(table)


# ---------------------------------------------------------------------------
# deckfs projects ...
# ---------------------------------------------------------------------------


@click.group(name="projects")
def projects() -> None:
    """Create, open and list deck projects."""
    pass


@projects.command(name="new")
@click.argument("name")
@click.option("-d", "--description", default=None, help="Project description")
@click.option(
    "-p", "--parent",
    type=click.Path(file_okay=False),
    default=None,
    help="Parent directory (asked interactively if omitted)",
)
def new_cmd(name: str, description: str | None, parent: str | None) -> None:
    """Create a new project directory with a title page."""
    service = make_service()
    with _reporting_errors():
        project = service.create_directory_backed_project(name, description, parent)
    progress_message(f"Created {project.name} at {project.path}", done=True)


@projects.command(name="open")
@click.argument("directory", required=False, type=click.Path(file_okay=False))
def open_cmd(directory: str | None) -> None:
    """Open a project directory and add it to the recent list."""
    service = make_service(directory)
    with _reporting_errors():
        project = service.open_directory_backed_project()
    if project is None:
        info_message("Cancelled")
        return
    progress_message(f"Opened {project.name} ({len(project.pages)} pages)", done=True)


@projects.command(name="recent")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON array")
def recent_cmd(as_json: bool) -> None:
    """List recently used projects."""
    entries = ProjectIndex().list()

    if as_json:
        click.echo(json_module.dumps([entry_to_dict(e) for e in entries], indent=2))
        return

    if not entries:
        console.print("[dim]No recent projects.[/dim]")
        return

    table = Table(title=f"Recent projects ({len(entries)})")
    table.add_column("Id", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Pages", justify="right")
    table.add_column("Updated")
    table.add_column("Path", style="dim")

    for entry in entries:
        table.add_row(
            entry.id,
            entry.name,
            str(entry.page_count),
            entry.updated_at.strftime("%Y-%m-%d %H:%M"),
            entry.path,
        )
    console.print(table)


@projects.command(name="forget")
@click.argument("project_id")
def forget_cmd(project_id: str) -> None:
    """Remove a project from the recent list (its directory is kept)."""
    service = make_service()
    service.initialize_project_storage()
    if not any(entry.id == project_id for entry in service.projects_cache):
        warning_message(f"No recent project with id {project_id}")
        return
    service.remove_from_index(project_id)
    progress_message(f"Removed {project_id} from recent projects", done=True)


@projects.command(name="validate")
@click.argument("file", type=click.Path(dir_okay=False))
def validate_cmd(file: str) -> None:
    """Check a project JSON document without importing it."""
    with _reporting_errors():
        result = validate(read_raw_document(file))
    if result.ok:
        console.print(f"[green]✓[/green] {file} is a valid project document")
        return
    console.print(f"[red]{len(result.errors)} problem(s) in {file}:[/red]")
    for error in result.errors:
        console.print(f"  - {error}")
    raise SystemExit(1)


@projects.command(name="import")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--repair", is_flag=True, help="Repair invalid documents instead of rejecting them")
@click.option(
    "-p", "--parent",
    type=click.Path(file_okay=False),
    required=True,
    help="Directory in which to create the project folder",
)
def import_cmd(file: str, repair: bool, parent: str) -> None:
    """Import a project JSON document into a new project directory."""
    service = make_service()
    with _reporting_errors():
        project = service.import_project_file(file, strict=not repair)
        service.promote_current_project(parent)
    progress_message(f"Imported {project.name} to {project.path}", done=True)


@projects.command(name="export")
@click.argument("target")
@click.argument("file", type=click.Path(dir_okay=False))
def export_cmd(target: str, file: str) -> None:
    """Export a project (directory or recent id) as one JSON document."""
    with _reporting_errors():
        service, _project = open_target(target)
        written = service.export_project_file(file)
    progress_message(f"Exported to {written}", done=True)


# ---------------------------------------------------------------------------
# deckfs pages ...
# ---------------------------------------------------------------------------


@click.group(name="pages")
def pages() -> None:
    """List and edit the pages of a project.

    PROJECT is a project directory or the id of a recent project.
    """
    pass


@pages.command(name="list")
@click.argument("project")
def list_cmd(project: str) -> None:
    """List pages in display order."""
    with _reporting_errors():
        _service, opened = open_target(project)
    _print_pages(opened)


@pages.command(name="add")
@click.argument("project")
@click.argument("name")
def add_cmd(project: str, name: str) -> None:
    """Append a page and save."""
    with _reporting_errors():
        service, _opened = open_target(project)
        page = service.add_page(name)
        service.save_current_project()
    console.print(f"[green]Added[/green] page {page.order + 1}: {page.name}")


@pages.command(name="move")
@click.argument("project")
@click.argument("from_position", type=int)
@click.argument("to_position", type=int)
def move_cmd(project: str, from_position: int, to_position: int) -> None:
    """Move a page (1-based positions) and save."""
    with _reporting_errors():
        service, opened = open_target(project)
        count = len(opened.pages)
        if not (1 <= from_position <= count and 1 <= to_position <= count):
            raise click.BadParameter(f"Positions must be between 1 and {count}")
        service.reorder_pages(from_position - 1, to_position - 1)
        service.save_current_project()
    _print_pages(opened)


@pages.command(name="remove")
@click.argument("project")
@click.argument("position", type=int)
def remove_cmd(project: str, position: int) -> None:
    """Delete the page at a 1-based position and save."""
    with _reporting_errors():
        service, opened = open_target(project)
        if not 1 <= position <= len(opened.pages):
            raise click.BadParameter(f"Position must be between 1 and {len(opened.pages)}")
        page = opened.pages[position - 1]
        service.delete_page(page.id)
        service.save_current_project()
    console.print(f"[green]Removed[/green] page {page.name}")
