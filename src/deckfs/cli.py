"""
Main CLI dispatcher for deckfs.

Usage:
    deckfs projects [new|open|recent|forget|validate|import|export]
    deckfs pages [list|add|move|remove]
    deckfs config [show|get|set|reset|path]
"""

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from deckfs import __version__

console = Console()


class Context:
    """Shared context for all commands."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.console = console


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="deckfs")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Slide-deck project storage tools.

    Create and open deck project directories and manage the list of
    recently used projects.
    """
    ctx.obj = Context(verbose=verbose)
    configure_logging(verbose)


# Import and register command groups (imports after main definition intentional)
from deckfs.config.commands import config  # noqa: E402
from deckfs.projects.commands import pages, projects  # noqa: E402

main.add_command(config)
main.add_command(projects)
main.add_command(pages)


if __name__ == "__main__":
    main()
