"""
Interactive CLI prompts.

Provides user input utilities for interactive commands and the default
directory picker used when no other picker is configured.
"""

from __future__ import annotations

from rich.console import Console
from rich.prompt import Prompt

console = Console()


def prompt_user(
    message: str,
    default: str | None = None,
    show_default: bool = True,
) -> str:
    """Prompt user for text input.

    Args:
        message: Prompt message
        default: Default value if user presses Enter
        show_default: Show default value in prompt

    Returns:
        User input or default
    """
    result = Prompt.ask(message, default=default, show_default=show_default)
    return result if result is not None else ""


def prompt_directory(message: str, default: str | None = None) -> str | None:
    """Ask the user for a directory path.

    An empty answer (or Ctrl-C / Ctrl-D) counts as a cancellation.

    Args:
        message: Prompt message
        default: Suggested path

    Returns:
        The entered path, or None if the user cancelled
    """
    console.print("[dim]Leave empty to cancel.[/dim]")
    try:
        answer = prompt_user(message, default=default or "")
    except (KeyboardInterrupt, EOFError):
        console.print()
        return None
    answer = answer.strip()
    return answer or None


def progress_message(message: str, done: bool = False) -> None:
    """Print a progress message.

    Args:
        message: Message to display
        done: If True, show as completed (green checkmark)
    """
    if done:
        console.print(f"  [green]✓[/green] {message}")
    else:
        console.print(f"  [blue]•[/blue] {message}")


def error_message(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]ERROR:[/red] {message}")


def warning_message(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]WARNING:[/yellow] {message}")


def info_message(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]INFO:[/blue] {message}")
