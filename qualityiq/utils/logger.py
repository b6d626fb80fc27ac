"""Rich-based logging setup and terminal output helpers for QualityIQ."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.theme import Theme

__all__ = [
    "console",
    "setup_logging",
    "severity_style",
    "print_success",
    "print_warning",
    "print_error",
    "print_info",
    "create_table",
    "format_severity_counts",
]

_THEME = Theme(
    {
        "success": "bold green",
        "warning": "bold yellow",
        "error": "bold red",
        "info": "bold cyan",
        "muted": "dim",
        "accent": "bold magenta",
    }
)

_SEVERITY_STYLES = {"error": "error", "warn": "warning", "info": "info"}

console = Console(theme=_THEME)


def setup_logging(level: int | str = logging.WARNING) -> None:
    """Route the ``qualityiq`` loggers through a RichHandler on the shared console."""
    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    root = logging.getLogger("qualityiq")
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False


def severity_style(severity: str) -> str:
    """Theme style name for a violation severity value."""
    return _SEVERITY_STYLES.get(severity, "muted")


def print_success(message: str) -> None:
    """Print a success message with a checkmark."""
    console.print(f"[success]✔[/success] {message}")


def print_warning(message: str) -> None:
    """Print a warning message with a caution sign."""
    console.print(f"[warning]⚠[/warning] {message}")


def print_error(message: str) -> None:
    """Print an error message with a cross."""
    console.print(f"[error]✖[/error] {message}")


def print_info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[info]ℹ[/info] {message}")


def create_table(
    title: str,
    columns: list[tuple[str, str]],
    rows: list[list[str]],
) -> Table:
    """Create a Rich table with the given columns and rows."""
    table = Table(title=title, show_lines=False, expand=True)
    for header, style in columns:
        table.add_column(header, style=style)
    for row in rows:
        table.add_row(*row)
    return table


def format_severity_counts(by_severity: dict[str, int], *, labels: bool = True) -> str:
    """Render error/warn/info counts in their severity colours."""
    parts = []
    for severity in ("error", "warn", "info"):
        style = _SEVERITY_STYLES[severity]
        count = by_severity.get(severity, 0)
        text = f"{severity.capitalize()}: {count}" if labels else str(count)
        parts.append(f"[{style}]{text}[/{style}]")
    return "  ".join(parts) if labels else "/".join(parts)
