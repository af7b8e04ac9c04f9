"""
Console output for the inkbridge CLI.

Commands print through the helpers here, and the log handler installed by
``setup_logging`` writes to the same console so bridge logs and command
output interleave cleanly.
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console()

_MARKS = {
    "success": ("green", "✓"),
    "error": ("red", "✗"),
    "warning": ("yellow", "!"),
    "info": ("blue", "i"),
}


def _print_marked(kind: str, message: str) -> None:
    style, mark = _MARKS[kind]
    console.print(f"[{style}]{mark}[/{style}] {message}")


def print_success(message: str) -> None:
    _print_marked("success", message)


def print_error(message: str) -> None:
    _print_marked("error", message)


def print_warning(message: str) -> None:
    _print_marked("warning", message)


def print_info(message: str) -> None:
    _print_marked("info", message)


def print_table(
    headers: Sequence[str],
    rows: Iterable[Sequence[Any]],
    title: str | None = None,
) -> None:
    """Print rows under ``headers``; cells may contain rich markup."""
    table = Table(*headers, title=title, title_justify="left")
    for row in rows:
        table.add_row(*(str(cell) for cell in row))
    console.print(table)


def setup_logging(level: str = "INFO") -> None:
    """Route log records through rich on the shared console."""
    handler = RichHandler(console=console, rich_tracebacks=True, show_path=False)
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    # per-request lines from the HTTP client drown out bridge logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
