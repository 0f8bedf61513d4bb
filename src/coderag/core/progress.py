"""Console feedback for CLI commands.

All output goes to stderr so ``--json`` results on stdout stay parseable.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console

_console = Console(stderr=True)

_MARKERS = {
    "success": "[green]✓[/green]",
    "error": "[red]✗[/red]",
    "warning": "[yellow]![/yellow]",
    "info": " ",
}


def get_console() -> Console:
    return _console


def _interactive() -> bool:
    isatty = getattr(sys.stderr, "isatty", None)
    return bool(isatty and isatty())


def status(message: str, *, style: str = "info", indent: int = 0) -> None:
    """Print one status line, prefixed by a marker for ``style``.

    ``style="none"`` (or any unknown style) prints the bare message.
    """
    marker = _MARKERS.get(style)
    line = f"{marker} {message}" if marker else message
    _console.print(" " * indent + line, highlight=False)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    word = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {word}"


@contextmanager
def spinner(message: str) -> Iterator[None]:
    """Animate ``message`` while the block runs; a plain line when not a TTY."""
    if _interactive():
        with _console.status(message):
            yield
    else:
        status(message)
        yield
