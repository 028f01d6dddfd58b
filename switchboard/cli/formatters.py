"""CLI formatters: console, tables and timestamps."""

from __future__ import annotations

import time
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


def get_console(no_color: bool = False) -> Console:
    """Get a Rich Console, optionally with color disabled."""
    return Console(no_color=no_color)


def build_table(title: str, columns: list[str], rows: list[list[Any]]) -> Table:
    """Build a Rich table with standard styling."""
    table = Table(title=title, show_header=True, header_style="bold")
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*(str(v) for v in row))
    return table


def format_timestamp(timestamp: Optional[float]) -> str:
    """Local time as ``YYYY-MM-DD HH:MM``, or a dash when unknown."""
    if not timestamp:
        return "-"
    return time.strftime("%Y-%m-%d %H:%M", time.localtime(timestamp))


def shorten(text: str, width: int = 50) -> str:
    text = " ".join((text or "").split())
    if len(text) <= width:
        return text
    return text[: width - 3] + "..."
