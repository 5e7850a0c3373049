"""
CLI utility helpers — output formatting and container construction.
"""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from zapflow.container import ZapflowContainer
from zapflow.core.settings import get_settings

console = Console()
err_console = Console(stderr=True)


def make_container(database: str | None = None) -> ZapflowContainer:
    """Container from the cached settings, optionally on another database file."""
    settings = get_settings()
    if database:
        settings = settings.model_copy(update={"database_path": database})
    return ZapflowContainer(settings)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a flat dict as a two-column table."""
    table = Table(title=title or None, show_header=False, pad_edge=False)
    table.add_column("Key", style="bold cyan")
    table.add_column("Value")
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, default=str)
        table.add_row(str(key), str(value))
    console.print(table)


def print_rows(rows: list[dict[str, Any]], *, title: str = "") -> None:
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for column in rows[0]:
        table.add_column(str(column))
    for row in rows:
        table.add_row(*(str(v) if v is not None else "" for v in row.values()))
    console.print(table)


__all__ = ["console", "err_console", "make_container", "print_dict", "print_json", "print_rows"]
