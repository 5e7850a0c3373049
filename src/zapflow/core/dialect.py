"""SQL dialect abstraction for database-agnostic repositories.

Repositories use ``Dialect`` methods to generate placeholders without
referencing a specific database driver.

Examples:
    >>> d = SQLiteDialect()
    >>> d.placeholders(3)
    '?, ?, ?'
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL fragment generator for one database backend."""

    @property
    def name(self) -> str:
        """Short identifier (``sqlite``)."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated bind placeholders."""
        ...


class SQLiteDialect:
    """SQLite dialect — ``?`` placeholders."""

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))


def get_dialect(conn: Any) -> Dialect:
    """Dialect for ``conn``; sqlite is the only backend zapflow ships."""
    return SQLiteDialect()


__all__ = ["Dialect", "SQLiteDialect", "get_dialect"]
