"""Base repository with dialect-aware database access.

Provides :class:`BaseRepository` — pairs a
:class:`~zapflow.core.protocols.Connection` with a
:class:`~zapflow.core.dialect.Dialect` so that repositories can write
portable SQL without referencing a driver.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                       BaseRepository                               │
    │                                                                    │
    │   conn: Connection        ← protocol from zapflow.core.protocols   │
    │   dialect: Dialect        ← from zapflow.core.dialect              │
    │                                                                    │
    │   execute(sql, params)     → cursor                                │
    │   query(sql, params)       → list[dict]                            │
    │   query_one(sql, params)   → dict | None                           │
    │   insert(table, data)      → cursor                                │
    │   transaction()            → commit on success / rollback on error │
    └────────────────────────────────────────────────────────────────────┘

Repositories built on the same connection share one reentrant lock and a
transaction depth. The outermost ``transaction()`` holds the lock, and
nested blocks or ``commit()`` calls inside it leave the commit to the
outermost block, so a self-committing method such as
``OutboxRepository.mark_processed`` cannot commit half of a caller's unit
of work.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from zapflow.core.dialect import Dialect, SQLiteDialect
from zapflow.core.protocols import Connection


class _ConnectionGuard:
    """Lock and transaction depth shared by every repository on one connection."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.depth = 0


_guards: dict[int, _ConnectionGuard] = {}
_guards_lock = threading.Lock()


def connection_guard(conn: Connection) -> _ConnectionGuard:
    with _guards_lock:
        guard = _guards.get(id(conn))
        if guard is None:
            guard = _guards[id(conn)] = _ConnectionGuard()
        return guard


class BaseRepository:
    """Dialect-aware base class for data-access repositories.

    Parameters:
        conn: Any object satisfying the :class:`Connection` protocol.
        dialect: SQL dialect to use. Defaults to :class:`SQLiteDialect`.
    """

    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()
        self._guard = connection_guard(conn)

    def ph(self, count: int) -> str:
        """Shortcut for ``self.dialect.placeholders(count)``."""
        return self.dialect.placeholders(count)

    # -- Query helpers -----------------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute a statement and return the raw cursor."""
        with self._guard.lock:
            return self.conn.execute(sql, params)

    def query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Execute a SELECT and return rows as dicts."""
        with self._guard.lock:
            cursor = self.conn.execute(sql, params)
            rows = cursor.fetchall()
        if not rows:
            return []
        columns = [desc[0] for desc in cursor.description]
        return [dict(zip(columns, row, strict=False)) for row in rows]

    def query_one(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        """Execute a SELECT and return the first row as a dict (or None)."""
        results = self.query(sql, params)
        return results[0] if results else None

    # -- Insert helpers ----------------------------------------------------

    def insert(self, table: str, data: dict[str, Any]) -> Any:
        """Insert a single row from a dict."""
        columns = list(data.keys())
        values = list(data.values())
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({self.ph(len(values))})"
        return self.execute(sql, tuple(values))

    # -- Transactions ------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._guard.depth > 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit everything executed inside the block, or nothing.

        Blocks nest: only the outermost one commits or rolls back. Other
        threads using the same connection wait until it finishes.
        """
        guard = self._guard
        with guard.lock:
            guard.depth += 1
            try:
                yield
            except BaseException:
                guard.depth -= 1
                if guard.depth == 0:
                    self.conn.rollback()
                raise
            guard.depth -= 1
            if guard.depth == 0:
                self.conn.commit()

    def commit(self) -> None:
        """Commit now, unless an enclosing ``transaction()`` owns the commit."""
        with self._guard.lock:
            if self._guard.depth == 0:
                self.conn.commit()


__all__ = ["BaseRepository", "connection_guard"]
