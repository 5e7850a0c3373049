"""
Canonical protocol definitions for zapflow.

Every module that needs a database connection imports :class:`Connection`
from here. Domain code stays synchronous; ``sqlite3.Connection`` satisfies
the protocol natively and other drivers are wrapped by adapters.

Guardrails:
    ❌ DON'T: Duplicate Connection(Protocol) in other modules
    ✅ DO: Import from zapflow.core.protocols
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """
    Minimal SYNCHRONOUS connection interface for database operations.

    Architecture:
        ::

            ┌────────────────────────────────────────────────────────┐
            │ execute(sql, params)   → Execute single statement      │
            │ commit()               → Commit transaction            │
            │ rollback()             → Rollback transaction          │
            └────────────────────────────────────────────────────────┘
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters."""
        ...

    def commit(self) -> None:
        """Commit current transaction."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction."""
        ...


__all__ = ["Connection"]
