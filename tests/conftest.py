"""
Shared pytest fixtures for zapflow tests.

This module provides:
- In-memory SQLite connections with the engine tables created
- A fake clock driving wall time, monotonic time and sleeps together
- Resilience clients and pools wired to the fake clock
- A workflow seeding helper
"""

from __future__ import annotations

import random
import sqlite3
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from zapflow.core.repositories import WorkflowRepository
from zapflow.core.schema import create_tables
from zapflow.execution.actions import PlaceholderStyle
from zapflow.execution.circuit_breaker import CircuitBreaker
from zapflow.execution.rate_limit import ApiRateLimiter
from zapflow.execution.resilience import ResiliencePool, ResilientClient
from zapflow.execution.retry import ExponentialBackoff


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if test_path.parts[0] in ("api", "cli"):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """Wall clock, monotonic clock and sleep that move together."""

    def __init__(self, start: datetime = datetime(2025, 3, 10, 8, 0, tzinfo=UTC)):
        self.wall = start
        self.mono = 1_000.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.wall

    def monotonic(self) -> float:
        return self.mono

    def advance(self, seconds: float) -> None:
        self.mono += seconds
        self.wall += timedelta(seconds=seconds)

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def conn() -> Generator[sqlite3.Connection, None, None]:
    connection = sqlite3.connect(":memory:", check_same_thread=False)
    create_tables(connection)
    yield connection
    connection.close()


@pytest.fixture
def seed_workflow(conn: sqlite3.Connection) -> Callable[..., None]:
    """Insert a workflow with ``steps`` given as ``(order, action_type, metadata)``."""

    def seed(
        workflow_id: str = "wf-1",
        steps: list[tuple[int, str, dict[str, Any]]] | None = None,
        *,
        filters: list[dict[str, Any]] | None = None,
        is_active: bool = True,
        connection: Any = None,
    ) -> None:
        repo = WorkflowRepository(connection or conn)
        with repo.transaction():
            repo.create_workflow(workflow_id, name=workflow_id, is_active=is_active, filters=filters)
            for order, action_type, metadata in steps or []:
                repo.add_step(workflow_id, order, action_type, metadata)

    return seed


# =============================================================================
# Resilience
# =============================================================================


@pytest.fixture
def make_client(clock: FakeClock) -> Callable[..., ResilientClient]:
    def factory(
        name: str = "test",
        *,
        max_retries: int = 5,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        limiter: ApiRateLimiter | None = None,
    ) -> ResilientClient:
        return ResilientClient(
            name,
            rate_limiter=limiter or ApiRateLimiter(clock=clock.monotonic),
            breaker=CircuitBreaker(
                name=name,
                failure_threshold=failure_threshold,
                recovery_timeout=recovery_timeout,
                clock=clock.monotonic,
            ),
            backoff=ExponentialBackoff(max_retries=max_retries, rng=random.Random(7)),
            sleep=clock.sleep,
            now=clock.now,
        )

    return factory


@pytest.fixture
def pool(make_client: Callable[..., ResilientClient]) -> ResiliencePool:
    return ResiliencePool(lambda name: make_client(name))


# =============================================================================
# Actions
# =============================================================================


class RecordingAction:
    """Handler that records its calls; raises for types listed in ``fail_on``."""

    service = "recording"
    placeholder_style = PlaceholderStyle.DOUBLE

    def __init__(self, action_type: str, calls: list[tuple[str, dict[str, Any]]], fail: bool = False):
        self.action_type = action_type
        self.calls = calls
        self.fail = fail

    def execute(self, metadata: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((self.action_type, metadata))
        if self.fail:
            raise RuntimeError(f"{self.action_type} exploded")
        return {"ok": self.action_type}


@pytest.fixture
def recording_action() -> type[RecordingAction]:
    return RecordingAction
