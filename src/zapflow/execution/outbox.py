"""Run creator — the single admission point for accepted events.

Webhooks, the change-detection poller and the schedule service all turn an
event into a Run through :meth:`RunCreator.create_run`. The Run and its
outbox entry are written in one transaction, so a crash between the two
writes leaves neither behind.

No deduplication happens here: a retried webhook produces a second Run.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from zapflow.core.dialect import Dialect
from zapflow.core.logging import get_logger
from zapflow.core.models import Run, TriggerEvent, TriggerSource
from zapflow.core.protocols import Connection
from zapflow.core.repositories import OutboxRepository, RunRepository
from zapflow.core.timestamps import generate_ulid, utc_now

logger = get_logger(__name__)


class RunCreator:
    """Persists Run + OutboxEntry atomically."""

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = generate_ulid,
    ):
        self.runs = RunRepository(conn, dialect)
        self.outbox = OutboxRepository(conn, dialect)
        self._clock = clock
        self._id_factory = id_factory

    def create_run(
        self,
        workflow_id: str,
        payload: dict[str, Any],
        source: TriggerSource = TriggerSource.MANUAL,
    ) -> Run:
        run = Run(
            id=self._id_factory(),
            workflow_id=workflow_id,
            payload=dict(payload),
            created_at=self._clock(),
            source=source,
        )
        with self.runs.transaction():
            self.runs.add(run)
            self.outbox.add(run.id, run.created_at)
        logger.info("run_created", run_id=run.id, workflow_id=workflow_id, source=source.value)
        return run

    def admit(self, event: TriggerEvent) -> Run:
        """Create the Run for an inbound :class:`TriggerEvent`."""
        return self.create_run(event.workflow_id, event.payload, event.source)


__all__ = ["RunCreator"]
