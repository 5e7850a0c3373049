"""Schedule service — turns due schedules into Runs.

Each ``tick(now)``:

1. Loads active schedules with ``next_run_at <= now`` whose workflow is active.
2. For each one, independently:
   - computes the next run strictly after ``now``
   - creates a Run with payload ``{trigger_type, schedule_type, scheduled_at, timezone}``
   - persists ``next_run_at``, then ``last_run_at``

A failure on one schedule is logged and counted; the others still fire.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from zapflow.core.dialect import Dialect
from zapflow.core.logging import LogContext, get_logger
from zapflow.core.models import ScheduleRecord, ScheduleSpec, TriggerSource
from zapflow.core.protocols import Connection
from zapflow.core.repositories import ScheduleRepository
from zapflow.core.timestamps import generate_ulid, to_iso8601, utc_now
from zapflow.execution.outbox import RunCreator
from zapflow.scheduling.calculator import next_run

logger = get_logger(__name__)


@dataclass
class TickResult:
    due: int = 0
    triggered: int = 0
    failed: int = 0
    run_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "due": self.due,
            "processed": self.triggered,
            "failed": self.failed,
            "run_ids": list(self.run_ids),
        }


class ScheduleService:
    """Fires due schedules through the run creator."""

    def __init__(
        self,
        conn: Connection,
        run_creator: RunCreator,
        dialect: Dialect | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.schedules = ScheduleRepository(conn, dialect)
        self.run_creator = run_creator
        self._clock = clock

    def register(
        self,
        workflow_id: str,
        spec: ScheduleSpec,
        *,
        schedule_id: str | None = None,
        now: datetime | None = None,
    ) -> ScheduleRecord:
        """Store a new schedule with its first ``next_run_at``."""
        record = ScheduleRecord(
            id=schedule_id or generate_ulid(),
            workflow_id=workflow_id,
            spec=spec,
            next_run_at=next_run(spec, now or self._clock()),
        )
        with self.schedules.transaction():
            self.schedules.create_schedule(record)
        logger.info("schedule_registered", schedule_id=record.id, next_run_at=to_iso8601(record.next_run_at))
        return record

    def tick(self, now: datetime | None = None) -> TickResult:
        now = now or self._clock()
        due = self.schedules.list_due(now)
        result = TickResult(due=len(due))

        for record in due:
            with LogContext(schedule_id=record.id, workflow_id=record.workflow_id):
                try:
                    self._fire(record, now, result)
                except Exception:
                    result.failed += 1
                    logger.exception("schedule_fire_failed")

        if due:
            logger.info("schedule_tick_completed", **result.to_dict())
        return result

    def _fire(self, record: ScheduleRecord, now: datetime, result: TickResult) -> None:
        upcoming = next_run(record.spec, now)
        run = self.run_creator.create_run(
            record.workflow_id,
            {
                "trigger_type": "schedule",
                "schedule_type": record.spec.schedule_type.value,
                "scheduled_at": to_iso8601(now),
                "timezone": record.spec.timezone,
            },
            TriggerSource.SCHEDULE,
        )
        self.schedules.update_next_run(record.id, upcoming)
        self.schedules.update_last_run(record.id, now)
        result.triggered += 1
        result.run_ids.append(run.id)
        logger.info("schedule_fired", run_id=run.id, next_run_at=to_iso8601(upcoming))


__all__ = ["ScheduleService", "TickResult"]
