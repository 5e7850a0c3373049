"""Repositories for zapflow engine tables.

Each repository class extends :class:`BaseRepository` and provides typed,
dialect-aware access for one aggregate. Engine services use these instead
of inline SQL.

Architecture::

    ┌───────────────────────────────────────────────────────────────────┐
    │  RunCreator, ActionExecutor, OutboxWorker, ScheduleService,        │
    │  PollOrchestrator (business orchestration)                        │
    └──────────────────────────┬────────────────────────────────────────┘
                               │ uses
                               ▼
    ┌───────────────────────────────────────────────────────────────────┐
    │  WorkflowRepository     — zf_workflows + zf_action_steps          │
    │  RunRepository          — zf_runs (append-only)                   │
    │  OutboxRepository       — zf_outbox (claim / mark processed)      │
    │  ScheduleRepository     — zf_schedules                            │
    │  PollTriggerRepository  — zf_poll_triggers                        │
    └──────────────────────────┬────────────────────────────────────────┘
                               │ inherits
                               ▼
    ┌───────────────────────────────────────────────────────────────────┐
    │  BaseRepository  (zapflow.core.repository)                        │
    └───────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Write raw SQL in execution or scheduling modules
    ✅ DO: Add a method to the matching repository

    ❌ DON'T: Call ``conn.commit()`` directly from a repository method
    ✅ DO: Use ``with self.transaction():``, which joins a caller's block

Tags:
    repository, sql, outbox, zapflow
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any

from zapflow.core.models import (
    ActionStep,
    FilterCondition,
    PollTrigger,
    Run,
    ScheduleRecord,
    ScheduleSpec,
    ScheduleType,
    TriggerSource,
    Workflow,
)
from zapflow.core.repository import BaseRepository
from zapflow.core.timestamps import from_iso8601, to_iso8601

# =============================================================================
# Shared helpers
# =============================================================================


def _loads(value: str | None, default: Any) -> Any:
    if value is None or value == "":
        return default
    return json.loads(value)


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str)


# =============================================================================
# Workflows
# =============================================================================


class WorkflowRepository(BaseRepository):
    """Read access to workflow definitions, plus seeding helpers."""

    TABLE = "zf_workflows"
    STEPS_TABLE = "zf_action_steps"

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Load a workflow snapshot with its ordered action chain."""
        row = self.query_one(
            f"SELECT id, user_id, name, is_active, filters FROM {self.TABLE} "
            f"WHERE id = {self.ph(1)}",
            (workflow_id,),
        )
        if row is None:
            return None
        steps = self.query(
            f"SELECT step_order, action_type, metadata FROM {self.STEPS_TABLE} "
            f"WHERE workflow_id = {self.ph(1)} ORDER BY step_order ASC, id ASC",
            (workflow_id,),
        )
        return Workflow(
            id=row["id"],
            name=row["name"] or "",
            is_active=bool(row["is_active"]),
            user_id=row["user_id"],
            filters=tuple(
                FilterCondition.from_dict(f) for f in _loads(row["filters"], [])
            ),
            steps=tuple(
                ActionStep(
                    order=s["step_order"],
                    action_type=s["action_type"],
                    metadata_template=_loads(s["metadata"], {}),
                )
                for s in steps
            ),
        )

    def is_active(self, workflow_id: str) -> bool:
        row = self.query_one(
            f"SELECT is_active FROM {self.TABLE} WHERE id = {self.ph(1)}",
            (workflow_id,),
        )
        return bool(row and row["is_active"])

    def create_workflow(
        self,
        workflow_id: str,
        *,
        name: str = "",
        is_active: bool = True,
        filters: list[dict[str, Any]] | None = None,
        user_id: str | None = None,
    ) -> None:
        self.insert(
            self.TABLE,
            {
                "id": workflow_id,
                "user_id": user_id,
                "name": name,
                "is_active": 1 if is_active else 0,
                "filters": _dumps(filters or []),
            },
        )

    def add_step(
        self,
        workflow_id: str,
        order: int,
        action_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.insert(
            self.STEPS_TABLE,
            {
                "workflow_id": workflow_id,
                "step_order": order,
                "action_type": action_type,
                "metadata": _dumps(metadata or {}),
            },
        )

    def set_active(self, workflow_id: str, is_active: bool) -> None:
        self.execute(
            f"UPDATE {self.TABLE} SET is_active = {self.ph(1)} WHERE id = {self.ph(1)}",
            (1 if is_active else 0, workflow_id),
        )


# =============================================================================
# Runs and outbox
# =============================================================================


class RunRepository(BaseRepository):
    """Append-only access to ``zf_runs``."""

    TABLE = "zf_runs"

    def add(self, run: Run) -> None:
        self.insert(
            self.TABLE,
            {
                "id": run.id,
                "workflow_id": run.workflow_id,
                "payload": _dumps(run.payload),
                "source": run.source.value,
                "created_at": to_iso8601(run.created_at),
            },
        )

    def get(self, run_id: str) -> Run | None:
        row = self.query_one(
            f"SELECT id, workflow_id, payload, source, created_at FROM {self.TABLE} "
            f"WHERE id = {self.ph(1)}",
            (run_id,),
        )
        if row is None:
            return None
        return Run(
            id=row["id"],
            workflow_id=row["workflow_id"],
            payload=_loads(row["payload"], {}),
            created_at=from_iso8601(row["created_at"]),
            source=TriggerSource(row["source"]),
        )

    def count(self, workflow_id: str | None = None) -> int:
        if workflow_id is None:
            row = self.query_one(f"SELECT COUNT(*) AS cnt FROM {self.TABLE}")
        else:
            row = self.query_one(
                f"SELECT COUNT(*) AS cnt FROM {self.TABLE} WHERE workflow_id = {self.ph(1)}",
                (workflow_id,),
            )
        return (row or {}).get("cnt", 0)


class OutboxRepository(BaseRepository):
    """Pending → claimed → processed transitions on ``zf_outbox``.

    A claim is a compare-and-set on ``claimed_at``; a claim older than the
    lease may be taken over by another worker. ``mark_processed`` only
    flips rows that are still pending, so it succeeds at most once per run.
    """

    TABLE = "zf_outbox"

    def add(self, run_id: str, created_at: datetime) -> None:
        self.insert(
            self.TABLE,
            {
                "run_id": run_id,
                "processed": 0,
                "created_at": to_iso8601(created_at),
            },
        )

    def claim_pending(
        self, limit: int, now: datetime, lease_seconds: float
    ) -> list[str]:
        """Claim up to ``limit`` pending entries, oldest first. Commits."""
        now_s = to_iso8601(now)
        cutoff = to_iso8601(now - timedelta(seconds=lease_seconds))
        claimed: list[str] = []
        with self.transaction():
            candidates = self.query(
                f"SELECT run_id FROM {self.TABLE} "
                f"WHERE processed = 0 AND (claimed_at IS NULL OR claimed_at < {self.ph(1)}) "
                f"ORDER BY created_at ASC, run_id ASC LIMIT {self.ph(1)}",
                (cutoff, limit),
            )
            for row in candidates:
                cursor = self.execute(
                    f"UPDATE {self.TABLE} SET claimed_at = {self.ph(1)} "
                    f"WHERE run_id = {self.ph(1)} AND processed = 0 "
                    f"AND (claimed_at IS NULL OR claimed_at < {self.ph(1)})",
                    (now_s, row["run_id"], cutoff),
                )
                if cursor.rowcount == 1:
                    claimed.append(row["run_id"])
        return claimed

    def mark_processed(self, run_id: str, now: datetime) -> bool:
        """Flip a pending entry to processed. Returns False if it already was."""
        with self.transaction():
            cursor = self.execute(
                f"UPDATE {self.TABLE} SET processed = 1, processed_at = {self.ph(1)} "
                f"WHERE run_id = {self.ph(1)} AND processed = 0",
                (to_iso8601(now), run_id),
            )
        return cursor.rowcount == 1

    def get(self, run_id: str) -> dict[str, Any] | None:
        row = self.query_one(
            f"SELECT run_id, processed, claimed_at, processed_at, created_at "
            f"FROM {self.TABLE} WHERE run_id = {self.ph(1)}",
            (run_id,),
        )
        if row is not None:
            row["processed"] = bool(row["processed"])
        return row

    def pending_count(self) -> int:
        row = self.query_one(
            f"SELECT COUNT(*) AS cnt FROM {self.TABLE} WHERE processed = 0"
        )
        return (row or {}).get("cnt", 0)


# =============================================================================
# Schedules
# =============================================================================


class ScheduleRepository(BaseRepository):
    """CRUD for ``zf_schedules``."""

    TABLE = "zf_schedules"

    COLUMNS = (
        "id, workflow_id, schedule_type, hour, minute, day_of_week, "
        "day_of_month, timezone, last_run_at, next_run_at, is_active"
    )

    @staticmethod
    def _to_record(row: dict[str, Any]) -> ScheduleRecord:
        return ScheduleRecord(
            id=row["id"],
            workflow_id=row["workflow_id"],
            spec=ScheduleSpec(
                schedule_type=ScheduleType(row["schedule_type"]),
                minute=row["minute"] or 0,
                hour=row["hour"],
                day_of_week=row["day_of_week"],
                day_of_month=row["day_of_month"],
                timezone=row["timezone"] or "UTC",
            ),
            next_run_at=from_iso8601(row["next_run_at"]),
            last_run_at=from_iso8601(row["last_run_at"]),
            is_active=bool(row["is_active"]),
        )

    def create_schedule(self, record: ScheduleRecord) -> None:
        spec = record.spec
        self.insert(
            self.TABLE,
            {
                "id": record.id,
                "workflow_id": record.workflow_id,
                "schedule_type": spec.schedule_type.value,
                "hour": spec.hour,
                "minute": spec.minute,
                "day_of_week": spec.day_of_week,
                "day_of_month": spec.day_of_month,
                "timezone": spec.timezone,
                "last_run_at": to_iso8601(record.last_run_at),
                "next_run_at": to_iso8601(record.next_run_at),
                "is_active": 1 if record.is_active else 0,
            },
        )

    def get_by_id(self, schedule_id: str) -> ScheduleRecord | None:
        row = self.query_one(
            f"SELECT {self.COLUMNS} FROM {self.TABLE} WHERE id = {self.ph(1)}",
            (schedule_id,),
        )
        return self._to_record(row) if row else None

    def list_due(self, now: datetime) -> list[ScheduleRecord]:
        """Active schedules with ``next_run_at <= now`` whose workflow is active."""
        rows = self.query(
            f"SELECT s.id, s.workflow_id, s.schedule_type, s.hour, s.minute, "
            f"s.day_of_week, s.day_of_month, s.timezone, s.last_run_at, "
            f"s.next_run_at, s.is_active "
            f"FROM {self.TABLE} s JOIN zf_workflows w ON w.id = s.workflow_id "
            f"WHERE s.is_active = 1 AND w.is_active = 1 "
            f"AND s.next_run_at <= {self.ph(1)} ORDER BY s.next_run_at ASC",
            (to_iso8601(now),),
        )
        return [self._to_record(r) for r in rows]

    def update_next_run(self, schedule_id: str, next_run_at: datetime) -> None:
        with self.transaction():
            self.execute(
                f"UPDATE {self.TABLE} SET next_run_at = {self.ph(1)} WHERE id = {self.ph(1)}",
                (to_iso8601(next_run_at), schedule_id),
            )

    def update_last_run(self, schedule_id: str, last_run_at: datetime) -> None:
        with self.transaction():
            self.execute(
                f"UPDATE {self.TABLE} SET last_run_at = {self.ph(1)} WHERE id = {self.ph(1)}",
                (to_iso8601(last_run_at), schedule_id),
            )


# =============================================================================
# Poll triggers
# =============================================================================


class PollTriggerRepository(BaseRepository):
    """Access to ``zf_poll_triggers``."""

    TABLE = "zf_poll_triggers"

    def create_trigger(self, trigger: PollTrigger) -> None:
        self.insert(
            self.TABLE,
            {
                "id": trigger.id,
                "workflow_id": trigger.workflow_id,
                "source_name": trigger.source_name,
                "config": _dumps(trigger.config),
                "is_active": 1 if trigger.is_active else 0,
                "last_polled_at": to_iso8601(trigger.last_polled_at),
            },
        )

    def list_active(self, source_name: str | None = None) -> list[PollTrigger]:
        """Active triggers (optionally for one source) of active workflows."""
        sql = (
            f"SELECT t.id, t.workflow_id, t.source_name, t.config, t.is_active, "
            f"t.last_polled_at FROM {self.TABLE} t "
            f"JOIN zf_workflows w ON w.id = t.workflow_id "
            f"WHERE t.is_active = 1 AND w.is_active = 1"
        )
        params: tuple = ()
        if source_name is not None:
            sql += f" AND t.source_name = {self.ph(1)}"
            params = (source_name,)
        rows = self.query(sql + " ORDER BY t.id ASC", params)
        return [
            PollTrigger(
                id=r["id"],
                workflow_id=r["workflow_id"],
                source_name=r["source_name"],
                config=_loads(r["config"], {}),
                is_active=bool(r["is_active"]),
                last_polled_at=from_iso8601(r["last_polled_at"]),
            )
            for r in rows
        ]

    def mark_polled(self, trigger_id: str, polled_at: datetime) -> None:
        with self.transaction():
            self.execute(
                f"UPDATE {self.TABLE} SET last_polled_at = {self.ph(1)} WHERE id = {self.ph(1)}",
                (to_iso8601(polled_at), trigger_id),
            )


__all__ = [
    "OutboxRepository",
    "PollTriggerRepository",
    "RunRepository",
    "ScheduleRepository",
    "WorkflowRepository",
]
