"""Engine data model.

Manifesto:
    Runs are immutable execution records and a workflow definition is read
    once per run as a snapshot, so these types are frozen dataclasses.
    Mutable progress (outbox state, schedule bookkeeping) lives in the
    database rows, not in these objects.

Tags:
    zapflow, models, dataclasses, schema-mapping
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from zapflow.core.timestamps import to_iso8601, utc_now


class TriggerSource(str, Enum):
    """Where an inbound event came from."""

    WEBHOOK = "webhook"
    POLLER = "poller"
    SCHEDULE = "schedule"
    MANUAL = "manual"


class ScheduleType(str, Enum):
    MINUTELY = "minutely"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# ---------------------------------------------------------------------------
# Events and runs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TriggerEvent:
    """Inbound payload plus metadata. Not persisted beyond its Run."""

    workflow_id: str
    payload: dict[str, Any]
    source: TriggerSource = TriggerSource.MANUAL
    received_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class Run:
    """One execution instance of a workflow (``zf_runs``)."""

    id: str
    workflow_id: str
    payload: dict[str, Any]
    created_at: datetime
    source: TriggerSource = TriggerSource.MANUAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "payload": self.payload,
            "source": self.source.value,
            "created_at": to_iso8601(self.created_at),
        }


@dataclass
class OutboxEntry:
    """Processing marker for a run (``zf_outbox``)."""

    run_id: str
    processed: bool = False
    claimed_at: datetime | None = None
    processed_at: datetime | None = None


# ---------------------------------------------------------------------------
# Workflow definition snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilterCondition:
    """``payload[field] <operator> value``; all conditions of a workflow are AND-ed."""

    field: str
    operator: str
    value: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterCondition:
        return cls(field=data["field"], operator=data["operator"], value=data.get("value"))


@dataclass(frozen=True)
class ActionStep:
    order: int
    action_type: str
    metadata_template: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Workflow:
    """Read-only snapshot of a workflow and its ordered action chain."""

    id: str
    name: str = ""
    is_active: bool = True
    filters: tuple[FilterCondition, ...] = ()
    steps: tuple[ActionStep, ...] = ()
    user_id: str | None = None


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduleSpec:
    """Declarative timing of a recurring trigger.

    ``day_of_week`` uses 0 = Sunday through 6 = Saturday.
    """

    schedule_type: ScheduleType
    minute: int = 0
    hour: int | None = None
    day_of_week: int | None = None
    day_of_month: int | None = None
    timezone: str = "UTC"


@dataclass(frozen=True)
class ScheduleRecord:
    """Stored schedule (``zf_schedules``)."""

    id: str
    workflow_id: str
    spec: ScheduleSpec
    next_run_at: datetime
    last_run_at: datetime | None = None
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "schedule_type": self.spec.schedule_type.value,
            "hour": self.spec.hour,
            "minute": self.spec.minute,
            "day_of_week": self.spec.day_of_week,
            "day_of_month": self.spec.day_of_month,
            "timezone": self.spec.timezone,
            "last_run_at": to_iso8601(self.last_run_at),
            "next_run_at": to_iso8601(self.next_run_at),
            "is_active": self.is_active,
        }


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PollTrigger:
    """A watched source bound to a workflow (``zf_poll_triggers``)."""

    id: str
    workflow_id: str
    source_name: str
    config: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    last_polled_at: datetime | None = None


@dataclass(frozen=True)
class UpdatedRecord:
    """A watched record whose content hash changed since the last poll."""

    row_key: str
    row_number: int
    row_data: dict[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {"row_number": self.row_number, "row_data": dict(self.row_data)}


__all__ = [
    "ActionStep",
    "FilterCondition",
    "OutboxEntry",
    "PollTrigger",
    "Run",
    "ScheduleRecord",
    "ScheduleSpec",
    "ScheduleType",
    "TriggerEvent",
    "TriggerSource",
    "UpdatedRecord",
    "Workflow",
]
