"""Change-detection poller for sources without push notifications.

ALGORITHM
─────────
::

    snapshot = source.fetch(trigger)          (through the resilience layer)
    previous = store.load(trigger.id)         row_key → hash
    for record in snapshot.records:
        h = hash_row(record.values)
        previous hash exists and differs → UPDATED (reported)
        no previous hash                → baseline (not reported)
    store.save(trigger.id, all new hashes)    unconditional, TTL refreshed

Writing every hash back on every poll keeps the state self-correcting after
missed cycles. Two overlapping polls of the same trigger can race on the
hash write; callers serialize polls per trigger.

:class:`PollOrchestrator` sweeps all active triggers, turns each update into
a :class:`TriggerEvent` for the run creator, and isolates failures per
trigger so one broken source never stops the sweep.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from zapflow.core.errors import SourceError
from zapflow.core.hashing import hash_row
from zapflow.core.logging import LogContext, get_logger
from zapflow.core.models import PollTrigger, Run, TriggerEvent, TriggerSource, UpdatedRecord
from zapflow.core.repositories import PollTriggerRepository
from zapflow.core.timestamps import utc_now
from zapflow.execution.outbox import RunCreator
from zapflow.execution.resilience import ResiliencePool
from zapflow.polling.rowhash import RowHashStore
from zapflow.polling.sources import RecordSource

logger = get_logger(__name__)


class ChangeDetectionPoller:
    """Diffs a source's records against the stored row hashes."""

    def __init__(
        self,
        store: RowHashStore,
        clients: ResiliencePool,
        *,
        cost_units: int = 1,
    ):
        self.store = store
        self.clients = clients
        self.cost_units = cost_units

    def poll(self, trigger: PollTrigger, source: RecordSource) -> list[UpdatedRecord]:
        """Fetch, diff and persist hashes; return records whose content changed.

        Raises:
            ClassifiedApiError: If the fetch fails after retries
        """
        client = self.clients.get(source.service)
        snapshot = client.call(functools.partial(source.fetch, trigger), self.cost_units)

        previous = self.store.load(trigger.id)
        current: dict[str, str] = {}
        updated: list[UpdatedRecord] = []
        for record in snapshot.records:
            digest = hash_row(record.values)
            current[record.row_key] = digest
            old = previous.get(record.row_key)
            if old is not None and old != digest:
                updated.append(
                    UpdatedRecord(
                        row_key=record.row_key,
                        row_number=record.row_number,
                        row_data=snapshot.row_data(record),
                    )
                )

        self.store.save(trigger.id, current)
        logger.info(
            "poll_completed",
            trigger_id=trigger.id,
            records=len(snapshot.records),
            baseline=sum(1 for k in current if k not in previous),
            updated=len(updated),
        )
        return updated


@dataclass
class PollSummary:
    """Result of one sweep over a set of triggers."""

    service: str
    processed: int = 0
    errors: int = 0
    duration: float = 0.0
    updates: int = 0
    runs_created: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "processed": self.processed,
            "errors": self.errors,
            "duration": round(self.duration, 3),
            "updates": self.updates,
            "runs_created": len(self.runs_created),
        }


class PollOrchestrator:
    """Polls every active trigger and admits each update as a Run."""

    def __init__(
        self,
        poller: ChangeDetectionPoller,
        run_creator: RunCreator,
        triggers: PollTriggerRepository,
        sources: Mapping[str, RecordSource],
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.poller = poller
        self.run_creator = run_creator
        self.triggers = triggers
        self.sources = dict(sources)
        self._clock = clock

    def poll_trigger(self, trigger: PollTrigger) -> list[Run]:
        source = self.sources.get(trigger.source_name)
        if source is None:
            raise SourceError(f"No source registered for '{trigger.source_name}'")

        runs = []
        for update in self.poller.poll(trigger, source):
            event = TriggerEvent(
                workflow_id=trigger.workflow_id,
                payload=update.to_payload(),
                source=TriggerSource.POLLER,
                received_at=self._clock(),
            )
            runs.append(self.run_creator.admit(event))
        self.triggers.mark_polled(trigger.id, self._clock())
        return runs

    def poll_all(
        self,
        triggers: Iterable[PollTrigger] | None = None,
        service: str | None = None,
    ) -> PollSummary:
        """Poll ``triggers`` (default: every active trigger, optionally of one source)."""
        started = time.monotonic()
        summary = PollSummary(service=service or "all")
        selected = list(triggers) if triggers is not None else self.triggers.list_active(service)

        for trigger in selected:
            with LogContext(trigger_id=trigger.id, workflow_id=trigger.workflow_id):
                try:
                    runs = self.poll_trigger(trigger)
                except Exception:
                    summary.errors += 1
                    logger.exception("poll_trigger_failed", source=trigger.source_name)
                    continue
                summary.processed += 1
                summary.updates += len(runs)
                summary.runs_created.extend(run.id for run in runs)

        summary.duration = time.monotonic() - started
        logger.info("poll_sweep_completed", **summary.to_dict())
        return summary


__all__ = ["ChangeDetectionPoller", "PollOrchestrator", "PollSummary"]
