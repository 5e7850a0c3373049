"""Action executor and outbox worker.

ARCHITECTURE
────────────
::

    OutboxWorker.process_pending(limit)
      │  claim_pending(limit)          ← compare-and-set on claimed_at
      ▼
    ActionExecutor.execute_workflow(run_id)      (one run at a time)
      │  load Run, Workflow snapshot
      │  missing / inactive / filters fail → skip (logged, not an error)
      │
      │  for step in steps (ascending order):
      │      handler = registry.get(step.action_type)
      │      metadata = render(step.metadata_template, run.payload)
      │      outcome = pool.get(handler.service).execute(handler.execute)
      │      Ok → actions_executed += 1      else → errors.append(...)
      │
      └─ mark_processed(run_id)        ← exactly once, even with errors

Failures never abort the chain: a run whose actions partly failed is still
processed. A crash inside ``execute_workflow`` leaves the entry claimed; it
is re-claimed once the lease expires.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from zapflow.core.dialect import Dialect
from zapflow.core.errors import RunNotFoundError, ZapflowError
from zapflow.core.logging import LogContext, get_logger
from zapflow.core.models import ActionStep, Run
from zapflow.core.protocols import Connection
from zapflow.core.repositories import OutboxRepository, RunRepository, WorkflowRepository
from zapflow.core.timestamps import utc_now
from zapflow.execution.actions import ActionRegistry, render_template
from zapflow.execution.filters import evaluate_filters
from zapflow.execution.resilience import ResiliencePool

logger = get_logger(__name__)


@dataclass
class ActionResult:
    order: int
    action_type: str
    ok: bool
    value: Any = None
    error: dict[str, Any] | None = None


@dataclass
class ExecutionReport:
    """Outcome of one run's action chain."""

    run_id: str
    workflow_id: str
    actions_executed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    results: list[ActionResult] = field(default_factory=list)
    skipped_reason: str | None = None
    processed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "actions_executed": self.actions_executed,
            "errors": list(self.errors),
            "skipped_reason": self.skipped_reason,
            "processed": self.processed,
        }


class ActionExecutor:
    """Executes a run's ordered action chain with continue-on-error."""

    def __init__(
        self,
        conn: Connection,
        registry: ActionRegistry,
        clients: ResiliencePool,
        dialect: Dialect | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.runs = RunRepository(conn, dialect)
        self.workflows = WorkflowRepository(conn, dialect)
        self.outbox = OutboxRepository(conn, dialect)
        self.registry = registry
        self.clients = clients
        self._clock = clock

    def execute_workflow(self, run_id: str) -> ExecutionReport:
        """Run every action of the run's workflow, then mark the run processed.

        Raises:
            RunNotFoundError: If ``run_id`` does not resolve to a stored run
        """
        run = self.runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)

        report = ExecutionReport(run_id=run.id, workflow_id=run.workflow_id)
        with LogContext(run_id=run.id, workflow_id=run.workflow_id):
            entry = self.outbox.get(run.id)
            if entry is not None and entry["processed"]:
                report.skipped_reason = "already_processed"
                logger.warning("outbox_entry_already_processed")
                return report

            workflow = self.workflows.get_workflow(run.workflow_id)
            if workflow is None:
                report.skipped_reason = "workflow_missing"
            elif not workflow.is_active:
                report.skipped_reason = "workflow_inactive"
            elif not evaluate_filters(workflow.filters, run.payload):
                report.skipped_reason = "filters_not_met"
            else:
                for step in sorted(workflow.steps, key=lambda s: s.order):
                    self._execute_step(step, run, report)

            if report.skipped_reason:
                logger.info("run_skipped", reason=report.skipped_reason)

            report.processed = self.outbox.mark_processed(run.id, self._clock())
            if not report.processed:
                logger.warning("outbox_entry_already_processed")

            logger.info(
                "run_completed",
                actions_executed=report.actions_executed,
                errors=len(report.errors),
            )
        return report

    def _execute_step(self, step: ActionStep, run: Run, report: ExecutionReport) -> None:
        with LogContext(action_type=step.action_type, step_order=step.order):
            try:
                handler = self.registry.get(step.action_type)
                metadata = render_template(
                    step.metadata_template, run.payload, handler.placeholder_style
                )
            except ZapflowError as exc:
                self._record_error(step, report, {"type": type(exc).__name__, "message": exc.message})
                return

            client = self.clients.get(handler.service)
            outcome = client.execute(functools.partial(handler.execute, metadata, run.payload))
            if outcome.is_ok():
                report.actions_executed += 1
                report.results.append(
                    ActionResult(step.order, step.action_type, ok=True, value=outcome.value)
                )
                logger.info("action_succeeded")
            else:
                self._record_error(step, report, outcome.error.to_dict())

    @staticmethod
    def _record_error(step: ActionStep, report: ExecutionReport, error: dict[str, Any]) -> None:
        entry = {"order": step.order, "action_type": step.action_type, **error}
        report.errors.append(entry)
        report.results.append(ActionResult(step.order, step.action_type, ok=False, error=error))
        logger.error("action_failed", **error)


@dataclass
class DrainResult:
    """Summary of one ``process_pending`` call."""

    claimed: int = 0
    reports: list[ExecutionReport] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for r in self.reports if r.processed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "claimed": self.claimed,
            "processed": self.processed,
            "reports": [r.to_dict() for r in self.reports],
            "failures": list(self.failures),
        }


class OutboxWorker:
    """Drains pending outbox entries through an :class:`ActionExecutor`."""

    def __init__(
        self,
        conn: Connection,
        executor: ActionExecutor,
        dialect: Dialect | None = None,
        *,
        batch_size: int = 50,
        lease_seconds: float = 300.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.outbox = OutboxRepository(conn, dialect)
        self.executor = executor
        self.batch_size = batch_size
        self.lease_seconds = lease_seconds
        self._clock = clock

    def process_pending(self, limit: int | None = None) -> DrainResult:
        """Claim up to ``limit`` entries and execute each run in isolation."""
        run_ids = self.outbox.claim_pending(
            limit or self.batch_size, self._clock(), self.lease_seconds
        )
        result = DrainResult(claimed=len(run_ids))
        for run_id in run_ids:
            try:
                result.reports.append(self.executor.execute_workflow(run_id))
            except Exception as exc:
                logger.exception("run_processing_failed", run_id=run_id)
                result.failures.append({"run_id": run_id, "error": str(exc)})
        if run_ids:
            logger.info(
                "outbox_drained",
                claimed=result.claimed,
                processed=result.processed,
                failures=len(result.failures),
            )
        return result


__all__ = [
    "ActionExecutor",
    "ActionResult",
    "DrainResult",
    "ExecutionReport",
    "OutboxWorker",
]
