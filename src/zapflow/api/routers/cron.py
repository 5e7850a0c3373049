"""Worker endpoints for an external cron.

``POST /process``                 drain pending outbox entries
``POST /poll``                    poll every active trigger (``?service=`` narrows)
``POST /cron/process-schedules``  fire due schedules

All three sit behind the optional cron secret.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from zapflow.api.deps import Container, CronAuth

router = APIRouter(tags=["cron"])


@router.post("/process")
def process_outbox(container: Container, _: CronAuth, limit: int | None = None) -> dict[str, Any]:
    result = container.worker.process_pending(limit)
    return {"success": True, **result.to_dict()}


@router.post("/poll")
def poll_triggers(container: Container, _: CronAuth, service: str | None = None) -> dict[str, Any]:
    summary = container.poll_orchestrator.poll_all(service=service)
    return {"success": True, **summary.to_dict()}


@router.post("/cron/process-schedules")
def process_schedules(container: Container, _: CronAuth) -> dict[str, Any]:
    result = container.schedules.tick()
    return {"success": True, **result.to_dict()}


__all__ = ["router"]
