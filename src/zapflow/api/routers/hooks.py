"""Inbound webhook endpoint.

``POST /hooks/{user_id}/{workflow_id}`` admits the JSON body as the payload
of a new Run. The run is durable once the 201 is returned; execution happens
when the outbox is drained.

When the container carries a ``verify_signature`` gate, a rejected request
gets 401 and nothing is written.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from zapflow.api.deps import Container
from zapflow.core.logging import get_logger
from zapflow.core.models import TriggerEvent, TriggerSource

logger = get_logger(__name__)

router = APIRouter(prefix="/hooks", tags=["hooks"])


class HookResponse(BaseModel):
    message: str = "Hook triggered"
    run_id: str


def _payload(raw: bytes) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Body must be JSON") from exc
    return body if isinstance(body, dict) else {"body": body}


@router.post("/{user_id}/{workflow_id}", status_code=201, response_model=HookResponse)
async def trigger_hook(
    user_id: str, workflow_id: str, request: Request, container: Container
) -> HookResponse:
    raw = await request.body()

    if container.verify_signature is not None:
        if not container.verify_signature(workflow_id, dict(request.headers), raw):
            logger.warning("hook_signature_rejected", user_id=user_id, workflow_id=workflow_id)
            raise HTTPException(status_code=401, detail="Invalid signature")

    event = TriggerEvent(
        workflow_id=workflow_id,
        payload=_payload(raw),
        source=TriggerSource.WEBHOOK,
        received_at=container.clock(),
    )
    # sqlite writes block; keep them off the event loop
    run = await run_in_threadpool(container.run_creator.admit, event)
    logger.info("hook_triggered", user_id=user_id, workflow_id=workflow_id, run_id=run.id)
    return HookResponse(run_id=run.id)


__all__ = ["router"]
