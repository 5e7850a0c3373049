"""
FastAPI dependency injection — the container and the cron-secret gate.

Usage in routers::

    from zapflow.api.deps import Container, CronAuth

    @router.post("/process")
    def process(container: Container, _: CronAuth):
        ...
"""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from zapflow.container import ZapflowContainer


def get_container(request: Request) -> ZapflowContainer:
    """The container stashed on ``app.state`` by :func:`create_app`."""
    return request.app.state.container


Container = Annotated[ZapflowContainer, Depends(get_container)]


def _provided_secret(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return request.headers.get("x-cron-secret")


def require_cron_secret(request: Request, container: Container) -> None:
    """Reject the request unless it carries the configured cron secret.

    No secret configured → the gate is open.
    """
    expected = container.settings.cron_secret
    if not expected:
        return
    provided = _provided_secret(request)
    if provided is None or not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


CronAuth = Annotated[None, Depends(require_cron_secret)]


__all__ = ["Container", "CronAuth", "get_container", "require_cron_secret"]
