"""Liveness and resilience status."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from zapflow import __version__
from zapflow.api.deps import Container

router = APIRouter(tags=["health"])


@router.get("/health")
def health(container: Container) -> dict[str, Any]:
    return {"version": __version__, **container.health()}


__all__ = ["router"]
