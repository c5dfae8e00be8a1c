from __future__ import annotations

from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from pointmart_api.core.settings import settings
from pointmart_api.db.session import get_session

router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")
    last_success_at: str | None = Field(default=None, description="ISO timestamp of most recent success")
    metrics: Dict[str, Any] | None = None


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - depends on a broken database
        components["database"] = ComponentStatus(status="error", detail=str(exc))
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    worker = getattr(request.app.state, "accrual_worker", None)
    if settings.accrual_worker_enabled and worker is not None:
        metrics = worker.metrics
        running = worker.is_running
        worker_status: Literal["ready", "starting", "disabled", "error", "degraded"]
        worker_status = "ready" if running else "starting"
        detail: str | None = None
        if not running:
            detail = f"Accrual worker is {worker.state.value}"
            status = "degraded" if status != "error" else status
        elif metrics.last_error_at and (
            metrics.last_success_at is None or metrics.last_error_at > metrics.last_success_at
        ):
            worker_status = "degraded"
            detail = metrics.last_error
            status = "degraded" if status != "error" else status
        components["accrual_worker"] = ComponentStatus(
            status=worker_status,
            detail=detail,
            last_error_at=metrics.last_error_at.isoformat() if metrics.last_error_at else None,
            last_success_at=metrics.last_success_at.isoformat() if metrics.last_success_at else None,
            metrics=metrics.snapshot(),
        )
    else:
        components["accrual_worker"] = ComponentStatus(
            status="disabled",
            detail="Accrual worker disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)
