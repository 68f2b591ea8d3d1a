"""Router registration for the FastAPI application."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from notify_service.features.notifications.router import router as notifications_router

if TYPE_CHECKING:
    from fastapi import FastAPI

    from notify_service.core.settings import AppSettings

metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics (delivery, rate limiting, reminders)."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


def setup_routers(app: FastAPI, app_settings: AppSettings) -> None:
    app.include_router(metrics_router)
    app.include_router(notifications_router, prefix=app_settings.api_prefix)
