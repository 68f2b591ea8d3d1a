"""FastAPI dependencies for the notifications feature.

Provides Annotated type aliases for dependency injection in route handlers.

Example usage:
    @router.get("/notifications")
    async def list_notifications(
        user_id: CurrentUserIdDep,
        session: SessionDep,
        service: NotificationServiceDep,
    ) -> NotificationListResponse:
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from notify_service.core.exceptions import ConfigurationException, UnauthorizedException
from notify_service.features.notifications.runtime import NotificationRuntime
from notify_service.features.notifications.service import NotificationService
from notify_service.infra.database.session import get_db_session

SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_current_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    """Caller identity set by the upstream gateway.

    Raises:
        UnauthorizedException: If the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedException(detail="X-User-Id header is required", type="missing-user-id")
    return x_user_id.strip()


CurrentUserIdDep = Annotated[str, Depends(get_current_user_id)]


def get_notification_runtime(request: Request) -> NotificationRuntime:
    runtime: NotificationRuntime | None = getattr(request.app.state, "notification_runtime", None)
    if runtime is None:
        raise ConfigurationException(
            detail="Notification runtime is not started", type="runtime-unavailable"
        )
    return runtime


RuntimeDep = Annotated[NotificationRuntime, Depends(get_notification_runtime)]


def get_notification_service(runtime: RuntimeDep) -> NotificationService:
    return runtime.service


NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]


__all__ = [
    "CurrentUserIdDep",
    "NotificationServiceDep",
    "RuntimeDep",
    "SessionDep",
    "get_current_user_id",
    "get_notification_runtime",
    "get_notification_service",
]
