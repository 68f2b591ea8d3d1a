"""API router for the notifications feature.

Recipient endpoints (caller identified by the ``X-User-Id`` header):
- GET /notifications - Inbox, newest first
- GET /notifications/{notification_id}/status - Per-channel delivery status
- POST /notifications/{notification_id}/read - Mark as read
- DELETE /notifications/{notification_id}?role=recipient|sender - Soft delete
- GET /notifications/preferences - Resolved preferences
- PUT /notifications/preferences - Partial preference update

Provider endpoint:
- POST /notifications/callbacks/delivery - Delivery status callback
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from notify_service.features.notifications.dependencies import (
    CurrentUserIdDep,
    NotificationServiceDep,
    RuntimeDep,
    SessionDep,
)
from notify_service.features.notifications.exceptions import NotificationAccessDeniedError
from notify_service.features.notifications.schemas import (
    DeliveryCallback,
    DeliveryCallbackResponse,
    DeliveryStatusResponse,
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationStatusResponse,
    PreferenceResponse,
    PreferenceUpdate,
)
from notify_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from notify_service.features.notifications.preferences import ResolvedPreferences

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

TenantQuery = Annotated[
    str | None,
    Query(max_length=64, description="Tenant scope; omit for the user's global preferences"),
]


def _preference_response(resolved: ResolvedPreferences) -> PreferenceResponse:
    return PreferenceResponse(
        enabled_channels=sorted(resolved.enabled_channels),
        enabled_kinds=sorted(resolved.enabled_kinds),
        frequency=resolved.frequency,
        source=resolved.source,
    )


# ============================================================================
# Provider callbacks
# ============================================================================


@router.post(
    "/callbacks/delivery",
    response_model=DeliveryCallbackResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Provider delivery callback",
    description="""
Apply a provider-reported status change to the delivery ledger.

Unknown message ids and out-of-order transitions are acknowledged with
`accepted: false` so providers stop retrying.
""",
)
async def delivery_callback(
    payload: DeliveryCallback,
    session: SessionDep,
    runtime: RuntimeDep,
) -> DeliveryCallbackResponse:
    row = await runtime.tracker.handle_delivery_callback(
        session,
        payload.channel.value,
        payload.provider_message_id,
        payload.status.value,
        delivered_at=payload.delivered_at,
        read_at=payload.read_at,
        error=payload.error,
    )
    return DeliveryCallbackResponse(accepted=row is not None)


# ============================================================================
# Preferences
# ============================================================================


@router.get("/preferences", response_model=PreferenceResponse, summary="Get preferences")
async def get_preferences(
    user_id: CurrentUserIdDep,
    session: SessionDep,
    runtime: RuntimeDep,
    tenant_id: TenantQuery = None,
) -> PreferenceResponse:
    resolved = await runtime.preferences.get_user_preferences(session, user_id, tenant_id)
    return _preference_response(resolved)


@router.put("/preferences", response_model=PreferenceResponse, summary="Update preferences")
async def update_preferences(
    payload: PreferenceUpdate,
    user_id: CurrentUserIdDep,
    session: SessionDep,
    runtime: RuntimeDep,
    tenant_id: TenantQuery = None,
) -> PreferenceResponse:
    """Only the fields present in the body change; the rest keep their value."""
    changes = payload.model_dump(mode="json", exclude_unset=True)
    await runtime.preferences.update_user_preferences(session, user_id, tenant_id, **changes)
    resolved = await runtime.preferences.get_user_preferences(session, user_id, tenant_id)
    return _preference_response(resolved)


# ============================================================================
# Inbox and per-notification endpoints
# ============================================================================


@router.get("", response_model=NotificationListResponse, summary="List inbox")
async def list_notifications(
    user_id: CurrentUserIdDep,
    session: SessionDep,
    service: NotificationServiceDep,
    unread_only: Annotated[bool, Query(description="Only unread notifications")] = False,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> NotificationListResponse:
    items = await service.list_for_recipient(
        session, user_id, unread_only=unread_only, limit=limit, offset=offset
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(item) for item in items],
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{notification_id}/status",
    response_model=NotificationStatusResponse,
    summary="Delivery status",
    responses={
        403: {"description": "Caller is neither sender nor recipient"},
        404: {"description": "Notification not found"},
    },
)
async def get_notification_status(
    notification_id: UUID,
    user_id: CurrentUserIdDep,
    session: SessionDep,
    service: NotificationServiceDep,
) -> NotificationStatusResponse:
    view = await service.get_notification_status(session, notification_id)
    if user_id not in (view.notification.sender_id, view.notification.recipient_id):
        logger.warning(
            "Status requested by unrelated user",
            extra={
                "notification_id": str(notification_id),
                "user_id": user_id,
                "operation": "notification.status",
            },
        )
        raise NotificationAccessDeniedError(notification_id, user_id, role="sender or recipient")

    return NotificationStatusResponse(
        notification=NotificationResponse.model_validate(view.notification),
        overall_status=view.overall_status,
        deliveries=[DeliveryStatusResponse.model_validate(row) for row in view.deliveries],
        queued_channels=list(view.queued_channels),
    )


@router.post(
    "/{notification_id}/read",
    response_model=MarkReadResponse,
    summary="Mark as read",
    responses={
        403: {"description": "Caller is not the recipient"},
        404: {"description": "Notification not found"},
    },
)
async def mark_notification_read(
    notification_id: UUID,
    user_id: CurrentUserIdDep,
    session: SessionDep,
    service: NotificationServiceDep,
) -> MarkReadResponse:
    transitioned = await service.mark_as_read(session, notification_id, user_id)
    lazy_logger.debug(lambda: f"mark_read({notification_id}) -> {transitioned} rows")
    return MarkReadResponse(notification_id=notification_id, transitioned=transitioned)


@router.delete(
    "/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete notification",
    description="Hide the notification for one side; the other side still sees it.",
)
async def delete_notification(
    notification_id: UUID,
    user_id: CurrentUserIdDep,
    session: SessionDep,
    service: NotificationServiceDep,
    role: Annotated[Literal["recipient", "sender"], Query()] = "recipient",
) -> Response:
    await service.delete_notification(session, notification_id, user_id, role)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
