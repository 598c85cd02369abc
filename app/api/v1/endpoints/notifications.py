"""Push subscription and notification preference endpoints."""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api import deps
from app.config import settings
from app.db.models.notification import NotificationPreference
from app.db.models.user import User
from app.schemas.notification import (
    DispatchSummary,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    PushSubscriptionCreate,
    PushSubscriptionRead,
    PushUnsubscribe,
)
from app.services.formatting import build_app_url
from app.services.notification_service import NotificationService
from app.services.push_transport import PushPayload, PushTransport
from app.utils.exceptions import PushTransportError, handle_database_error

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _preferences_from_row(row: NotificationPreference | None) -> NotificationPreferences:
    defaults = NotificationPreferences()
    if row is None:
        return defaults
    # NULL columns fall back to the defaults
    return NotificationPreferences(
        **{
            name: getattr(row, name) if getattr(row, name) is not None else default
            for name, default in defaults.model_dump().items()
        }
    )


@router.get("/vapid-public-key")
def get_vapid_public_key() -> dict[str, str]:
    if not settings.VAPID_PUBLIC_KEY:
        raise PushTransportError("VAPID public key not configured")
    return {"publicKey": settings.VAPID_PUBLIC_KEY}


@router.post("/subscribe", response_model=PushSubscriptionRead, status_code=status.HTTP_201_CREATED)
def subscribe(
    subscription: PushSubscriptionCreate,
    user_agent: str | None = Header(default=None),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    transport: PushTransport = Depends(deps.get_transport),
) -> PushSubscriptionRead:
    service = NotificationService(db, transport=transport)
    created = service.subscribe(
        current_user.id,
        subscription.model_dump(),
        user_agent=user_agent,
        device_info=subscription.device_info,
    )
    return PushSubscriptionRead.model_validate(created)


@router.post("/unsubscribe")
def unsubscribe(
    body: PushUnsubscribe,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    transport: PushTransport = Depends(deps.get_transport),
) -> dict[str, bool]:
    service = NotificationService(db, transport=transport)
    if not service.unsubscribe(current_user.id, body.endpoint):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return {"success": True}


@router.get("/preferences", response_model=NotificationPreferences)
def get_preferences(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> NotificationPreferences:
    row = db.scalars(
        select(NotificationPreference).where(NotificationPreference.user_id == current_user.id)
    ).first()
    return _preferences_from_row(row)


@router.put("/preferences", response_model=NotificationPreferences)
def update_preferences(
    update: NotificationPreferencesUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> NotificationPreferences:
    row = db.scalars(
        select(NotificationPreference).where(NotificationPreference.user_id == current_user.id)
    ).first()
    if row is None:
        row = NotificationPreference(user_id=current_user.id, **NotificationPreferences().model_dump())
        db.add(row)

    for name, value in update.model_dump(exclude_none=True).items():
        setattr(row, name, value)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise handle_database_error(exc) from exc
    db.refresh(row)
    return _preferences_from_row(row)


@router.post("/test", response_model=DispatchSummary)
def send_test_notification(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    transport: PushTransport = Depends(deps.get_transport),
) -> DispatchSummary:
    service = NotificationService(db, transport=transport)
    payload = PushPayload(
        title="Notifications are on",
        body="This is a test notification.",
        url=build_app_url("/"),
        data={"type": "test", "id": str(current_user.id)},
    )
    # Sync route, executed in the threadpool
    result = asyncio.run(service.send_to_user(current_user.id, payload, "test"))
    return DispatchSummary(**result.as_dict())
