from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from lexhold.api.deps import get_db
from lexhold.schemas.notification import (
    NotificationPreferenceRead,
    NotificationPreferenceUpdate,
)
from lexhold.services import notification as notification_service

router = APIRouter(
    prefix="/notification-preferences", tags=["notification-preferences"]
)


@router.get("/{email}", response_model=NotificationPreferenceRead)
def get_notification_preference(
    email: str, db: Session = Depends(get_db)
) -> NotificationPreferenceRead:
    return notification_service.notification_preferences.get_or_create(db, email)


@router.put("/{email}", response_model=NotificationPreferenceRead)
def update_notification_preference(
    email: str,
    payload: NotificationPreferenceUpdate,
    db: Session = Depends(get_db),
) -> NotificationPreferenceRead:
    return notification_service.notification_preferences.upsert(db, email, payload)
