from typing import Optional, get_args

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import notifier
from dependencies import get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice, normalize_limit, normalize_offset
from models import Notification, NotificationSettingIn, NotificationStatus

router = APIRouter(prefix="/notifications")
NOTIFICATION_STATUSES = set(get_args(NotificationStatus))


@router.get("", response_model=list[Notification])
def list_notifications_api(
    status: Optional[str] = None,
    event_type: Optional[str] = None,
    recipient_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return notifier.list_notifications(
        db,
        status=normalize_choice(status, NOTIFICATION_STATUSES),
        event_type=blank_to_none(event_type),
        recipient_id=blank_to_none(recipient_id),
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
    )


@router.put("/settings/{event_type}", status_code=204, dependencies=[Depends(get_actor)])
def set_notification_setting_api(
    event_type: str,
    body: NotificationSettingIn,
    db: Session = Depends(get_db),
):
    if not notifier.set_notification_enabled(db, event_type, body.enabled):
        raise HTTPException(status_code=404, detail="unknown notification type")
    return None
