from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from saasdb.database import get_db
from saasdb.security import get_current_active_user, get_user_by_id, require_admin
from saasdb.apps.accounts.models import User

from . import models, schemas, service


router = APIRouter(prefix="/notifications", tags=["notifications"])


def _target_user_id(current_user: User, user_id: Optional[str]) -> str:
    """Users manage their own preferences; administrators may manage anyone's."""
    if not user_id or user_id == current_user.id:
        return current_user.id
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can manage other users' preferences",
        )
    return user_id


@router.get("/preferences", response_model=List[schemas.NotificationPreferenceRead])
def list_preferences(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return service.list_preferences(db, user_id=_target_user_id(current_user, user_id))


@router.put(
    "/preferences/{notification_type}",
    response_model=schemas.NotificationPreferenceRead,
)
def update_preference(
    notification_type: models.NotificationType,
    payload: schemas.NotificationPreferenceUpdate,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    target_id = _target_user_id(current_user, user_id)
    if get_user_by_id(db, target_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    pref = service.upsert_preference(
        db,
        user_id=target_id,
        notification_type=notification_type,
        changes=payload.model_dump(exclude_unset=True),
    )
    db.commit()
    db.refresh(pref)
    return pref


@router.get("/email-logs", response_model=List[schemas.EmailLogRead])
def list_email_logs(
    status_filter: Optional[models.EmailStatus] = Query(None, alias="status"),
    template_key: Optional[str] = None,
    recipient: Optional[str] = None,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    qs = db.query(models.EmailLog)
    if status_filter:
        qs = qs.filter(models.EmailLog.status == status_filter)
    if template_key:
        qs = qs.filter(models.EmailLog.template_key == template_key)
    if recipient:
        qs = qs.filter(models.EmailLog.recipient.ilike(f"%{recipient}%"))
    if start:
        qs = qs.filter(models.EmailLog.created_at >= start)
    if end:
        qs = qs.filter(models.EmailLog.created_at <= end)
    return qs.order_by(models.EmailLog.created_at.desc()).all()
