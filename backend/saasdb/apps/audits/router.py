# backend/saasdb/apps/audits/router.py

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from saasdb.clock import Clock, get_clock
from saasdb.database import get_db, get_read_db
from saasdb.security import get_current_active_user, require_admin
from saasdb.apps.accounts.models import User
from saasdb.apps.software import models as software_models
from saasdb.apps.software.scope import scope_for

from . import models, schemas, services

router = APIRouter(prefix="/audits", tags=["audits"])

def _get_audit_or_404(db: Session, audit_id: str, user: User) -> models.Audit:
    try:
        return services.get_audit(db, audit_id, scope=scope_for(user))
    except services.AuditNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Audit not found",
        )


def _conflict(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get(
    "",
    response_model=List[schemas.AuditRead],
    summary="List audits for software visible to the current user",
)
def list_audits(
    pending_only: bool = False,
    software_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    qs = (
        db.query(models.Audit)
        .join(software_models.Software, software_models.Software.id == models.Audit.software_id)
        .filter(scope_for(current_user).clause())
    )
    if pending_only:
        qs = qs.filter(models.Audit.completed_date.is_(None))
    if software_id:
        qs = qs.filter(models.Audit.software_id == software_id)
    return qs.order_by(models.Audit.scheduled_date.asc()).all()


@router.post(
    "",
    response_model=schemas.AuditRead,
    status_code=status.HTTP_201_CREATED,
    summary="Plan an audit manually (replaces the pending audit)",
)
def create_audit(
    payload: schemas.AuditCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    software = db.get(software_models.Software, payload.software_id)
    if software is None or not scope_for(current_user).matches(software):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Software not found",
        )

    audit = services.create_manual_audit(
        db,
        software=software,
        scheduled_date=payload.scheduled_date,
        frequency=payload.frequency,
        notes=payload.notes,
        checklist=payload.model_dump(include=set(models.CHECKLIST_ITEMS)),
    )
    db.commit()
    db.refresh(audit)
    return audit


@router.get(
    "/upcoming",
    response_model=List[schemas.AuditDueRead],
    summary="Pending audits due within the next N days",
)
def upcoming_audits(
    days: int = Query(30, ge=0, le=366),
    db: Session = Depends(get_read_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_upcoming_audits(
        db,
        today=clock.today(),
        days_ahead=days,
        scope=scope_for(current_user),
    )


@router.get(
    "/overdue",
    response_model=List[schemas.AuditDueRead],
    summary="Pending audits whose scheduled date has passed",
)
def overdue_audits(
    db: Session = Depends(get_read_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_overdue_audits(
        db,
        today=clock.today(),
        scope=scope_for(current_user),
    )


@router.get(
    "/software/{software_id}",
    response_model=List[schemas.AuditRead],
    summary="Audit history of one software record, newest first",
)
def audits_for_software(
    software_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    software = db.get(software_models.Software, software_id)
    if software is None or not scope_for(current_user).matches(software):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Software not found",
        )
    return (
        db.query(models.Audit)
        .filter(models.Audit.software_id == software_id)
        .order_by(models.Audit.scheduled_date.desc())
        .all()
    )


@router.get(
    "/{audit_id}",
    response_model=schemas.AuditRead,
    summary="Get a single audit",
)
def get_audit(
    audit_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return _get_audit_or_404(db, audit_id, current_user)


@router.patch(
    "/{audit_id}",
    response_model=schemas.AuditRead,
    summary="Edit a pending audit",
)
def update_audit(
    audit_id: str,
    payload: schemas.AuditUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    audit = _get_audit_or_404(db, audit_id, current_user)
    try:
        services.update_audit(db, audit=audit, changes=payload.model_dump(exclude_unset=True))
    except services.AuditAlreadyCompletedError as exc:
        raise _conflict(exc)

    db.commit()
    db.refresh(audit)
    return audit


@router.post(
    "/{audit_id}/complete",
    response_model=schemas.AuditCompletionRead,
    summary="Complete an audit and schedule the next one",
)
def complete_audit(
    audit_id: str,
    payload: schemas.AuditCompletion,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(require_admin),
):
    audit = _get_audit_or_404(db, audit_id, current_user)
    changes = payload.model_dump(exclude_unset=True, exclude={"update_software_usage"})
    try:
        completed, successor = services.complete_audit(
            db,
            audit=audit,
            changes=changes,
            actor_user_id=current_user.id,
            today=clock.today(),
            write_back_usage=payload.update_software_usage,
        )
    except services.AuditAlreadyCompletedError as exc:
        raise _conflict(exc)

    db.commit()
    db.refresh(completed)
    if successor is not None:
        db.refresh(successor)
    return schemas.AuditCompletionRead(
        completed=schemas.AuditRead.model_validate(completed),
        next_audit=schemas.AuditRead.model_validate(successor) if successor is not None else None,
    )
