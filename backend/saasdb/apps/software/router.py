# backend/saasdb/apps/software/router.py

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from saasdb.clock import Clock, get_clock
from saasdb.database import get_db, get_read_db
from saasdb.security import get_current_active_user, require_admin, require_roles
from saasdb.apps.accounts.models import User, UserRole

from . import models, schemas, services
from .scope import scope_for

router = APIRouter(prefix="/software", tags=["software"])

_require_editor = require_roles(UserRole.ADMINISTRATOR, UserRole.SOFTWARE_OWNER)


def _get_in_scope_or_404(db: Session, software_id: str, user: User) -> models.Software:
    try:
        return services.get_software(db, software_id, scope=scope_for(user))
    except services.SoftwareNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Software not found",
        )


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ---------------------------------------------------------------------------
# SOFTWARE
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=List[schemas.SoftwareRead],
    summary="List software visible to the current user",
)
def list_software(
    status_filter: Optional[models.SoftwareStatus] = None,
    search: Optional[str] = None,
    limit: int = 200,
    offset: int = 0,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_software(
        db,
        scope=scope_for(current_user),
        status=status_filter,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{software_id}",
    response_model=schemas.SoftwareRead,
    summary="Get a single software record",
)
def get_software(
    software_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return _get_in_scope_or_404(db, software_id, current_user)


@router.post(
    "",
    response_model=schemas.SoftwareRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a software record and schedule its first audit",
)
def create_software(
    payload: schemas.SoftwareCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(_require_editor),
):
    data = payload.model_dump()
    # Software owners can only create records they own.
    if current_user.role == UserRole.SOFTWARE_OWNER:
        data["owner_id"] = current_user.id

    try:
        software = services.create_software(db, data=data, today=clock.today())
    except (services.InvalidContractPeriodError, services.DepartmentNotFoundError) as exc:
        db.rollback()
        raise _bad_request(exc)

    db.commit()
    db.refresh(software)
    return software


@router.patch(
    "/{software_id}",
    response_model=schemas.SoftwareRead,
    summary="Update a software record (reschedules audits when audit_frequency is sent)",
)
def update_software(
    software_id: str,
    payload: schemas.SoftwareUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(_require_editor),
):
    software = _get_in_scope_or_404(db, software_id, current_user)
    changes = payload.model_dump(exclude_unset=True)
    if current_user.role == UserRole.SOFTWARE_OWNER:
        changes.pop("owner_id", None)

    try:
        services.update_software(db, software=software, changes=changes, today=clock.today())
    except (services.InvalidContractPeriodError, services.DepartmentNotFoundError) as exc:
        db.rollback()
        raise _bad_request(exc)

    db.commit()
    db.refresh(software)
    return software


@router.delete(
    "/{software_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a software record (administrators only)",
)
def delete_software(
    software_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    software = _get_in_scope_or_404(db, software_id, current_user)
    services.delete_software(db, software=software)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# CONTRACTS
# ---------------------------------------------------------------------------


@router.get(
    "/{software_id}/contract-history",
    response_model=List[schemas.ContractHistoryRead],
    summary="Past contract periods, newest first",
)
def get_contract_history(
    software_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    software = _get_in_scope_or_404(db, software_id, current_user)
    return services.list_contract_history(db, software=software)


@router.post(
    "/{software_id}/renew",
    response_model=schemas.SoftwareRead,
    summary="Manually renew a contract (administrators only)",
)
def renew_software(
    software_id: str,
    payload: schemas.ContractRenewalRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    software = _get_in_scope_or_404(db, software_id, current_user)
    try:
        services.renew_software(
            db,
            software=software,
            terms=payload.model_dump(exclude_unset=True),
            actor_user_id=current_user.id,
        )
    except services.InvalidContractPeriodError as exc:
        db.rollback()
        raise _bad_request(exc)

    db.commit()
    db.refresh(software)
    return software


@router.post(
    "/{software_id}/expire",
    response_model=schemas.SoftwareRead,
    summary="Mark a contract expired (administrators only)",
)
def expire_software(
    software_id: str,
    payload: schemas.ContractExpireRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    software = _get_in_scope_or_404(db, software_id, current_user)
    services.expire_software(
        db,
        software=software,
        actor_user_id=current_user.id,
        note=payload.notes,
    )
    db.commit()
    db.refresh(software)
    return software
