# backend/saasdb/apps/software/services.py

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from saasdb.apps.accounts.models import Department
from saasdb.apps.audits import services as audit_services
from saasdb.apps.renewals import services as renewal_services
from saasdb.apps.renewals.services import ContractPeriod, InvalidContractPeriodError

from . import models
from .models import ContractHistoryStatus, SoftwareNotFoundError
from .scope import SoftwareScope

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DepartmentNotFoundError(LookupError):
    """Raised when a department id in a request does not exist."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_departments(db: Session, department_ids: Iterable[str]) -> List[Department]:
    wanted = {str(d).strip() for d in department_ids if str(d).strip()}
    if not wanted:
        return []
    found = db.query(Department).filter(Department.id.in_(sorted(wanted))).all()
    missing = wanted - {d.id for d in found}
    if missing:
        raise DepartmentNotFoundError(", ".join(sorted(missing)))
    return found


def _check_period(start: Optional[date], end: Optional[date]) -> None:
    if start is not None and end is not None and end < start:
        raise InvalidContractPeriodError(
            "Renewal date must be on or after the contract start date"
        )


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def get_software(db: Session, software_id: str, *, scope: SoftwareScope) -> models.Software:
    """Fetch one record; out-of-scope records are reported as missing."""
    software = db.get(models.Software, software_id)
    if software is None or not scope.matches(software):
        raise SoftwareNotFoundError(software_id)
    return software


def list_software(
    db: Session,
    *,
    scope: SoftwareScope,
    status: Optional[models.SoftwareStatus] = None,
    search: Optional[str] = None,
    limit: int = 200,
    offset: int = 0,
) -> List[models.Software]:
    qs = db.query(models.Software).filter(scope.clause())
    if status is not None:
        qs = qs.filter(models.Software.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        qs = qs.filter(
            models.Software.name.ilike(pattern) | models.Software.vendor.ilike(pattern)
        )
    return (
        qs.order_by(models.Software.name.asc())
        .offset(max(offset, 0))
        .limit(max(min(limit, 500), 1))
        .all()
    )


def list_contract_history(db: Session, *, software: models.Software) -> List[models.ContractHistory]:
    return (
        db.query(models.ContractHistory)
        .filter(models.ContractHistory.software_id == software.id)
        .order_by(models.ContractHistory.created_at.desc())
        .all()
    )


# ---------------------------------------------------------------------------
# Mutations (callers commit)
# ---------------------------------------------------------------------------


def create_software(
    db: Session,
    *,
    data: dict,
    today: date,
    rng=None,
) -> models.Software:
    data = dict(data)
    department_ids = data.pop("department_ids", None) or []
    _check_period(data.get("contract_start_date"), data.get("renewal_date"))

    software = models.Software(**data)
    software.departments = _load_departments(db, department_ids)
    db.add(software)
    db.flush()

    audit_services.schedule_initial(
        db,
        software_id=software.id,
        frequency=software.audit_frequency,
        today=today,
        rng=rng,
    )
    logger.info("Software created", extra={"software_id": software.id})
    return software


def update_software(
    db: Session,
    *,
    software: models.Software,
    changes: dict,
    today: date,
    rng=None,
) -> models.Software:
    changes = dict(changes)
    department_ids = changes.pop("department_ids", None)

    _check_period(
        changes.get("contract_start_date", software.contract_start_date),
        changes.get("renewal_date", software.renewal_date),
    )

    for field_name, value in changes.items():
        setattr(software, field_name, value)
    if department_ids is not None:
        software.departments = _load_departments(db, department_ids)
    db.add(software)
    db.flush()

    if "audit_frequency" in changes:
        audit_services.schedule_initial(
            db,
            software_id=software.id,
            frequency=software.audit_frequency,
            today=today,
            rng=rng,
        )
    return software


def delete_software(db: Session, *, software: models.Software) -> None:
    db.delete(software)
    logger.info("Software deleted", extra={"software_id": software.id})


def renew_software(
    db: Session,
    *,
    software: models.Software,
    terms: dict,
    actor_user_id: Optional[str],
) -> models.ContractHistory:
    """
    Manual renewal: the current period goes to history as Renewed and the
    submitted terms become the new period.
    """
    terms = dict(terms)
    period = ContractPeriod(terms.pop("contract_start_date"), terms.pop("renewal_date"))
    note = terms.pop("notes", None) or "Contract renewed manually"
    changes = {k: v for k, v in terms.items() if v is not None}
    return renewal_services.renew_contract(
        db,
        software,
        new_period=period,
        status=ContractHistoryStatus.RENEWED,
        note=note,
        actor_user_id=actor_user_id,
        changes=changes,
    )


def expire_software(
    db: Session,
    *,
    software: models.Software,
    actor_user_id: Optional[str],
    note: Optional[str] = None,
) -> models.ContractHistory:
    return renewal_services.expire_contract(
        db,
        software,
        note=note,
        actor_user_id=actor_user_id,
    )
