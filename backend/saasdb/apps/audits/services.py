# backend/saasdb/apps/audits/services.py
"""
Recurring compliance audit scheduling.

Every subscription with an audit frequency other than None has exactly one
pending audit. Due dates are the base date (today or the last completion
date, plus one frequency unit) pushed forward by a distribution offset so
audits scheduled in the same period spread across the window instead of
landing on the same day.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from saasdb.apps.notifications.eligibility import days_until
from saasdb.utils.dates import add_months
from saasdb.apps.software.models import (
    AuditFrequency,
    Software,
    SoftwareNotFoundError,
    SoftwareStatus,
)
from saasdb.apps.software.scope import SoftwareScope

from . import models
from .models import CHECKLIST_ITEMS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

AUDIT_INTERVAL_MONTHS: Dict[AuditFrequency, int] = {
    AuditFrequency.MONTHLY: 1,
    AuditFrequency.QUARTERLY: 3,
    AuditFrequency.ANNUALLY: 12,
}

# Length (days) of the window new audits are spread across.
DISTRIBUTION_WINDOW_DAYS: Dict[AuditFrequency, int] = {
    AuditFrequency.MONTHLY: 28,
    AuditFrequency.QUARTERLY: 85,
    AuditFrequency.ANNUALLY: 350,
}

OFFSET_STEP_DAYS = 7
MAX_JITTER_DAYS = 6

INITIAL_AUDIT_NOTE = "Automatically scheduled audit"
FOLLOW_UP_AUDIT_NOTE = "Automatically scheduled follow-up audit"

# Fields of a completion payload that are copied onto the audit row.
_COMPLETION_FIELDS = tuple(f"{item}_completed" for item in CHECKLIST_ITEMS) + (
    "current_seats_used",
    "current_usage_amount",
    "usage_metric_snapshot",
    "audit_findings",
    "recommended_actions",
    "notes",
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AuditNotFoundError(LookupError):
    """Raised when an audit id does not exist (or is outside the caller's scope)."""


class AuditAlreadyCompletedError(Exception):
    """Raised when completing or editing an audit that already has a completed_date."""


class AuditNotCompletedError(Exception):
    """Raised when a follow-up is requested for an audit that is still pending."""


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


@dataclass
class AuditDue:
    audit_id: str
    software_id: str
    software_name: str
    scheduled_date: date
    frequency: AuditFrequency
    days_until_due: Optional[int] = None
    days_past_due: Optional[int] = None


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------


def base_due_date(start: date, frequency: AuditFrequency) -> date:
    months = AUDIT_INTERVAL_MONTHS.get(frequency)
    if months is None:
        raise ValueError(f"Audit frequency {frequency!r} has no interval")
    return add_months(start, months)


def distribution_offset(count: int, window_days: int, rng=None) -> int:
    """
    Offset (days) for the next audit given how many audits already sit in
    the window. Always within [0, window_days).
    """
    if window_days <= 0:
        logger.warning("Non-positive audit distribution window", extra={"window_days": window_days})
        return 0
    source = rng or random
    base_offset = (max(count, 0) * OFFSET_STEP_DAYS) % window_days
    jitter = source.randint(0, MAX_JITTER_DAYS)
    return (base_offset + jitter) % window_days


def _distributed_due_date(
    db: Session,
    *,
    base: date,
    frequency: AuditFrequency,
    software_id: str,
    rng=None,
) -> date:
    window = DISTRIBUTION_WINDOW_DAYS[frequency]
    count = (
        db.query(func.count(models.Audit.id))
        .filter(
            models.Audit.completed_date.is_(None),
            models.Audit.software_id != software_id,
            models.Audit.scheduled_date >= base,
            models.Audit.scheduled_date < base + timedelta(days=window),
        )
        .scalar()
    ) or 0
    return base + timedelta(days=distribution_offset(count, window, rng))


# ---------------------------------------------------------------------------
# Pending audit helpers
# ---------------------------------------------------------------------------


def _pending_audits(db: Session, software_id: str) -> List[models.Audit]:
    return (
        db.query(models.Audit)
        .filter(
            models.Audit.software_id == software_id,
            models.Audit.completed_date.is_(None),
        )
        .order_by(models.Audit.scheduled_date.asc(), models.Audit.created_at.asc())
        .all()
    )


def _delete_pending(db: Session, software_id: str) -> int:
    pending = _pending_audits(db, software_id)
    for audit in pending:
        db.delete(audit)
    # Flush now so the replacement insert cannot collide with the
    # one-pending-per-software index.
    db.flush()
    return len(pending)


def _new_pending_audit(
    db: Session,
    *,
    software_id: str,
    scheduled_date: date,
    frequency: AuditFrequency,
    notes: Optional[str],
) -> models.Audit:
    audit = models.Audit(
        software_id=software_id,
        scheduled_date=scheduled_date,
        frequency=frequency,
        notes=notes,
    )
    for item in CHECKLIST_ITEMS:
        setattr(audit, item, True)
        setattr(audit, f"{item}_completed", False)
    db.add(audit)
    db.flush()
    return audit


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


def schedule_initial(
    db: Session,
    *,
    software_id: str,
    frequency: Optional[AuditFrequency] = None,
    today: date,
    rng=None,
) -> Optional[models.Audit]:
    """
    Replace the subscription's pending audit with a freshly scheduled one.

    `frequency` defaults to the subscription's current audit frequency.
    Returns None when auditing is disabled. The caller commits.
    """
    software = db.get(Software, software_id)
    if software is None:
        raise SoftwareNotFoundError(software_id)

    frequency = frequency or software.audit_frequency
    removed = _delete_pending(db, software_id)

    if frequency == AuditFrequency.NONE:
        logger.info(
            "Audits disabled",
            extra={"software_id": software_id, "removed_pending": removed},
        )
        return None

    base = base_due_date(today, frequency)
    audit = _new_pending_audit(
        db,
        software_id=software_id,
        scheduled_date=_distributed_due_date(
            db, base=base, frequency=frequency, software_id=software_id, rng=rng
        ),
        frequency=frequency,
        notes=INITIAL_AUDIT_NOTE,
    )
    logger.info(
        "Scheduled initial audit",
        extra={
            "software_id": software_id,
            "frequency": frequency.value,
            "scheduled_date": audit.scheduled_date.isoformat(),
        },
    )
    return audit


def schedule_next(
    db: Session,
    *,
    completed_audit_id: str,
    rng=None,
) -> Optional[models.Audit]:
    """
    Create the successor of a completed audit, based on its completion date
    and the subscription's current audit frequency. The caller commits.
    """
    completed = db.get(models.Audit, completed_audit_id)
    if completed is None:
        raise AuditNotFoundError(completed_audit_id)
    if completed.completed_date is None:
        raise AuditNotCompletedError(
            f"Audit {completed_audit_id} has not been completed"
        )

    software = db.get(Software, completed.software_id)
    if software is None:
        raise SoftwareNotFoundError(completed.software_id)

    stale = _delete_pending(db, software.id)
    if stale:
        logger.warning(
            "Removed pending audits left over before scheduling follow-up",
            extra={"software_id": software.id, "removed_pending": stale},
        )

    frequency = software.audit_frequency
    if frequency == AuditFrequency.NONE:
        return None

    base = base_due_date(completed.completed_date, frequency)
    audit = _new_pending_audit(
        db,
        software_id=software.id,
        scheduled_date=_distributed_due_date(
            db, base=base, frequency=frequency, software_id=software.id, rng=rng
        ),
        frequency=frequency,
        notes=FOLLOW_UP_AUDIT_NOTE,
    )
    logger.info(
        "Scheduled follow-up audit",
        extra={
            "software_id": software.id,
            "completed_audit_id": completed.id,
            "scheduled_date": audit.scheduled_date.isoformat(),
        },
    )
    return audit


# ---------------------------------------------------------------------------
# Audit lifecycle
# ---------------------------------------------------------------------------


def get_audit(db: Session, audit_id: str, *, scope: Optional[SoftwareScope] = None) -> models.Audit:
    audit = db.get(models.Audit, audit_id)
    if audit is None:
        raise AuditNotFoundError(audit_id)
    if scope is not None and not scope.matches(audit.software):
        raise AuditNotFoundError(audit_id)
    return audit


def create_manual_audit(
    db: Session,
    *,
    software: Software,
    scheduled_date: date,
    frequency: Optional[AuditFrequency] = None,
    notes: Optional[str] = None,
    checklist: Optional[Dict[str, bool]] = None,
) -> models.Audit:
    """
    Plan an audit by hand. Any pending audit of the software is removed
    first, so the new one becomes its only pending audit. The caller commits.
    """
    removed = _delete_pending(db, software.id)
    audit = _new_pending_audit(
        db,
        software_id=software.id,
        scheduled_date=scheduled_date,
        frequency=frequency or software.audit_frequency,
        notes=notes,
    )
    for item, required in (checklist or {}).items():
        if item in CHECKLIST_ITEMS:
            setattr(audit, item, bool(required))
    db.flush()
    logger.info(
        "Manual audit created",
        extra={
            "software_id": software.id,
            "scheduled_date": scheduled_date.isoformat(),
            "replaced_pending": removed,
        },
    )
    return audit


def update_audit(db: Session, *, audit: models.Audit, changes: dict) -> models.Audit:
    """Apply a validated patch to a pending audit."""
    if audit.completed_date is not None:
        raise AuditAlreadyCompletedError(f"Audit {audit.id} is already completed")
    for field_name, value in changes.items():
        setattr(audit, field_name, value)
    db.add(audit)
    return audit


def complete_audit(
    db: Session,
    *,
    audit: models.Audit,
    changes: dict,
    actor_user_id: Optional[str],
    today: date,
    write_back_usage: bool = True,
    rng=None,
) -> Tuple[models.Audit, Optional[models.Audit]]:
    """
    Mark a pending audit completed and schedule its successor.

    `changes` carries checklist completion flags, findings and the observed
    seat / usage numbers; `completed_date` in it defaults to `today`. With
    `write_back_usage` the observed numbers are copied onto the subscription.
    Both writes and the successor share the caller's transaction.
    """
    if audit.completed_date is not None:
        raise AuditAlreadyCompletedError(f"Audit {audit.id} is already completed")

    for field_name in _COMPLETION_FIELDS:
        if field_name in changes:
            setattr(audit, field_name, changes[field_name])
    audit.completed_date = changes.get("completed_date") or today
    audit.completed_by_user_id = actor_user_id
    db.add(audit)

    if write_back_usage:
        software = audit.software
        if changes.get("current_seats_used") is not None:
            software.seats_utilized = changes["current_seats_used"]
        if changes.get("current_usage_amount") is not None:
            software.current_usage = changes["current_usage_amount"]
        if changes.get("usage_metric_snapshot"):
            software.usage_metric = changes["usage_metric_snapshot"]
        db.add(software)

    db.flush()
    successor = schedule_next(db, completed_audit_id=audit.id, rng=rng)
    return audit, successor


# ---------------------------------------------------------------------------
# Periodic sweep
# ---------------------------------------------------------------------------


def ensure_audit_schedules(db: Session, *, today: date, rng=None) -> dict:
    """
    Give every Active subscription with auditing enabled a pending audit and
    collapse duplicate pending audits down to the earliest one.
    """
    summary = {"checked": 0, "scheduled": 0, "duplicates_removed": 0}
    rows = (
        db.query(Software)
        .filter(
            Software.status == SoftwareStatus.ACTIVE,
            Software.audit_frequency != AuditFrequency.NONE,
        )
        .order_by(Software.name.asc())
        .all()
    )
    for software in rows:
        summary["checked"] += 1
        pending = _pending_audits(db, software.id)
        if not pending:
            schedule_initial(db, software_id=software.id, today=today, rng=rng)
            summary["scheduled"] += 1
            continue
        if len(pending) > 1:
            logger.warning(
                "Multiple pending audits found; keeping the earliest",
                extra={"software_id": software.id, "pending": len(pending)},
            )
            for extra in pending[1:]:
                db.delete(extra)
            summary["duplicates_removed"] += len(pending) - 1
            db.flush()
    return summary


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def _pending_with_software(db: Session, scope: Optional[SoftwareScope]):
    qs = (
        db.query(models.Audit, Software.name)
        .join(Software, Software.id == models.Audit.software_id)
        .filter(models.Audit.completed_date.is_(None))
    )
    if scope is not None:
        qs = qs.filter(scope.clause())
    return qs


def list_upcoming_audits(
    db: Session,
    *,
    today: date,
    days_ahead: int = 30,
    scope: Optional[SoftwareScope] = None,
) -> List[AuditDue]:
    rows = (
        _pending_with_software(db, scope)
        .filter(
            models.Audit.scheduled_date >= today,
            models.Audit.scheduled_date <= today + timedelta(days=max(days_ahead, 0)),
        )
        .order_by(models.Audit.scheduled_date.asc())
        .all()
    )
    return [
        AuditDue(
            audit_id=audit.id,
            software_id=audit.software_id,
            software_name=name,
            scheduled_date=audit.scheduled_date,
            frequency=audit.frequency,
            days_until_due=days_until(audit.scheduled_date, today),
        )
        for audit, name in rows
    ]


def list_overdue_audits(
    db: Session,
    *,
    today: date,
    scope: Optional[SoftwareScope] = None,
) -> List[AuditDue]:
    rows = (
        _pending_with_software(db, scope)
        .filter(models.Audit.scheduled_date < today)
        .order_by(models.Audit.scheduled_date.asc())
        .all()
    )
    return [
        AuditDue(
            audit_id=audit.id,
            software_id=audit.software_id,
            software_name=name,
            scheduled_date=audit.scheduled_date,
            frequency=audit.frequency,
            days_past_due=days_until(today, audit.scheduled_date),
        )
        for audit, name in rows
    ]
