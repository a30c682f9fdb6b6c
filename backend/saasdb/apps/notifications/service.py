from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from saasdb.database import WriteSessionLocal
from saasdb.utils.identifiers import build_correlation_id
from saasdb.apps.accounts.models import User
from saasdb.apps.audits.models import Audit
from saasdb.apps.software.models import Software, SoftwareStatus

from . import eligibility, models, providers

logger = logging.getLogger(__name__)

TEMPLATE_RENEWAL_REMINDER = "renewal_reminder"
TEMPLATE_AUDIT_DUE = "audit_due"
TEMPLATE_UTILIZATION_WARNING = "utilization_warning"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


def send_email(
    template_key: str,
    recipient: str,
    subject: str,
    context: dict,
    correlation_id: Optional[str],
    critical: bool = False,
    *,
    db: Optional[Session] = None,
) -> models.EmailLog:
    owns_session = db is None
    db = db or WriteSessionLocal()
    log = models.EmailLog(
        recipient=recipient,
        subject=subject,
        template_key=template_key,
        status=models.EmailStatus.QUEUED,
        context_json=context or {},
        correlation_id=correlation_id,
    )
    try:
        db.add(log)
        db.flush()

        provider, configured = providers.get_email_provider()
        if not configured:
            log.status = models.EmailStatus.SKIPPED_NO_PROVIDER
            log.error = "No provider configured"
            db.add(log)
            if owns_session:
                db.commit()
            return log

        try:
            provider.send(
                template_key=template_key,
                recipient=recipient,
                subject=subject,
                context=context or {},
                correlation_id=correlation_id,
            )
            log.status = models.EmailStatus.SENT
            log.sent_at = _utcnow()
        except Exception as exc:
            log.status = models.EmailStatus.FAILED
            log.error = str(exc)
            logger.warning(
                "Email delivery failed",
                extra={"template_key": template_key, "correlation_id": correlation_id, "error": str(exc)},
            )
            if critical:
                db.add(log)
                if owns_session:
                    db.commit()
                raise
        db.add(log)
        if owns_session:
            db.commit()
        return log
    finally:
        if owns_session:
            db.close()


# ---------------------------------------------------------------------------
# Daily reminders
# ---------------------------------------------------------------------------


def _already_sent(db: Session, correlation_id: str) -> bool:
    return (
        db.query(models.EmailLog.id)
        .filter(models.EmailLog.correlation_id == correlation_id)
        .first()
        is not None
    )


def _deliver_once(
    db: Session,
    *,
    template_key: str,
    entity_id: str,
    recipient: eligibility.Recipient,
    today: date,
    subject: str,
    context: dict,
) -> bool:
    correlation_id = build_correlation_id(template_key, entity_id, recipient.user_id, today.isoformat())
    if _already_sent(db, correlation_id):
        return False
    send_email(
        template_key,
        recipient.email,
        subject,
        context,
        correlation_id,
        db=db,
    )
    return True


def _software_context(software: Software) -> dict:
    return {
        "software_id": software.id,
        "software_name": software.name,
        "vendor": software.vendor,
        "renewal_date": software.renewal_date.isoformat() if software.renewal_date else None,
        "cost": str(software.cost) if software.cost is not None else None,
        "payment_frequency": software.payment_frequency.value if software.payment_frequency else None,
        "auto_renewal": bool(software.auto_renewal),
    }


def run_reminders(db: Session, *, today: date) -> dict:
    """
    Evaluate renewal, audit-due and utilisation reminders for `today` and hand
    eligible ones to the mailer. A reminder already logged for the same
    entity, user and day is not sent again. The caller commits.
    """
    summary = {
        "renewal_reminders": 0,
        "audit_reminders": 0,
        "utilization_warnings": 0,
        "duplicates_skipped": 0,
    }

    users: List[User] = db.query(User).filter(User.is_active.is_(True)).all()
    preferences = db.query(models.NotificationPreference).all()
    active_software = (
        db.query(Software)
        .filter(Software.status == SoftwareStatus.ACTIVE)
        .order_by(Software.name.asc())
        .all()
    )

    def _count(sent: bool, key: str) -> None:
        summary[key if sent else "duplicates_skipped"] += 1

    for software in active_software:
        context = _software_context(software)
        for recipient in eligibility.renewal_reminder_recipients(software, users, preferences, today):
            sent = _deliver_once(
                db,
                template_key=TEMPLATE_RENEWAL_REMINDER,
                entity_id=software.id,
                recipient=recipient,
                today=today,
                subject=f"Renewal reminder: {software.name} renews in {recipient.days_until} days",
                context={**context, "days_until_renewal": recipient.days_until},
            )
            _count(sent, "renewal_reminders")

        for recipient in eligibility.utilization_warning_recipients(software, users, preferences):
            sent = _deliver_once(
                db,
                template_key=TEMPLATE_UTILIZATION_WARNING,
                entity_id=software.id,
                recipient=recipient,
                today=today,
                subject=f"Utilization warning: {software.name} at {recipient.utilization_percent}%",
                context={**context, "utilization_percent": recipient.utilization_percent},
            )
            _count(sent, "utilization_warnings")

    pending_audits = (
        db.query(Audit)
        .join(Software, Software.id == Audit.software_id)
        .filter(
            Audit.completed_date.is_(None),
            Software.status == SoftwareStatus.ACTIVE,
        )
        .order_by(Audit.scheduled_date.asc())
        .all()
    )
    for audit in pending_audits:
        for recipient in eligibility.audit_due_recipients(audit, users, preferences, today):
            sent = _deliver_once(
                db,
                template_key=TEMPLATE_AUDIT_DUE,
                entity_id=audit.id,
                recipient=recipient,
                today=today,
                subject=f"Audit due: {audit.software.name} on {audit.scheduled_date.isoformat()}",
                context={
                    "audit_id": audit.id,
                    "software_id": audit.software_id,
                    "software_name": audit.software.name,
                    "scheduled_date": audit.scheduled_date.isoformat(),
                    "days_until_due": recipient.days_until,
                },
            )
            _count(sent, "audit_reminders")

    logger.info("Reminder run finished", extra={"today": today.isoformat(), **summary})
    return summary


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


def list_preferences(db: Session, *, user_id: str) -> List[models.NotificationPreference]:
    return (
        db.query(models.NotificationPreference)
        .filter(models.NotificationPreference.user_id == user_id)
        .order_by(models.NotificationPreference.notification_type.asc())
        .all()
    )


def upsert_preference(
    db: Session,
    *,
    user_id: str,
    notification_type: models.NotificationType,
    changes: dict,
) -> models.NotificationPreference:
    pref = (
        db.query(models.NotificationPreference)
        .filter(
            models.NotificationPreference.user_id == user_id,
            models.NotificationPreference.notification_type == notification_type,
        )
        .first()
    )
    if pref is None:
        pref = models.NotificationPreference(
            user_id=user_id,
            notification_type=notification_type,
            is_enabled=True,
        )
    for field_name, value in changes.items():
        setattr(pref, field_name, value)
    db.add(pref)
    db.flush()
    return pref
