"""
Who should be told about what, and when.

Pure functions over already-loaded rows; nothing here touches the session or
sends anything. `service.run_reminders` feeds them and hands the result to the
mailer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Union

from saasdb.apps.accounts.models import User, UserRole
from saasdb.apps.audits.models import Audit
from saasdb.apps.software.models import LicenseType, Software

from .models import NotificationPreference, NotificationType

DEFAULT_RENEWAL_DAYS_BEFORE = 30
DEFAULT_AUDIT_DAYS_BEFORE = 7

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class Recipient:
    user_id: str
    name: str
    email: str
    notification_type: NotificationType
    days_until: Optional[int] = None
    utilization_percent: Optional[int] = None


def _as_datetime(value: DateLike, tzinfo=None) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=tzinfo)


def days_until(target: DateLike, as_of: DateLike) -> int:
    """
    Whole days from `as_of` to `target`, rounded up.

    Plain dates count from midnight, so a date-only difference is exact and
    a target later today counts as 1 day away.
    """
    if not isinstance(target, datetime) and not isinstance(as_of, datetime):
        return (target - as_of).days
    tz = getattr(target, "tzinfo", None) or getattr(as_of, "tzinfo", None)
    delta = _as_datetime(target, tz) - _as_datetime(as_of, tz)
    return math.ceil(delta.total_seconds() / 86400)


def _preferences_of_type(
    preferences: Iterable[NotificationPreference],
    notification_type: NotificationType,
) -> Dict[str, NotificationPreference]:
    return {
        pref.user_id: pref
        for pref in preferences
        if pref.notification_type == notification_type
    }


def _email_for(user: User, pref: Optional[NotificationPreference]) -> str:
    if pref is not None and pref.email_address:
        return pref.email_address
    return user.email


def software_stakeholders(software: Software, users: Iterable[User]) -> List[User]:
    """Active administrators, the owner, and heads of the software's departments."""
    dept_ids = software.department_ids
    selected: List[User] = []
    seen = set()
    for user in users:
        if not user.is_active or user.id in seen:
            continue
        if (
            user.role == UserRole.ADMINISTRATOR
            or (software.owner_id is not None and user.id == software.owner_id)
            or (user.role == UserRole.DEPARTMENT_HEAD and dept_ids & user.department_ids)
        ):
            selected.append(user)
            seen.add(user.id)
    return selected


def _within_window(
    candidates: Iterable[User],
    prefs: Dict[str, NotificationPreference],
    *,
    days: int,
    default_days_before: int,
    notification_type: NotificationType,
) -> List[Recipient]:
    recipients: List[Recipient] = []
    for user in candidates:
        pref = prefs.get(user.id)
        if pref is not None and not pref.is_enabled:
            continue
        days_before = default_days_before
        if pref is not None and pref.days_before is not None:
            days_before = pref.days_before
        if 0 < days <= days_before:
            recipients.append(
                Recipient(
                    user_id=user.id,
                    name=user.name,
                    email=_email_for(user, pref),
                    notification_type=notification_type,
                    days_until=days,
                )
            )
    return recipients


# ---------------------------------------------------------------------------
# RENEWAL REMINDERS
# ---------------------------------------------------------------------------


def renewal_reminder_recipients(
    software: Software,
    users: Iterable[User],
    preferences: Iterable[NotificationPreference],
    today: DateLike,
) -> List[Recipient]:
    if software.renewal_date is None:
        return []
    return _within_window(
        software_stakeholders(software, users),
        _preferences_of_type(preferences, NotificationType.RENEWAL_REMINDER),
        days=days_until(software.renewal_date, today),
        default_days_before=DEFAULT_RENEWAL_DAYS_BEFORE,
        notification_type=NotificationType.RENEWAL_REMINDER,
    )


# ---------------------------------------------------------------------------
# AUDIT DUE
# ---------------------------------------------------------------------------


def audit_due_recipients(
    audit: Audit,
    users: Iterable[User],
    preferences: Iterable[NotificationPreference],
    today: DateLike,
) -> List[Recipient]:
    if audit.completed_date is not None:
        return []
    admins = [u for u in users if u.is_active and u.role == UserRole.ADMINISTRATOR]
    return _within_window(
        admins,
        _preferences_of_type(preferences, NotificationType.AUDIT_DUE),
        days=days_until(audit.scheduled_date, today),
        default_days_before=DEFAULT_AUDIT_DAYS_BEFORE,
        notification_type=NotificationType.AUDIT_DUE,
    )


# ---------------------------------------------------------------------------
# UTILIZATION
# ---------------------------------------------------------------------------


def utilization_percent(software: Software) -> Optional[int]:
    """
    Seat or usage utilisation as a whole percentage (half rounds up).

    None when the licence type has no measurable capacity, the capacity is
    zero or missing, or nothing has been used yet.
    """
    if software.license_type == LicenseType.PER_USER:
        used, capacity = software.seats_utilized, software.seats_purchased
    elif software.license_type == LicenseType.USAGE_BASED:
        used, capacity = software.current_usage, software.usage_limit
    else:
        return None

    if not capacity or capacity <= 0 or not used or used <= 0:
        return None

    percent = (Decimal(used) * 100 / Decimal(capacity)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(percent)


def utilization_warning_recipients(
    software: Software,
    users: Iterable[User],
    preferences: Iterable[NotificationPreference],
) -> List[Recipient]:
    percent = utilization_percent(software)
    if percent is None:
        return []

    prefs = _preferences_of_type(preferences, NotificationType.UTILIZATION_WARNING)
    recipients: List[Recipient] = []
    for user in software_stakeholders(software, users):
        pref = prefs.get(user.id)
        if pref is None or not pref.is_enabled or pref.utilization_threshold is None:
            continue
        if percent >= pref.utilization_threshold:
            recipients.append(
                Recipient(
                    user_id=user.id,
                    name=user.name,
                    email=_email_for(user, pref),
                    notification_type=NotificationType.UTILIZATION_WARNING,
                    utilization_percent=percent,
                )
            )
    return recipients
