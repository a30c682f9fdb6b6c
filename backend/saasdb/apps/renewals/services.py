# backend/saasdb/apps/renewals/services.py
"""
Contract renewal engine.

Auto-renewal rolls the current contract period of every due subscription
forward by one billing cadence and records the period that just ended in
contract history. Manual renewal and expiry go through the same
`renew_contract` path so the history append and the period update always
land in one transaction.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, NamedTuple, Optional, Tuple

from sqlalchemy import and_, func, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from saasdb.clock import APP_TIMEZONE
from saasdb.utils.dates import add_months
from saasdb.apps.notifications.eligibility import days_until
from saasdb.apps.software import models as software_models
from saasdb.apps.software.models import (
    ContractHistoryStatus,
    PaymentFrequency,
    Software,
    SoftwareStatus,
)
from saasdb.apps.accounts.models import Department
from saasdb.apps.software.scope import SoftwareScope, UnrestrictedScope

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

RENEWAL_RUN_HOUR = int(os.getenv("RENEWAL_RUN_HOUR", "1"))
RENEWAL_RUN_MINUTE = int(os.getenv("RENEWAL_RUN_MINUTE", "0"))

MONTHS_PER_PERIOD: Dict[PaymentFrequency, int] = {
    PaymentFrequency.MONTHLY: 1,
    PaymentFrequency.ANNUALLY: 12,
}

ONE_TIME_ERROR = "cannot auto-renew one-time payment"

# A renewal date further back than this many periods is treated as bad data
# and left for an administrator to renew by hand.
MAX_CATCH_UP_PERIODS = int(os.getenv("RENEWAL_MAX_CATCH_UP_PERIODS", "24"))


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class InvalidContractPeriodError(ValueError):
    """Raised when a contract period cannot be computed or is inconsistent."""


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class ContractPeriod(NamedTuple):
    start: date
    end: date


@dataclass
class RenewalOutcome:
    software_id: str
    software_name: str
    success: bool
    error: Optional[str] = None
    previous_contract_end: Optional[date] = None
    new_contract_start: Optional[date] = None
    new_contract_end: Optional[date] = None
    payment_frequency: Optional[PaymentFrequency] = None
    cost: Optional[Decimal] = None


@dataclass
class RenewalBatchResult:
    renewed_count: int = 0
    total_processed: int = 0
    results: List[RenewalOutcome] = field(default_factory=list)

    def add(self, outcome: RenewalOutcome) -> None:
        self.total_processed += 1
        if outcome.success:
            self.renewed_count += 1
        self.results.append(outcome)


@dataclass
class UpcomingRenewal:
    software_id: str
    name: str
    vendor: Optional[str]
    cost: Optional[Decimal]
    payment_frequency: PaymentFrequency
    renewal_date: date
    auto_renewal: bool
    owner_name: Optional[str]
    days_until_renewal: int


# ---------------------------------------------------------------------------
# Date arithmetic
# ---------------------------------------------------------------------------


def next_renewal_date(renewal_date: date, frequency: PaymentFrequency) -> date:
    months = MONTHS_PER_PERIOD.get(frequency)
    if months is None:
        raise InvalidContractPeriodError(ONE_TIME_ERROR)
    return add_months(renewal_date, months)


def _is_due(software: Software, today: date) -> bool:
    return (
        bool(software.auto_renewal)
        and software.renewal_date is not None
        and software.renewal_date <= today
    )


def _due_clause(today: date):
    return and_(
        Software.auto_renewal.is_(True),
        Software.renewal_date.isnot(None),
        Software.renewal_date <= today,
    )


# ---------------------------------------------------------------------------
# Shared renewal path
# ---------------------------------------------------------------------------


def _history_entry(
    software: Software,
    *,
    status: ContractHistoryStatus,
    note: Optional[str],
    actor_user_id: Optional[str],
) -> software_models.ContractHistory:
    return software_models.ContractHistory(
        software_id=software.id,
        contract_start_date=software.contract_start_date,
        contract_end_date=software.renewal_date,
        cost=software.cost,
        payment_frequency=software.payment_frequency,
        notice_period=software.notice_period,
        auto_renewal=bool(software.auto_renewal),
        status=status,
        notes=note,
        created_by_user_id=actor_user_id,
    )


def renew_contract(
    db: Session,
    software: Software,
    *,
    new_period: ContractPeriod,
    status: ContractHistoryStatus,
    note: Optional[str] = None,
    actor_user_id: Optional[str] = None,
    changes: Optional[dict] = None,
) -> software_models.ContractHistory:
    """
    Snapshot the current period into contract history, then move the
    subscription onto `new_period` and apply any extra term `changes`.

    The caller owns the transaction: both writes become visible on the same
    commit or neither does.
    """
    if new_period.end < new_period.start:
        raise InvalidContractPeriodError(
            "Renewal date must be on or after the contract start date"
        )

    entry = _history_entry(software, status=status, note=note, actor_user_id=actor_user_id)
    db.add(entry)

    software.contract_start_date = new_period.start
    software.renewal_date = new_period.end
    for field_name, value in (changes or {}).items():
        setattr(software, field_name, value)
    db.add(software)
    return entry


def expire_contract(
    db: Session,
    software: Software,
    *,
    note: Optional[str] = None,
    actor_user_id: Optional[str] = None,
) -> software_models.ContractHistory:
    """
    Close the current period without a successor: record it as Expired,
    mark the subscription Inactive and switch auto-renewal off.
    """
    entry = _history_entry(
        software,
        status=ContractHistoryStatus.EXPIRED,
        note=note or "Contract expired",
        actor_user_id=actor_user_id,
    )
    db.add(entry)

    software.status = SoftwareStatus.INACTIVE
    software.auto_renewal = False
    db.add(software)
    return entry


def _elapsed_periods(renewal_date: date, frequency: PaymentFrequency, today: date) -> int:
    """Periods between renewal_date and today, counting stops past the cap."""
    count = 0
    current = renewal_date
    while current <= today and count <= MAX_CATCH_UP_PERIODS:
        current = next_renewal_date(current, frequency)
        count += 1
    return count


def _roll_forward(db: Session, software: Software, *, today: date) -> ContractPeriod:
    """
    Advance the subscription until its renewal date is in the future, one
    history entry per elapsed period. Usually that is a single period; more
    only when runs were missed.
    """
    frequency = software.payment_frequency
    elapsed = _elapsed_periods(software.renewal_date, frequency, today)
    if elapsed > MAX_CATCH_UP_PERIODS:
        logger.warning(
            "Renewal date too far in the past, skipping auto-renewal",
            extra={
                "software_id": software.id,
                "renewal_date": software.renewal_date.isoformat(),
                "max_periods": MAX_CATCH_UP_PERIODS,
            },
        )
        raise InvalidContractPeriodError(
            f"renewal date {software.renewal_date.isoformat()} is more than "
            f"{MAX_CATCH_UP_PERIODS} periods overdue; renew manually"
        )

    period = ContractPeriod(software.contract_start_date, software.renewal_date)
    while software.renewal_date <= today:
        previous_end = software.renewal_date
        period = ContractPeriod(previous_end, next_renewal_date(previous_end, frequency))
        renew_contract(
            db,
            software,
            new_period=period,
            status=ContractHistoryStatus.AUTO_RENEWED,
            note=(
                f"Automatically renewed on {today.isoformat()} "
                f"for next {frequency.value.lower()} period"
            ),
        )
    return period


def _renew_one(db: Session, *, software_id: str, software_name: str, today: date) -> RenewalOutcome:
    outcome = RenewalOutcome(software_id=software_id, software_name=software_name, success=False)
    try:
        software = (
            db.query(Software)
            .filter(Software.id == software_id)
            .with_for_update(of=Software)
            .one_or_none()
        )
        if software is None or not _is_due(software, today):
            # Renewed or changed by a concurrent run since the candidate list was read.
            db.rollback()
            outcome.error = "not due for renewal"
            return outcome

        outcome.payment_frequency = software.payment_frequency
        outcome.cost = software.cost
        outcome.previous_contract_end = software.renewal_date

        if software.payment_frequency == PaymentFrequency.ONE_TIME:
            raise InvalidContractPeriodError(ONE_TIME_ERROR)

        period = _roll_forward(db, software, today=today)
        db.commit()
    except InvalidContractPeriodError as exc:
        db.rollback()
        outcome.error = str(exc)
        return outcome
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(
            "Auto-renewal failed",
            extra={"software_id": software_id, "error": str(exc)},
        )
        outcome.error = str(exc)
        return outcome

    outcome.success = True
    outcome.new_contract_start = period.start
    outcome.new_contract_end = period.end
    logger.info(
        "Auto-renewed contract",
        extra={
            "software_id": software_id,
            "new_contract_start": period.start.isoformat(),
            "new_contract_end": period.end.isoformat(),
        },
    )
    return outcome


def process_due(db: Session, *, today: date) -> RenewalBatchResult:
    """
    Renew every subscription whose auto-renewal is on and whose renewal date
    is today or earlier.

    Each subscription commits (or rolls back) on its own; a failure is
    reported in its outcome and the batch carries on. Errors reading the
    candidate list propagate to the caller.
    """
    candidates = (
        db.query(Software.id, Software.name)
        .filter(_due_clause(today))
        .order_by(Software.renewal_date.asc(), Software.name.asc())
        .all()
    )
    # Release the read transaction before per-item locking starts.
    db.rollback()

    result = RenewalBatchResult()
    for software_id, software_name in candidates:
        result.add(_renew_one(db, software_id=software_id, software_name=software_name, today=today))

    logger.info(
        "Auto-renewal batch finished",
        extra={
            "today": today.isoformat(),
            "renewed_count": result.renewed_count,
            "total_processed": result.total_processed,
        },
    )
    return result


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def list_upcoming_renewals(
    db: Session,
    *,
    today: date,
    days_ahead: int = 30,
    scope: Optional[SoftwareScope] = None,
) -> List[UpcomingRenewal]:
    days_ahead = max(days_ahead, 0)
    qs = db.query(Software).filter(
        Software.auto_renewal.is_(True),
        Software.renewal_date.isnot(None),
        Software.renewal_date >= today,
        Software.renewal_date <= today + timedelta(days=days_ahead),
        Software.payment_frequency != PaymentFrequency.ONE_TIME,
    )
    if scope is not None:
        qs = qs.filter(scope.clause())

    rows = qs.order_by(Software.renewal_date.asc(), Software.name.asc()).all()
    return [
        UpcomingRenewal(
            software_id=row.id,
            name=row.name,
            vendor=row.vendor,
            cost=row.cost,
            payment_frequency=row.payment_frequency,
            renewal_date=row.renewal_date,
            auto_renewal=bool(row.auto_renewal),
            owner_name=row.owner.name if row.owner is not None else None,
            days_until_renewal=days_until(row.renewal_date, today),
        )
        for row in rows
    ]


def scheduler_info() -> dict:
    meridiem = "AM" if RENEWAL_RUN_HOUR < 12 else "PM"
    display = f"{(RENEWAL_RUN_HOUR % 12) or 12}:{RENEWAL_RUN_MINUTE:02d} {meridiem}"
    return {
        "timezone": APP_TIMEZONE,
        "daily_run_time": display,
        "description": f"Auto-renewal process runs daily at {display} ({APP_TIMEZONE})",
    }


@dataclass
class RenewalStatus:
    due_today: int
    due_this_week: int
    upcoming_in_next_30_days: int
    next_renewal: Optional[UpcomingRenewal]
    scheduler_info: dict


def renewal_status(db: Session, *, today: date) -> RenewalStatus:
    upcoming = list_upcoming_renewals(db, today=today, days_ahead=30)
    return RenewalStatus(
        due_today=sum(1 for r in upcoming if r.days_until_renewal == 0),
        due_this_week=sum(1 for r in upcoming if r.days_until_renewal <= 7),
        upcoming_in_next_30_days=len(upcoming),
        next_renewal=upcoming[0] if upcoming else None,
        scheduler_info=scheduler_info(),
    )


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

_CENT = Decimal("0.01")


@dataclass
class DashboardStats:
    total_active_subscriptions: int
    monthly_spend: Decimal
    annual_spend: Decimal
    upcoming_renewals_count: int
    total_vendors: int
    total_departments: int


def _normalised_spend(rows) -> Tuple[Decimal, Decimal]:
    """Monthly and annual spend; one-time costs count once towards the year."""
    monthly = Decimal("0")
    annual = Decimal("0")
    for cost, frequency in rows:
        cost = Decimal(cost or 0)
        if frequency == PaymentFrequency.MONTHLY:
            monthly += cost
            annual += cost * 12
        elif frequency == PaymentFrequency.ANNUALLY:
            monthly += cost / 12
            annual += cost
        elif frequency == PaymentFrequency.ONE_TIME:
            annual += cost
    return (
        monthly.quantize(_CENT, rounding=ROUND_HALF_UP),
        annual.quantize(_CENT, rounding=ROUND_HALF_UP),
    )


def dashboard_stats(
    db: Session,
    *,
    today: date,
    scope: Optional[SoftwareScope] = None,
    days_ahead: int = 30,
) -> DashboardStats:
    visible = scope.clause() if scope is not None else true()
    active = and_(visible, Software.status == SoftwareStatus.ACTIVE)

    monthly, annual = _normalised_spend(
        db.query(Software.cost, Software.payment_frequency).filter(active).all()
    )

    upcoming = (
        db.query(func.count(Software.id))
        .filter(
            visible,
            Software.renewal_date >= today,
            Software.renewal_date <= today + timedelta(days=days_ahead),
        )
        .scalar()
    )
    vendors = (
        db.query(func.count(func.distinct(Software.vendor)))
        .filter(visible, Software.vendor.isnot(None))
        .scalar()
    )

    if scope is None or isinstance(scope, UnrestrictedScope):
        departments = db.query(func.count(Department.id)).scalar()
    else:
        link = software_models.software_departments
        departments = (
            db.query(func.count(func.distinct(link.c.department_id)))
            .select_from(link)
            .join(Software, Software.id == link.c.software_id)
            .filter(visible)
            .scalar()
        )

    return DashboardStats(
        total_active_subscriptions=db.query(func.count(Software.id)).filter(active).scalar() or 0,
        monthly_spend=monthly,
        annual_spend=annual,
        upcoming_renewals_count=upcoming or 0,
        total_vendors=vendors or 0,
        total_departments=departments or 0,
    )
