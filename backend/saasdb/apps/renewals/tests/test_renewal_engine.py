from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from saasdb.clock import FixedClock
from saasdb.apps.accounts import models as account_models
from saasdb.apps.renewals import router as renewal_router
from saasdb.apps.renewals import services as renewal_services
from saasdb.apps.software import models as software_models


def _create_admin(db) -> account_models.User:
    user = account_models.User(
        name="Ada Admin",
        email="admin@example.com",
        role=account_models.UserRole.ADMINISTRATOR,
        hashed_password="hash",
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


def _create_software(
    db,
    *,
    name: str,
    renewal_date: date,
    contract_start_date: date | None = None,
    payment_frequency: software_models.PaymentFrequency = software_models.PaymentFrequency.MONTHLY,
    auto_renewal: bool = True,
    cost: Decimal = Decimal("100.00"),
) -> software_models.Software:
    software = software_models.Software(
        name=name,
        vendor="Acme",
        cost=cost,
        payment_frequency=payment_frequency,
        status=software_models.SoftwareStatus.ACTIVE,
        contract_start_date=contract_start_date,
        renewal_date=renewal_date,
        notice_period=software_models.NoticePeriod.DAYS_30,
        auto_renewal=auto_renewal,
        audit_frequency=software_models.AuditFrequency.NONE,
    )
    db.add(software)
    db.commit()
    return software


def _history(db, software_id: str):
    return (
        db.query(software_models.ContractHistory)
        .filter(software_models.ContractHistory.software_id == software_id)
        .order_by(software_models.ContractHistory.contract_start_date.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# Date arithmetic
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "start, frequency, expected",
    [
        (date(2025, 1, 31), software_models.PaymentFrequency.MONTHLY, date(2025, 2, 28)),
        (date(2024, 1, 31), software_models.PaymentFrequency.MONTHLY, date(2024, 2, 29)),
        (date(2025, 12, 15), software_models.PaymentFrequency.MONTHLY, date(2026, 1, 15)),
        (date(2024, 2, 29), software_models.PaymentFrequency.ANNUALLY, date(2025, 2, 28)),
        (date(2025, 6, 1), software_models.PaymentFrequency.ANNUALLY, date(2026, 6, 1)),
    ],
)
def test_next_renewal_date_advances_one_period_with_month_end_clamp(start, frequency, expected):
    assert renewal_services.next_renewal_date(start, frequency) == expected


def test_next_renewal_date_rejects_one_time():
    with pytest.raises(renewal_services.InvalidContractPeriodError):
        renewal_services.next_renewal_date(date(2025, 6, 1), software_models.PaymentFrequency.ONE_TIME)


# ---------------------------------------------------------------------------
# Batch processing
# ---------------------------------------------------------------------------


def test_process_due_rolls_period_forward_and_records_history(db_session):
    software = _create_software(
        db_session,
        name="Slack",
        contract_start_date=date(2025, 5, 1),
        renewal_date=date(2025, 6, 1),
    )

    result = renewal_services.process_due(db_session, today=date(2025, 6, 1))

    assert result.renewed_count == 1
    assert result.total_processed == 1
    outcome = result.results[0]
    assert outcome.success is True
    assert outcome.error is None
    assert outcome.previous_contract_end == date(2025, 6, 1)
    assert outcome.new_contract_start == date(2025, 6, 1)
    assert outcome.new_contract_end == date(2025, 7, 1)
    assert outcome.payment_frequency == software_models.PaymentFrequency.MONTHLY
    assert outcome.cost == Decimal("100.00")

    db_session.refresh(software)
    assert software.contract_start_date == date(2025, 6, 1)
    assert software.renewal_date == date(2025, 7, 1)
    assert software.cost == Decimal("100.00")
    assert software.auto_renewal is True

    history = _history(db_session, software.id)
    assert len(history) == 1
    assert history[0].contract_start_date == date(2025, 5, 1)
    assert history[0].contract_end_date == date(2025, 6, 1)
    assert history[0].status == software_models.ContractHistoryStatus.AUTO_RENEWED
    assert history[0].notes.startswith("Automatically renewed on 2025-06-01")


def test_process_due_twice_on_same_day_renews_once(db_session):
    software = _create_software(
        db_session,
        name="Zoom",
        contract_start_date=date(2024, 6, 1),
        renewal_date=date(2025, 6, 1),
        payment_frequency=software_models.PaymentFrequency.ANNUALLY,
    )

    first = renewal_services.process_due(db_session, today=date(2025, 6, 1))
    second = renewal_services.process_due(db_session, today=date(2025, 6, 1))

    assert first.renewed_count == 1
    assert second.renewed_count == 0
    assert second.total_processed == 0

    db_session.refresh(software)
    assert software.renewal_date == date(2026, 6, 1)
    assert len(_history(db_session, software.id)) == 1


def test_process_due_ignores_future_and_disabled_subscriptions(db_session):
    future = _create_software(db_session, name="Future", renewal_date=date(2025, 6, 2))
    manual = _create_software(
        db_session,
        name="Manual",
        renewal_date=date(2025, 5, 1),
        auto_renewal=False,
    )

    result = renewal_services.process_due(db_session, today=date(2025, 6, 1))

    assert result.total_processed == 0
    db_session.refresh(future)
    db_session.refresh(manual)
    assert future.renewal_date == date(2025, 6, 2)
    assert manual.renewal_date == date(2025, 5, 1)


def test_process_due_catches_up_missed_periods(db_session):
    software = _create_software(
        db_session,
        name="Jira",
        contract_start_date=date(2025, 2, 1),
        renewal_date=date(2025, 3, 1),
    )

    result = renewal_services.process_due(db_session, today=date(2025, 6, 1))

    outcome = result.results[0]
    assert outcome.success is True
    assert outcome.previous_contract_end == date(2025, 3, 1)
    assert outcome.new_contract_start == date(2025, 6, 1)
    assert outcome.new_contract_end == date(2025, 7, 1)

    history = _history(db_session, software.id)
    assert [(h.contract_start_date, h.contract_end_date) for h in history] == [
        (date(2025, 2, 1), date(2025, 3, 1)),
        (date(2025, 3, 1), date(2025, 4, 1)),
        (date(2025, 4, 1), date(2025, 5, 1)),
        (date(2025, 5, 1), date(2025, 6, 1)),
    ]


def test_renewal_date_far_in_the_past_is_reported_not_replayed(db_session):
    typo = _create_software(
        db_session,
        name="Typo",
        contract_start_date=date(202, 5, 1),
        renewal_date=date(202, 6, 1),
    )
    fine = _create_software(db_session, name="Fine", renewal_date=date(2025, 6, 1))

    result = renewal_services.process_due(db_session, today=date(2025, 6, 1))

    outcomes = {o.software_id: o for o in result.results}
    assert outcomes[typo.id].success is False
    assert "renew manually" in outcomes[typo.id].error
    assert outcomes[fine.id].success is True
    assert result.renewed_count == 1

    db_session.refresh(typo)
    assert typo.renewal_date == date(202, 6, 1)
    assert _history(db_session, typo.id) == []


def test_catch_up_is_allowed_up_to_the_period_cap(db_session, monkeypatch):
    monkeypatch.setattr(renewal_services, "MAX_CATCH_UP_PERIODS", 3)
    within = _create_software(db_session, name="Within", renewal_date=date(2025, 4, 1))
    beyond = _create_software(db_session, name="Beyond", renewal_date=date(2025, 3, 1))

    result = renewal_services.process_due(db_session, today=date(2025, 6, 1))

    outcomes = {o.software_id: o for o in result.results}
    assert outcomes[within.id].success is True
    assert len(_history(db_session, within.id)) == 3
    assert outcomes[beyond.id].success is False
    assert _history(db_session, beyond.id) == []


def test_one_time_payment_is_reported_and_batch_continues(db_session):
    one_time = _create_software(
        db_session,
        name="Perpetual Tool",
        renewal_date=date(2025, 5, 20),
        payment_frequency=software_models.PaymentFrequency.ONE_TIME,
    )
    monthly = _create_software(db_session, name="Notion", renewal_date=date(2025, 6, 1))

    result = renewal_services.process_due(db_session, today=date(2025, 6, 1))

    assert result.total_processed == 2
    assert result.renewed_count == 1
    by_id = {r.software_id: r for r in result.results}
    assert by_id[one_time.id].success is False
    assert by_id[one_time.id].error == "cannot auto-renew one-time payment"
    assert by_id[monthly.id].success is True

    db_session.refresh(one_time)
    assert one_time.renewal_date == date(2025, 5, 20)
    assert _history(db_session, one_time.id) == []


def test_persistence_failure_rolls_back_only_that_item(db_session, monkeypatch):
    broken = _create_software(db_session, name="Broken", renewal_date=date(2025, 5, 31))
    healthy = _create_software(db_session, name="Healthy", renewal_date=date(2025, 6, 1))

    original_roll_forward = renewal_services._roll_forward

    def _failing_roll_forward(db, software, *, today):
        if software.id == broken.id:
            original_roll_forward(db, software, today=today)
            raise OperationalError("UPDATE software", {}, Exception("disk full"))
        return original_roll_forward(db, software, today=today)

    monkeypatch.setattr(renewal_services, "_roll_forward", _failing_roll_forward)

    result = renewal_services.process_due(db_session, today=date(2025, 6, 1))

    by_id = {r.software_id: r for r in result.results}
    assert by_id[broken.id].success is False
    assert "disk full" in by_id[broken.id].error
    assert by_id[healthy.id].success is True
    assert result.renewed_count == 1

    db_session.refresh(broken)
    assert broken.renewal_date == date(2025, 5, 31)
    assert _history(db_session, broken.id) == []
    assert len(_history(db_session, healthy.id)) == 1


def test_contract_history_rows_are_immutable(db_session):
    software = _create_software(db_session, name="Figma", renewal_date=date(2025, 6, 1))
    renewal_services.process_due(db_session, today=date(2025, 6, 1))
    entry = _history(db_session, software.id)[0]

    entry.notes = "rewritten"
    with pytest.raises(software_models.ContractHistoryImmutableError):
        db_session.flush()
    db_session.rollback()

    db_session.delete(entry)
    with pytest.raises(software_models.ContractHistoryImmutableError):
        db_session.flush()
    db_session.rollback()


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def test_upcoming_and_status_counts(db_session):
    today = date(2025, 6, 1)
    due_today = _create_software(db_session, name="A", renewal_date=date(2025, 6, 1))
    _create_software(db_session, name="B", renewal_date=date(2025, 6, 5))
    _create_software(db_session, name="C", renewal_date=date(2025, 6, 20))
    _create_software(db_session, name="D", renewal_date=date(2025, 7, 15))
    _create_software(
        db_session,
        name="E",
        renewal_date=date(2025, 6, 3),
        payment_frequency=software_models.PaymentFrequency.ONE_TIME,
    )

    upcoming = renewal_services.list_upcoming_renewals(db_session, today=today, days_ahead=30)
    assert [u.name for u in upcoming] == ["A", "B", "C"]
    assert [u.days_until_renewal for u in upcoming] == [0, 4, 19]

    status = renewal_services.renewal_status(db_session, today=today)
    assert status.due_today == 1
    assert status.due_this_week == 2
    assert status.upcoming_in_next_30_days == 3
    assert status.next_renewal.software_id == due_today.id
    assert status.scheduler_info["timezone"] == "America/Chicago"
    assert status.scheduler_info["daily_run_time"] == "1:00 AM"


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


def test_trigger_endpoint_returns_camel_case_summary(db_session):
    admin = _create_admin(db_session)
    _create_software(db_session, name="Slack", renewal_date=date(2025, 6, 1))

    response = renewal_router.trigger_auto_renewal(
        db=db_session,
        clock=FixedClock(date(2025, 6, 1)),
        current_user=admin,
    )
    body = response.model_dump(by_alias=True)

    assert body["renewedCount"] == 1
    assert body["totalProcessed"] == 1
    assert body["results"][0]["newContractEnd"] == date(2025, 7, 1)
    assert body["message"] == "Auto-renewal process completed"


def test_trigger_endpoint_returns_500_when_candidates_cannot_be_read(db_session, monkeypatch):
    admin = _create_admin(db_session)

    def _boom(db, *, today):
        raise OperationalError("SELECT software", {}, Exception("connection lost"))

    monkeypatch.setattr(renewal_services, "process_due", _boom)

    with pytest.raises(HTTPException) as exc:
        renewal_router.trigger_auto_renewal(
            db=db_session,
            clock=FixedClock(date(2025, 6, 1)),
            current_user=admin,
        )
    assert exc.value.status_code == 500


def test_status_endpoint_serialises_scheduler_info(db_session):
    admin = _create_admin(db_session)
    _create_software(db_session, name="Slack", renewal_date=date(2025, 6, 3))

    response = renewal_router.auto_renewal_status(
        db=db_session,
        clock=FixedClock(date(2025, 6, 1)),
        current_user=admin,
    )
    body = response.model_dump(by_alias=True)

    assert body["dueToday"] == 0
    assert body["dueThisWeek"] == 1
    assert body["upcomingInNext30Days"] == 1
    assert body["nextRenewal"]["daysUntilRenewal"] == 2
    assert body["schedulerInfo"]["dailyRunTime"] == "1:00 AM"


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


def _seed_dashboard(db):
    eng = account_models.Department(name="Engineering")
    fin = account_models.Department(name="Finance")
    owner = account_models.User(
        name="Olive Owner",
        email="owner@example.com",
        role=account_models.UserRole.SOFTWARE_OWNER,
        hashed_password="hash",
        is_active=True,
    )
    db.add_all([eng, fin, owner])
    db.commit()

    monthly = _create_software(db, name="Monthly", renewal_date=date(2025, 6, 10))
    annual = _create_software(
        db,
        name="Annual",
        renewal_date=date(2025, 6, 25),
        payment_frequency=software_models.PaymentFrequency.ANNUALLY,
        cost=Decimal("1200.00"),
    )
    _create_software(
        db,
        name="Perpetual",
        renewal_date=date(2026, 1, 1),
        payment_frequency=software_models.PaymentFrequency.ONE_TIME,
        cost=Decimal("500.00"),
    )
    retired = _create_software(db, name="Retired", renewal_date=date(2025, 6, 5), cost=Decimal("999.00"))

    monthly.owner_id = owner.id
    monthly.departments = [eng]
    annual.vendor = "Globex"
    annual.departments = [fin]
    retired.status = software_models.SoftwareStatus.INACTIVE
    db.commit()
    return owner


def test_dashboard_stats_normalise_spend_by_cadence(db_session):
    _seed_dashboard(db_session)

    stats = renewal_services.dashboard_stats(db_session, today=date(2025, 6, 1))

    assert stats.total_active_subscriptions == 3
    assert stats.monthly_spend == Decimal("200.00")
    assert stats.annual_spend == Decimal("2900.00")
    assert stats.upcoming_renewals_count == 3
    assert stats.total_vendors == 2
    assert stats.total_departments == 2


def test_dashboard_endpoint_is_scoped_to_the_caller(db_session):
    owner = _seed_dashboard(db_session)

    response = renewal_router.dashboard_stats(
        db=db_session,
        clock=FixedClock(date(2025, 6, 1)),
        current_user=owner,
    )
    body = response.model_dump(by_alias=True)

    assert body["totalActiveSubscriptions"] == 1
    assert body["monthlySpend"] == Decimal("100.00")
    assert body["annualSpend"] == Decimal("1200.00")
    assert body["upcomingRenewalsCount"] == 1
    assert body["totalVendors"] == 1
    assert body["totalDepartments"] == 1
