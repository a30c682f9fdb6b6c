from __future__ import annotations

from datetime import date

import pytest
from apscheduler.triggers.cron import CronTrigger

from saasdb import clock, main, scheduler
from saasdb.apps.software import models as software_models
from saasdb.jobs import renewal_runner


def test_routes_are_registered():
    paths = {route.path for route in main.app.routes}

    for expected in (
        "/auth/login",
        "/software",
        "/software/{software_id}/contract-history",
        "/software/{software_id}/renew",
        "/auto-renewal/trigger",
        "/auto-renewal/status",
        "/auto-renewal/upcoming",
        "/dashboard/stats",
        "/audits",
        "/audits/upcoming",
        "/audits/{audit_id}/complete",
        "/notifications/preferences/{notification_type}",
        "/health",
    ):
        assert expected in paths


def test_health_endpoints():
    assert main.read_root()["status"] == "ok"
    assert main.health() == {"status": "ok"}


def test_daily_job_runs_in_app_timezone():
    sched = scheduler.build_scheduler()
    job = sched.get_job(scheduler.DAILY_JOB_ID)

    assert isinstance(job.trigger, CronTrigger)
    assert "hour='1'" in str(job.trigger)
    assert "minute='0'" in str(job.trigger)
    assert str(job.trigger.timezone) == "America/Chicago"
    assert job.max_instances == 1
    assert job.coalesce is True


def test_scheduler_stays_off_when_disabled():
    assert scheduler.SCHEDULER_ENABLED is False
    assert scheduler.start_scheduler() is None


def test_failing_step_does_not_stop_later_steps(monkeypatch):
    calls = []

    def _broken():
        calls.append("broken")
        raise RuntimeError("database unavailable")

    def _ok():
        calls.append("ok")
        return {"checked": 0}

    monkeypatch.setattr(scheduler, "DAILY_STEPS", {"auto_renewal": _broken, "reminders": _ok})

    summaries = scheduler.run_daily_jobs()

    assert calls == ["broken", "ok"]
    assert summaries == {"auto_renewal": {"error": True}, "reminders": {"checked": 0}}


def test_renewal_runner_reports_failures(db_session, monkeypatch):
    db_session.add_all(
        [
            software_models.Software(
                name="Monthly",
                payment_frequency=software_models.PaymentFrequency.MONTHLY,
                renewal_date=date(2025, 6, 1),
                auto_renewal=True,
            ),
            software_models.Software(
                name="Once",
                payment_frequency=software_models.PaymentFrequency.ONE_TIME,
                renewal_date=date(2025, 6, 1),
                auto_renewal=True,
            ),
        ]
    )
    db_session.commit()
    monkeypatch.setattr(renewal_runner, "WriteSessionLocal", lambda: db_session)
    monkeypatch.setattr(renewal_runner, "local_today", lambda: date(2025, 6, 1))

    summary = renewal_runner.run()

    assert summary["today"] == "2025-06-01"
    assert summary["renewed_count"] == 1
    assert summary["total_processed"] == 2
    assert [f["error"] for f in summary["failures"]] == ["cannot auto-renew one-time payment"]


def test_clock_base_class_is_abstract():
    with pytest.raises(TypeError):
        clock.Clock()
    assert clock.FixedClock(date(2025, 6, 1)).today() == date(2025, 6, 1)
