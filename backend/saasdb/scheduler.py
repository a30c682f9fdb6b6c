# backend/saasdb/scheduler.py
"""
In-process daily trigger.

One cron job at RENEWAL_RUN_HOUR:RENEWAL_RUN_MINUTE in APP_TIMEZONE runs the
auto-renewal batch, then the audit schedule sweep, then reminders. The same
job modules can be run from an external cron instead; set
SCHEDULER_ENABLED=false when doing so.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .clock import app_zone
from .apps.renewals.services import RENEWAL_RUN_HOUR, RENEWAL_RUN_MINUTE
from .jobs import audit_schedule_runner, reminder_runner, renewal_runner

logger = logging.getLogger(__name__)

SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").strip().lower() in {"1", "true", "yes", "on"}

DAILY_JOB_ID = "daily_contract_maintenance"

DAILY_STEPS: Dict[str, Callable[[], dict]] = {
    "auto_renewal": renewal_runner.run,
    "audit_schedules": audit_schedule_runner.run,
    "reminders": reminder_runner.run,
}

_scheduler: Optional[BackgroundScheduler] = None


def run_daily_jobs() -> Dict[str, dict]:
    """Run each daily step in order. A failing step is logged and the next one still runs."""
    summaries: Dict[str, dict] = {}
    for name, step in DAILY_STEPS.items():
        try:
            summaries[name] = step()
        except Exception:
            logger.exception("Daily job step failed", extra={"step": name})
            summaries[name] = {"error": True}
            continue
        logger.info("Daily job step finished", extra={"step": name, "summary": summaries[name]})
    return summaries


def build_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler(daemon=True, timezone=app_zone())
    scheduler.add_job(
        run_daily_jobs,
        CronTrigger(hour=RENEWAL_RUN_HOUR, minute=RENEWAL_RUN_MINUTE, timezone=app_zone()),
        id=DAILY_JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=3600,
    )
    return scheduler


def start_scheduler() -> Optional[BackgroundScheduler]:
    global _scheduler
    if not SCHEDULER_ENABLED:
        logger.info("Scheduler disabled via SCHEDULER_ENABLED")
        return None
    if _scheduler is None:
        _scheduler = build_scheduler()
        _scheduler.start()
        logger.info(
            "Scheduler started",
            extra={"run_hour": RENEWAL_RUN_HOUR, "run_minute": RENEWAL_RUN_MINUTE},
        )
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
