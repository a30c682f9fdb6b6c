"""Renewal / audit / utilisation reminder runner.

Safe to run from cron; reminders already logged for the same day are skipped.
"""

from __future__ import annotations

from saasdb.clock import local_today
from saasdb.database import WriteSessionLocal
from saasdb.apps.notifications import service as notification_service


def run() -> dict:
    db = WriteSessionLocal()
    try:
        summary = notification_service.run_reminders(db, today=local_today())
        db.commit()
        return summary
    finally:
        db.close()


if __name__ == "__main__":
    result = run()
    print("Reminder run completed:", result)
