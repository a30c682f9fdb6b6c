"""Daily auto-renewal job.

Safe to run from cron as well as from the in-process scheduler: subscriptions
renewed earlier the same day are no longer due, so a second run renews nothing.
"""

from __future__ import annotations

from saasdb.clock import local_today
from saasdb.database import WriteSessionLocal
from saasdb.apps.renewals import services as renewal_services


def run() -> dict:
    """Renew everything due today (app timezone) and return a summary dict."""
    db = WriteSessionLocal()
    try:
        today = local_today()
        result = renewal_services.process_due(db, today=today)
        return {
            "today": today.isoformat(),
            "renewed_count": result.renewed_count,
            "total_processed": result.total_processed,
            "failures": [
                {"software_id": r.software_id, "error": r.error}
                for r in result.results
                if not r.success
            ],
        }
    finally:
        db.close()


if __name__ == "__main__":
    summary = run()
    print("Auto-renewal completed:", summary)
