"""Audit schedule sweep.

Gives every active subscription with auditing enabled a pending audit and
removes duplicate pending audits. Intended for cron (daily).
"""

from __future__ import annotations

from saasdb.clock import local_today
from saasdb.database import WriteSessionLocal
from saasdb.apps.audits import services as audit_services


def run() -> dict:
    db = WriteSessionLocal()
    try:
        summary = audit_services.ensure_audit_schedules(db, today=local_today())
        db.commit()
        return summary
    finally:
        db.close()


if __name__ == "__main__":
    result = run()
    print("Audit schedule sweep completed:", result)
