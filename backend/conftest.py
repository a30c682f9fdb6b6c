from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["APP_TIMEZONE"] = "America/Chicago"
os.environ["ARGON2_TIME_COST"] = "1"
os.environ["ARGON2_MEMORY_COST"] = "1024"
os.environ.pop("NOTIFICATIONS_EMAIL_PROVIDER", None)

from saasdb.database import Base  # noqa: E402
# every model module registers its tables on Base.metadata
from saasdb.apps.accounts import models as _accounts  # noqa: F401, E402
from saasdb.apps.software import models as _software  # noqa: F401, E402
from saasdb.apps.audits import models as _audits  # noqa: F401, E402
from saasdb.apps.notifications import models as _notifications  # noqa: F401, E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def today() -> date:
    return date(2025, 6, 1)
