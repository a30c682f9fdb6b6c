# backend/saasdb/alembic/env.py
#
# Run from backend/:  alembic upgrade head
# The database URL comes from alembic.ini when set, otherwise from the same
# DATABASE_WRITE_URL / DATABASE_URL variables the API uses.

from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from alembic import context

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

_ini_url = (config.get_main_option("sqlalchemy.url") or "").strip()
if _ini_url and not os.getenv("DATABASE_WRITE_URL") and not os.getenv("DATABASE_URL"):
    os.environ["DATABASE_URL"] = _ini_url

from saasdb.database import Base, WRITE_DB_URL, write_engine  # noqa: E402
from saasdb.apps.accounts import models as _accounts  # noqa: F401, E402
from saasdb.apps.software import models as _software  # noqa: F401, E402
from saasdb.apps.audits import models as _audits  # noqa: F401, E402
from saasdb.apps.notifications import models as _notifications  # noqa: F401, E402


def _configure(**kwargs) -> None:
    context.configure(target_metadata=Base.metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    _configure(url=WRITE_DB_URL, literal_binds=True)
else:
    with write_engine.connect() as connection:
        # sqlite cannot ALTER most things in place
        _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")
