# backend/saasdb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- Relationship targets referenced by name ("User", "Audit", ...) resolve.

The actual model classes are kept in saasdb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models          # users + departments
from .apps.software import models as software_models          # software + contract history
from .apps.audits import models as audits_models              # compliance audits
from .apps.notifications import models as notifications_models  # preferences + email log

__all__ = [
    "accounts_models",
    "software_models",
    "audits_models",
    "notifications_models",
]
