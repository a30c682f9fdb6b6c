# backend/saasdb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Table,
)
from sqlalchemy.orm import relationship

from saasdb.database import Base
from saasdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class UserRole(str, enum.Enum):
    """Closed set of portal roles.

    Visibility of subscriptions is derived from the role in
    `saasdb.apps.software.scope`; nothing compares role strings directly.
    """

    ADMINISTRATOR = "Administrator"
    SOFTWARE_OWNER = "Software Owner"
    DEPARTMENT_HEAD = "Department Head"


# ---------------------------------------------------------------------------
# DEPARTMENTS
# ---------------------------------------------------------------------------

# Department heads may be assigned to several departments.
user_departments = Table(
    "user_departments",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "department_id",
        String(36),
        ForeignKey("departments.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Department(Base):
    """
    Organisational unit that uses software (Finance, Marketing, IT, ...).

    Used for:
    - department-head visibility of subscriptions
    - routing renewal reminders to the relevant department heads
    """

    __tablename__ = "departments"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    name = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    users = relationship(
        "User",
        secondary=user_departments,
        back_populates="departments",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Department {self.name}>"


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


class User(Base):
    """
    Portal user.

    Users are provisioned outside this service (see
    create_initial_admin.py); only the fields the renewal, audit and
    visibility logic needs live here.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role_active", "role", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)

    role = Column(
        Enum(UserRole, name="user_role_enum", native_enum=False),
        nullable=False,
        default=UserRole.SOFTWARE_OWNER,
        index=True,
    )

    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    departments = relationship(
        "Department",
        secondary=user_departments,
        back_populates="users",
        lazy="selectin",
    )

    @property
    def department_ids(self) -> set[str]:
        return {dept.id for dept in self.departments or []}

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMINISTRATOR

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
