# backend/saasdb/apps/audits/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from saasdb.database import Base
from saasdb.utils.identifiers import generate_uuid7
from saasdb.apps.software.models import AuditFrequency


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Checklist items every audit carries: (required flag, completed flag).
CHECKLIST_ITEMS = (
    "verify_active_users",
    "check_seat_utilization",
    "review_feature_usage",
    "update_department_allocation",
)


class Audit(Base):
    """
    Recurring compliance audit of a subscription.

    Pending while completed_date is NULL. A subscription has at most one
    pending audit; the partial unique index enforces it on PostgreSQL and
    SQLite alike.
    """

    __tablename__ = "audits"
    __table_args__ = (
        Index(
            "uq_audits_one_pending_per_software",
            "software_id",
            unique=True,
            postgresql_where=text("completed_date IS NULL"),
            sqlite_where=text("completed_date IS NULL"),
        ),
        Index("idx_audits_scheduled_pending", "scheduled_date", "completed_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    software_id = Column(
        String(36),
        ForeignKey("software.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    scheduled_date = Column(Date, nullable=False, index=True)
    completed_date = Column(Date, nullable=True)
    frequency = Column(
        SAEnum(AuditFrequency, name="audit_frequency_enum", native_enum=False),
        nullable=False,
    )
    notes = Column(Text, nullable=True)

    # Checklist
    verify_active_users = Column(Boolean, nullable=False, default=True)
    verify_active_users_completed = Column(Boolean, nullable=False, default=False)
    check_seat_utilization = Column(Boolean, nullable=False, default=True)
    check_seat_utilization_completed = Column(Boolean, nullable=False, default=False)
    review_feature_usage = Column(Boolean, nullable=False, default=True)
    review_feature_usage_completed = Column(Boolean, nullable=False, default=False)
    update_department_allocation = Column(Boolean, nullable=False, default=True)
    update_department_allocation_completed = Column(Boolean, nullable=False, default=False)

    # Snapshot captured on completion
    current_seats_used = Column(Integer, nullable=True)
    current_usage_amount = Column(Integer, nullable=True)
    usage_metric_snapshot = Column(String(128), nullable=True)
    audit_findings = Column(Text, nullable=True)
    recommended_actions = Column(Text, nullable=True)
    completed_by_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    software = relationship("Software", back_populates="audits", lazy="joined")

    @property
    def is_pending(self) -> bool:
        return self.completed_date is None

    def __repr__(self) -> str:
        return f"<Audit software={self.software_id} scheduled={self.scheduled_date}>"
