from __future__ import annotations

from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from saasdb.database import Base
from saasdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationType(str, enum.Enum):
    RENEWAL_REMINDER = "Renewal Reminder"
    AUDIT_DUE = "Audit Due"
    CONTRACT_EXPIRING = "Contract Expiring"
    LICENSE_UTILIZATION = "License Utilization"
    UTILIZATION_WARNING = "Utilization Warning"


class NotificationPreference(Base):
    """
    Per-user opt-in for one notification type.

    A missing row means "disabled" except where eligibility applies an
    implicit default (renewal reminders, audit due).
    """

    __tablename__ = "notification_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "notification_type", name="uq_notification_pref_user_type"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    notification_type = Column(
        SAEnum(NotificationType, name="notification_type_enum", native_enum=False),
        nullable=False,
    )
    is_enabled = Column(Boolean, nullable=False, default=True)
    days_before = Column(Integer, nullable=True)
    utilization_threshold = Column(Integer, nullable=True)
    email_address = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    user = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<NotificationPreference user={self.user_id} type={self.notification_type}>"


class EmailStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED_NO_PROVIDER = "SKIPPED_NO_PROVIDER"


class EmailLog(Base):
    __tablename__ = "email_logs"
    __table_args__ = (
        Index("ix_email_logs_created", "created_at"),
        Index("ix_email_logs_template_status", "template_key", "status"),
        Index("ix_email_logs_recipient", "recipient"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    recipient = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    template_key = Column(String(128), nullable=False)
    status = Column(
        SAEnum(EmailStatus, name="email_status_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    error = Column(Text, nullable=True)
    context_json = Column(JSON, nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<EmailLog id={self.id} recipient={self.recipient} status={self.status}>"
