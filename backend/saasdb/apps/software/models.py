# backend/saasdb/apps/software/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    event,
)
from sqlalchemy.orm import relationship

from saasdb.database import Base
from saasdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class PaymentFrequency(str, enum.Enum):
    MONTHLY = "Monthly"
    ANNUALLY = "Annually"
    ONE_TIME = "One Time"


class SoftwareStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    PENDING_APPROVAL = "Pending Approval"


class NoticePeriod(str, enum.Enum):
    NONE = "None"
    DAYS_30 = "30 Days"
    DAYS_60 = "60 Days"
    DAYS_90 = "90 Days"


class LicenseType(str, enum.Enum):
    PER_USER = "Per User/Seat"
    SITE = "Site License"
    USAGE_BASED = "Usage-Based"
    PERPETUAL = "Perpetual"
    FREEMIUM = "Freemium"
    OTHER = "Other"


class AuditFrequency(str, enum.Enum):
    NONE = "None"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    ANNUALLY = "Annually"


class ContractHistoryStatus(str, enum.Enum):
    AUTO_RENEWED = "Auto-Renewed"
    RENEWED = "Renewed"
    EXPIRED = "Expired"


# ---------------------------------------------------------------------------
# SOFTWARE
# ---------------------------------------------------------------------------

software_departments = Table(
    "software_departments",
    Base.metadata,
    Column(
        "software_id",
        String(36),
        ForeignKey("software.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "department_id",
        String(36),
        ForeignKey("departments.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Software(Base):
    """
    A subscription / licence held by the organisation.

    The current contract period is [contract_start_date, renewal_date].
    Past periods live in ContractHistory and are written only by the renewal
    engine (auto-renewal) or the manual renew / expire actions.
    """

    __tablename__ = "software"
    __table_args__ = (
        CheckConstraint(
            "renewal_date IS NULL OR contract_start_date IS NULL "
            "OR renewal_date >= contract_start_date",
            name="ck_software_renewal_after_start",
        ),
        Index("idx_software_auto_renewal_due", "auto_renewal", "renewal_date"),
        Index("idx_software_owner", "owner_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    name = Column(String(255), nullable=False, index=True)
    vendor = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    # Contract terms
    cost = Column(Numeric(12, 2), nullable=False, default=0)
    payment_frequency = Column(
        SAEnum(PaymentFrequency, name="payment_frequency_enum", native_enum=False),
        nullable=False,
        default=PaymentFrequency.ANNUALLY,
    )
    status = Column(
        SAEnum(SoftwareStatus, name="software_status_enum", native_enum=False),
        nullable=False,
        default=SoftwareStatus.ACTIVE,
        index=True,
    )
    contract_start_date = Column(Date, nullable=True)
    renewal_date = Column(Date, nullable=True)
    notice_period = Column(
        SAEnum(NoticePeriod, name="notice_period_enum", native_enum=False),
        nullable=False,
        default=NoticePeriod.NONE,
    )
    auto_renewal = Column(Boolean, nullable=False, default=False)

    # Licence details (which fields apply depends on license_type)
    license_type = Column(
        SAEnum(LicenseType, name="license_type_enum", native_enum=False),
        nullable=True,
    )
    seats_purchased = Column(Integer, nullable=True)
    seats_utilized = Column(Integer, nullable=True)
    usage_metric = Column(String(128), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    current_usage = Column(Integer, nullable=True)
    sites_licensed = Column(Integer, nullable=True)
    license_notes = Column(Text, nullable=True)

    audit_frequency = Column(
        SAEnum(AuditFrequency, name="audit_frequency_enum", native_enum=False),
        nullable=False,
        default=AuditFrequency.QUARTERLY,
    )

    owner_id = Column(
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

    owner = relationship("User", lazy="joined")
    departments = relationship(
        "Department",
        secondary=software_departments,
        lazy="selectin",
    )
    contract_history = relationship(
        "ContractHistory",
        back_populates="software",
        order_by="ContractHistory.created_at.desc()",
        passive_deletes="all",
        lazy="noload",
    )
    audits = relationship(
        "Audit",
        back_populates="software",
        cascade="all",
        passive_deletes=True,
        lazy="select",
    )

    @property
    def department_ids(self) -> set[str]:
        return {dept.id for dept in self.departments or []}

    def __repr__(self) -> str:
        return f"<Software {self.name} renewal={self.renewal_date}>"


# ---------------------------------------------------------------------------
# CONTRACT HISTORY
# ---------------------------------------------------------------------------


class ContractHistory(Base):
    """
    Snapshot of a contract period that has ended.

    Rows are append-only; see the listeners below.
    """

    __tablename__ = "contract_history"
    __table_args__ = (
        Index("idx_contract_history_software_created", "software_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    software_id = Column(
        String(36),
        ForeignKey("software.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    contract_start_date = Column(Date, nullable=True)
    contract_end_date = Column(Date, nullable=True)
    cost = Column(Numeric(12, 2), nullable=True)
    payment_frequency = Column(
        SAEnum(PaymentFrequency, name="payment_frequency_enum", native_enum=False),
        nullable=True,
    )
    notice_period = Column(
        SAEnum(NoticePeriod, name="notice_period_enum", native_enum=False),
        nullable=True,
    )
    auto_renewal = Column(Boolean, nullable=False, default=False)
    status = Column(
        SAEnum(ContractHistoryStatus, name="contract_history_status_enum", native_enum=False),
        nullable=False,
    )
    notes = Column(Text, nullable=True)

    created_by_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    software = relationship("Software", back_populates="contract_history")

    def __repr__(self) -> str:
        return (
            f"<ContractHistory software={self.software_id} "
            f"{self.contract_start_date}..{self.contract_end_date} {self.status}>"
        )


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SoftwareNotFoundError(LookupError):
    """Raised when a software record does not exist or is outside the caller's scope."""


class ContractHistoryImmutableError(Exception):
    """Raised when code tries to modify or delete a contract history row."""


@event.listens_for(ContractHistory, "before_update")
def _block_history_update(mapper, connection, target) -> None:
    raise ContractHistoryImmutableError(
        f"Contract history entry {target.id} is immutable"
    )


@event.listens_for(ContractHistory, "before_delete")
def _block_history_delete(mapper, connection, target) -> None:
    raise ContractHistoryImmutableError(
        f"Contract history entry {target.id} cannot be deleted"
    )
