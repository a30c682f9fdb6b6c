# backend/saasdb/apps/software/schemas.py

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import (
    AuditFrequency,
    ContractHistoryStatus,
    LicenseType,
    NoticePeriod,
    PaymentFrequency,
    SoftwareStatus,
)


def _check_period(start: Optional[date], end: Optional[date]) -> None:
    if start is not None and end is not None and end < start:
        raise ValueError("renewal_date must be on or after contract_start_date")


# Columns that are NOT NULL on the software row; a patch may omit them but not
# send null.
_REQUIRED_ON_PATCH = (
    "name",
    "cost",
    "payment_frequency",
    "status",
    "notice_period",
    "auto_renewal",
    "audit_frequency",
)


# ---------------------------------------------------------------------------
# SOFTWARE
# ---------------------------------------------------------------------------


class LicenseFields(BaseModel):
    license_type: Optional[LicenseType] = None
    seats_purchased: Optional[int] = Field(default=None, ge=0)
    seats_utilized: Optional[int] = Field(default=None, ge=0)
    usage_metric: Optional[str] = Field(default=None, max_length=128)
    usage_limit: Optional[int] = Field(default=None, ge=0)
    current_usage: Optional[int] = Field(default=None, ge=0)
    sites_licensed: Optional[int] = Field(default=None, ge=0)
    license_notes: Optional[str] = None


class SoftwareBase(LicenseFields):
    name: str = Field(min_length=1, max_length=255)
    vendor: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None

    cost: Decimal = Field(default=Decimal("0"), ge=0)
    payment_frequency: PaymentFrequency = PaymentFrequency.ANNUALLY
    status: SoftwareStatus = SoftwareStatus.ACTIVE
    contract_start_date: Optional[date] = None
    renewal_date: Optional[date] = None
    notice_period: NoticePeriod = NoticePeriod.NONE
    auto_renewal: bool = False

    audit_frequency: AuditFrequency = AuditFrequency.QUARTERLY
    owner_id: Optional[str] = None


class SoftwareCreate(SoftwareBase):
    department_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_period(self) -> "SoftwareCreate":
        _check_period(self.contract_start_date, self.renewal_date)
        return self


class SoftwareUpdate(BaseModel):
    """
    Partial update. Only fields present in the request body are applied
    (`model_dump(exclude_unset=True)`); the period check runs against the
    merged record in the service layer as well.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    vendor: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    cost: Optional[Decimal] = Field(default=None, ge=0)
    payment_frequency: Optional[PaymentFrequency] = None
    status: Optional[SoftwareStatus] = None
    contract_start_date: Optional[date] = None
    renewal_date: Optional[date] = None
    notice_period: Optional[NoticePeriod] = None
    auto_renewal: Optional[bool] = None

    license_type: Optional[LicenseType] = None
    seats_purchased: Optional[int] = Field(default=None, ge=0)
    seats_utilized: Optional[int] = Field(default=None, ge=0)
    usage_metric: Optional[str] = Field(default=None, max_length=128)
    usage_limit: Optional[int] = Field(default=None, ge=0)
    current_usage: Optional[int] = Field(default=None, ge=0)
    sites_licensed: Optional[int] = Field(default=None, ge=0)
    license_notes: Optional[str] = None

    audit_frequency: Optional[AuditFrequency] = None
    owner_id: Optional[str] = None
    department_ids: Optional[List[str]] = None

    @field_validator(*_REQUIRED_ON_PATCH)
    @classmethod
    def _reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value

    @model_validator(mode="after")
    def _validate_period(self) -> "SoftwareUpdate":
        _check_period(self.contract_start_date, self.renewal_date)
        return self


class DepartmentRef(BaseModel):
    id: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class SoftwareRead(SoftwareBase):
    id: str
    departments: List[DepartmentRef] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# CONTRACT HISTORY / RENEWAL ACTIONS
# ---------------------------------------------------------------------------


class ContractHistoryRead(BaseModel):
    id: str
    software_id: str
    contract_start_date: Optional[date] = None
    contract_end_date: Optional[date] = None
    cost: Optional[Decimal] = None
    payment_frequency: Optional[PaymentFrequency] = None
    notice_period: Optional[NoticePeriod] = None
    auto_renewal: bool
    status: ContractHistoryStatus
    notes: Optional[str] = None
    created_by_user_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ContractRenewalRequest(LicenseFields):
    """Terms of the new period for a manual renewal."""

    contract_start_date: date
    renewal_date: date
    cost: Optional[Decimal] = Field(default=None, ge=0)
    payment_frequency: Optional[PaymentFrequency] = None
    notice_period: Optional[NoticePeriod] = None
    auto_renewal: Optional[bool] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _validate_period(self) -> "ContractRenewalRequest":
        _check_period(self.contract_start_date, self.renewal_date)
        return self


class ContractExpireRequest(BaseModel):
    notes: Optional[str] = None
