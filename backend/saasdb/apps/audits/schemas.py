# backend/saasdb/apps/audits/schemas.py

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from saasdb.apps.software.models import AuditFrequency


class AuditRead(BaseModel):
    id: str
    software_id: str
    scheduled_date: date
    completed_date: Optional[date] = None
    frequency: AuditFrequency
    notes: Optional[str] = None

    verify_active_users: bool
    verify_active_users_completed: bool
    check_seat_utilization: bool
    check_seat_utilization_completed: bool
    review_feature_usage: bool
    review_feature_usage_completed: bool
    update_department_allocation: bool
    update_department_allocation_completed: bool

    current_seats_used: Optional[int] = None
    current_usage_amount: Optional[int] = None
    usage_metric_snapshot: Optional[str] = None
    audit_findings: Optional[str] = None
    recommended_actions: Optional[str] = None
    completed_by_user_id: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditUpdate(BaseModel):
    """Edits to a pending audit. Only fields sent are applied."""

    scheduled_date: Optional[date] = None
    notes: Optional[str] = None

    verify_active_users: Optional[bool] = None
    verify_active_users_completed: Optional[bool] = None
    check_seat_utilization: Optional[bool] = None
    check_seat_utilization_completed: Optional[bool] = None
    review_feature_usage: Optional[bool] = None
    review_feature_usage_completed: Optional[bool] = None
    update_department_allocation: Optional[bool] = None
    update_department_allocation_completed: Optional[bool] = None

    @field_validator(
        "scheduled_date",
        "verify_active_users",
        "verify_active_users_completed",
        "check_seat_utilization",
        "check_seat_utilization_completed",
        "review_feature_usage",
        "review_feature_usage_completed",
        "update_department_allocation",
        "update_department_allocation_completed",
    )
    @classmethod
    def _reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class AuditCreate(BaseModel):
    """A manually planned audit. It replaces any pending audit of the software."""

    software_id: str
    scheduled_date: date
    frequency: Optional[AuditFrequency] = None
    notes: Optional[str] = None

    verify_active_users: bool = True
    check_seat_utilization: bool = True
    review_feature_usage: bool = True
    update_department_allocation: bool = True


class AuditCompletion(BaseModel):
    completed_date: Optional[date] = None

    verify_active_users_completed: bool = False
    check_seat_utilization_completed: bool = False
    review_feature_usage_completed: bool = False
    update_department_allocation_completed: bool = False

    current_seats_used: Optional[int] = Field(default=None, ge=0)
    current_usage_amount: Optional[int] = Field(default=None, ge=0)
    usage_metric_snapshot: Optional[str] = Field(default=None, max_length=128)
    audit_findings: Optional[str] = None
    recommended_actions: Optional[str] = None
    notes: Optional[str] = None

    # Copy the observed seat / usage numbers onto the software record.
    update_software_usage: bool = True


class AuditCompletionRead(BaseModel):
    completed: AuditRead
    next_audit: Optional[AuditRead] = None


class AuditDueRead(BaseModel):
    audit_id: str
    software_id: str
    software_name: str
    scheduled_date: date
    frequency: AuditFrequency
    days_until_due: Optional[int] = None
    days_past_due: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)
