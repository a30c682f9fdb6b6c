# backend/saasdb/apps/renewals/schemas.py
#
# Auto-renewal payloads are camelCase on the wire (renewedCount,
# totalProcessed, dueToday, ...); fields stay snake_case in Python.

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from saasdb.apps.software.models import PaymentFrequency


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class RenewalOutcomeRead(_CamelModel):
    software_id: str
    software_name: str
    success: bool
    error: Optional[str] = None
    previous_contract_end: Optional[date] = None
    new_contract_start: Optional[date] = None
    new_contract_end: Optional[date] = None
    payment_frequency: Optional[PaymentFrequency] = None
    cost: Optional[Decimal] = None


class RenewalBatchRead(_CamelModel):
    message: str = "Auto-renewal process completed"
    renewed_count: int
    total_processed: int
    results: List[RenewalOutcomeRead]


class UpcomingRenewalRead(_CamelModel):
    software_id: str
    name: str
    vendor: Optional[str] = None
    cost: Optional[Decimal] = None
    payment_frequency: PaymentFrequency
    renewal_date: date
    auto_renewal: bool
    owner_name: Optional[str] = None
    days_until_renewal: int


class SchedulerInfoRead(_CamelModel):
    timezone: str
    daily_run_time: str
    description: str


class RenewalStatusRead(_CamelModel):
    due_today: int
    due_this_week: int
    upcoming_in_next_30_days: int
    next_renewal: Optional[UpcomingRenewalRead] = None
    scheduler_info: SchedulerInfoRead


class DashboardStatsRead(_CamelModel):
    total_active_subscriptions: int
    monthly_spend: Decimal
    annual_spend: Decimal
    upcoming_renewals_count: int
    total_vendors: int
    total_departments: int
