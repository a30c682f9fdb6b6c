# backend/saasdb/apps/renewals/router.py

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from saasdb.clock import Clock, get_clock
from saasdb.database import get_db, get_read_db
from saasdb.security import get_current_active_user, require_admin
from saasdb.apps.accounts.models import User
from saasdb.apps.software.scope import scope_for

from . import schemas, services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auto-renewal", tags=["auto_renewal"])
dashboard_router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.post(
    "/trigger",
    response_model=schemas.RenewalBatchRead,
    summary="Run auto-renewal now (administrators only)",
)
def trigger_auto_renewal(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(require_admin),
):
    today = clock.today()
    try:
        result = services.process_due(db, today=today)
    except SQLAlchemyError as exc:
        logger.exception("Auto-renewal candidate query failed", extra={"today": today.isoformat()})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Auto-renewal failed: {exc}",
        )

    logger.info(
        "Manual auto-renewal trigger",
        extra={"user_id": current_user.id, "renewed_count": result.renewed_count},
    )
    return schemas.RenewalBatchRead.model_validate(result, from_attributes=True)


@router.get(
    "/status",
    response_model=schemas.RenewalStatusRead,
    summary="Auto-renewal counters and scheduler info (administrators only)",
)
def auto_renewal_status(
    db: Session = Depends(get_read_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(require_admin),
):
    return schemas.RenewalStatusRead.model_validate(
        services.renewal_status(db, today=clock.today()),
        from_attributes=True,
    )


@router.get(
    "/upcoming",
    response_model=List[schemas.UpcomingRenewalRead],
    summary="Auto-renewals falling due in the next N days",
)
def upcoming_auto_renewals(
    days: int = Query(30, ge=0, le=366),
    db: Session = Depends(get_read_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_active_user),
):
    rows = services.list_upcoming_renewals(
        db,
        today=clock.today(),
        days_ahead=days,
        scope=scope_for(current_user),
    )
    return [schemas.UpcomingRenewalRead.model_validate(row, from_attributes=True) for row in rows]


@dashboard_router.get(
    "/stats",
    response_model=schemas.DashboardStatsRead,
    summary="Subscription counts and normalised spend for the current user's software",
)
def dashboard_stats(
    db: Session = Depends(get_read_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_active_user),
):
    stats = services.dashboard_stats(db, today=clock.today(), scope=scope_for(current_user))
    return schemas.DashboardStatsRead.model_validate(stats, from_attributes=True)
