from __future__ import annotations

import calendar
from datetime import date


def add_months(base: date, months: int) -> date:
    """
    Add a number of calendar months to a date.

    The day is clamped to the last valid day of the target month, so
    Jan 31 + 1 month is Feb 28 (Feb 29 in leap years) and Feb 29 + 12 months
    is Feb 28.
    """
    if months <= 0:
        return base

    year = base.year + (base.month - 1 + months) // 12
    month = (base.month - 1 + months) % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(base.day, last_day))
