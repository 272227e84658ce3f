"""
LGPD legal deadline calculation.
"""

from datetime import datetime, timedelta

from backend.app.core.config import settings


def add_business_days(start: datetime, days: int) -> datetime:
    """Advance `start` by `days` weekdays, skipping Saturdays and Sundays."""
    result = start
    remaining = days
    while remaining > 0:
        result += timedelta(days=1)
        if result.weekday() < 5:
            remaining -= 1
    return result


def calculate_due_date(created_at: datetime, days: int = None, business_days: bool = None) -> datetime:
    """
    Legal deadline for a data-subject request.

    Defaults come from settings (15 business days).
    """
    if days is None:
        days = settings.lgpd_due_days
    if business_days is None:
        business_days = settings.lgpd_due_business_days
    if business_days:
        return add_business_days(created_at, days)
    return created_at + timedelta(days=days)
