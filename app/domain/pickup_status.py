# app/domain/pickup_status.py
from __future__ import annotations

import math
from datetime import datetime, timedelta

from app.models.enums import PickupStatus

URGENT_WITHIN = timedelta(hours=2)
WARNING_WITHIN = timedelta(hours=4)


def classify(pickup_end: datetime, now: datetime) -> PickupStatus:
    """
    Urgency bucket from the time left until ``pickup_end``:

      <= 0h      -> expired
      (0h, 2h]   -> urgent
      (2h, 4h]   -> warning
      > 4h       -> normal

    Pure: the result depends only on the two timestamps.
    """
    remaining = pickup_end - now
    if remaining <= timedelta(0):
        return PickupStatus.EXPIRED
    if remaining <= URGENT_WITHIN:
        return PickupStatus.URGENT
    if remaining <= WARNING_WITHIN:
        return PickupStatus.WARNING
    return PickupStatus.NORMAL


def remaining_hours(pickup_end: datetime, now: datetime) -> int:
    """Whole hours left, rounded up; 0 once the deadline has passed."""
    seconds = (pickup_end - now).total_seconds()
    return max(0, math.ceil(seconds / 3600))


def format_remaining(hours: int) -> str:
    if hours <= 0:
        return "Time expired"
    return f"{hours} hour{'' if hours == 1 else 's'} remaining"


def is_expired(pickup_end: datetime, now: datetime) -> bool:
    return classify(pickup_end, now) is PickupStatus.EXPIRED
