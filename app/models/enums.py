# app/models/enums.py
from __future__ import annotations

from enum import StrEnum


class ListingStatus(StrEnum):
    AVAILABLE = "AVAILABLE"
    UNAVAILABLE = "UNAVAILABLE"
    SOLD = "SOLD"


class PickupStatus(StrEnum):
    """
    Urgency bucket derived from the time left until pickup_end:

    - NORMAL   more than 4 hours
    - WARNING  (2, 4] hours
    - URGENT   (0, 2] hours
    - EXPIRED  deadline passed
    """

    NORMAL = "normal"
    WARNING = "warning"
    URGENT = "urgent"
    EXPIRED = "expired"


class ReservationStatus(StrEnum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ReservationItemStatus(StrEnum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(StrEnum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ActorRole(StrEnum):
    CUSTOMER = "CUSTOMER"
    BUSINESS = "BUSINESS"
    BRANCH_MANAGER = "BRANCH_MANAGER"


class NotificationKind(StrEnum):
    RESERVATION_CREATED = "RESERVATION_CREATED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PICKUP_CONFIRMED = "PICKUP_CONFIRMED"
    STATUS_CHANGED = "STATUS_CHANGED"


TERMINAL_RESERVATION_STATUSES = frozenset(
    {ReservationStatus.COMPLETED, ReservationStatus.CANCELLED}
)
