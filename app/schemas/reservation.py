# app/schemas/reservation.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# -------------------------------
# shared
# -------------------------------
class ReservationLineIn(BaseModel):
    listing_id: int
    quantity: int = Field(..., ge=1)


class PaginationOut(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class ReservationItemOut(BaseModel):
    id: int
    listing_id: int
    title: str
    business_id: int
    branch_id: Optional[int] = None
    quantity: int
    price: Decimal
    line_total: Decimal
    status: str
    pickup_location: Optional[str] = None


class PaymentOut(BaseModel):
    transaction_id: str
    amount: Decimal
    currency: str
    payment_method: str
    status: str
    created_at: datetime


class ReservationOut(BaseModel):
    id: int
    reservation_number: str
    customer_id: int
    business_id: int
    status: str
    pickup_time: datetime
    total_amount: Decimal
    confirmation_code: Optional[str] = None
    code_issued_at: Optional[datetime] = None
    pickup_confirmed_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[ReservationItemOut]
    payments: List[PaymentOut] = []

    is_paid: bool
    is_pickup_time: bool
    can_cancel: bool
    payment_status: str
    time_remaining_seconds: int

    business_item_quantity: Optional[int] = None


# -------------------------------
# POST /reservations
# -------------------------------
class ReservationCreateIn(BaseModel):
    items: List[ReservationLineIn] = Field(..., min_length=1)
    pickup_time: datetime
    allow_multiple_businesses: Optional[bool] = None


class ReservationCreateOut(BaseModel):
    reservations: List[ReservationOut]
    count: int


# -------------------------------
# POST /reservations/{id}/pay
# -------------------------------
class PaymentIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = None
    payment_method: str = "card"


class PaymentResultOut(BaseModel):
    reservation_id: int
    reservation_number: str
    status: str
    transaction_id: str
    payment_status: str
    amount: Decimal
    currency: str
    confirmation_code: str
    qr_payload: Dict[str, Any]
    qr_code: str


# -------------------------------
# POST /reservations/{id}/verify
# -------------------------------
class VerifyIn(BaseModel):
    confirmation_code: str = Field(..., min_length=1, max_length=32)


class VerifyOut(BaseModel):
    reservation_id: int
    reservation_number: str
    status: str
    verified_item_ids: List[int]
    reservation_completed: bool
    pickup_confirmed_at: Optional[datetime] = None


# -------------------------------
# POST /reservations/{id}/cancel
# -------------------------------
class CancelIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class CancelOut(BaseModel):
    reservation_id: int
    reservation_number: str
    status: str
    cancelled_item_ids: List[int]
    reservation_cancelled: bool
    refund_due: Decimal
    notes: List[str] = []


# -------------------------------
# status / qr
# -------------------------------
class StatusItemOut(BaseModel):
    id: int
    title: str
    quantity: int
    status: str


class ReservationStatusOut(BaseModel):
    id: int
    reservation_number: str
    status: str
    is_paid: bool
    has_qr_code: bool
    pickup_time: datetime
    pickup_confirmed_at: Optional[datetime] = None
    total_amount: Decimal
    items: List[StatusItemOut]


class QrOut(BaseModel):
    reservation_id: int
    reservation_number: str
    confirmation_code: str
    code_issued_at: Optional[datetime] = None
    reservation_status: str
    pickup_time: datetime
    total_amount: Decimal
    qr_payload: Dict[str, Any]
    qr_code: str
    is_expired: bool
    is_valid: bool


class QrRefreshOut(BaseModel):
    confirmation_code: str
    issued_at: datetime
    qr_payload: Dict[str, Any]
    qr_code: str


class ReservationListOut(BaseModel):
    reservations: List[ReservationOut]
    pagination: PaginationOut
