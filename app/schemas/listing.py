# app/schemas/listing.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from app.schemas.reservation import PaginationOut


class ListingOut(BaseModel):
    id: int
    business_id: int
    branch_id: Optional[int] = None
    business_name: Optional[str] = None
    branch_name: Optional[str] = None
    title: str
    description: Optional[str] = None
    price: Decimal
    original_price: Decimal
    quantity: int
    status: str
    pickup_start: datetime
    pickup_end: datetime
    pickup_status: str  # normal / warning / urgent / expired
    remaining_hours: int
    remaining_text: str
    pickup_location: Optional[str] = None


class ListingListOut(BaseModel):
    listings: List[ListingOut]
    pagination: PaginationOut
