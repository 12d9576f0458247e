# app/models/food_listing.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import ListingStatus, PickupStatus
from app.models.types import UtcDateTime, utc_now


class FoodListing(Base):
    """
    Sellable unit of surplus food.

    quantity is the contended resource: it only moves through the inventory
    ledger (conditional UPDATEs), never through attribute assignment.
    pickup_status is a cached, derived value refreshed by the sweeper.
    """

    __tablename__ = "food_listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    branch_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("branches.id", ondelete="SET NULL"), nullable=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    original_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    pickup_start: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    pickup_end: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ListingStatus.AVAILABLE.value
    )
    pickup_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PickupStatus.NORMAL.value
    )

    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_food_listings_quantity_non_negative"),
        Index("ix_food_listings_business", "business_id"),
        Index("ix_food_listings_sweep", "status", "pickup_status", "id"),
    )

    business = relationship("Business", lazy="selectin")
    branch = relationship("Branch", lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<FoodListing id={self.id} qty={self.quantity} "
            f"status={self.status} pickup={self.pickup_status}>"
        )
