# app/models/reservation_item.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import ReservationItemStatus
from app.models.types import UtcDateTime, utc_now


class ReservationItem(Base):
    """One listing x quantity line; price is the snapshot taken at reservation time."""

    __tablename__ = "reservation_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reservation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False
    )
    listing_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("food_listings.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ReservationItemStatus.PENDING.value
    )

    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_reservation_items_quantity_positive"),
        Index("ix_reservation_items_reservation", "reservation_id"),
        Index("ix_reservation_items_listing", "listing_id", "status"),
    )

    reservation = relationship("Reservation", back_populates="items", lazy="selectin")
    listing = relationship("FoodListing", lazy="selectin")

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.price) * self.quantity

    def __repr__(self) -> str:
        return (
            f"<ReservationItem id={self.id} listing={self.listing_id} "
            f"qty={self.quantity} status={self.status}>"
        )
