# app/models/reservation.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import PaymentStatus, ReservationItemStatus, ReservationStatus
from app.models.types import UtcDateTime, utc_now


class Reservation(Base):
    """Aggregate root of one pickup transaction (one business per reservation)."""

    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reservation_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    customer_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    business_id: Mapped[int] = mapped_column(Integer, nullable=False)

    pickup_time: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ReservationStatus.PENDING.value
    )

    confirmation_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    code_issued_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime, nullable=True)
    pickup_confirmed_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index("ix_reservations_customer", "customer_id", "created_at"),
        Index("ix_reservations_business", "business_id", "created_at"),
    )

    items = relationship(
        "ReservationItem",
        back_populates="reservation",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ReservationItem.id",
    )
    payments = relationship(
        "PaymentTransaction",
        back_populates="reservation",
        lazy="selectin",
        order_by="PaymentTransaction.id",
    )

    # ---- derived views ----

    @property
    def is_paid(self) -> bool:
        return any(p.status == PaymentStatus.COMPLETED for p in self.payments)

    def item_statuses(self) -> set[str]:
        return {i.status for i in self.items}

    def all_items_in(self, status: ReservationItemStatus) -> bool:
        return bool(self.items) and all(i.status == status for i in self.items)

    def __repr__(self) -> str:
        return f"<Reservation id={self.id} number={self.reservation_number} status={self.status}>"
