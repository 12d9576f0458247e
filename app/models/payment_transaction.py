# app/models/payment_transaction.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import PaymentStatus
from app.models.types import UtcDateTime, utc_now


class PaymentTransaction(Base):
    """Append-only record of a payment attempt against a reservation."""

    __tablename__ = "payment_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reservation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PaymentStatus.PENDING.value
    )

    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)

    __table_args__ = (Index("ix_payment_transactions_reservation", "reservation_id", "status"),)

    reservation = relationship("Reservation", back_populates="payments", lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<PaymentTransaction id={self.id} reservation={self.reservation_id} "
            f"status={self.status}>"
        )
