# app/models/branch.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.types import UtcDateTime, utc_now


class Branch(Base):
    """Physical pickup location operated under a business."""

    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    branch_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    operating_hours: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    manager_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    manager_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    manager_user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)

    __table_args__ = (Index("ix_branches_business", "business_id"),)

    business = relationship("Business", back_populates="branches", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Branch id={self.id} code={self.branch_code} business={self.business_id}>"
