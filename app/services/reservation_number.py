# app/services/reservation_number.py
"""
Human-readable reservation numbers: ``{company_code}-{YYYYMMDD}-{NNNNN}``.

The sequence restarts every UTC day per business. The next value is derived
from the greatest existing number carrying the same prefix; the UNIQUE
constraint on reservations.reservation_number is what actually guarantees
uniqueness, and a lost race is retried with a fresh read.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.reservation import Reservation
from app.services.errors import ReservationNumberExhausted

logger = logging.getLogger("foodsaver.reservation_number")

SEQUENCE_WIDTH = 5


def number_prefix(company_code: str, day: date) -> str:
    return f"{company_code}-{day:%Y%m%d}"


def format_number(company_code: str, day: date, seq: int) -> str:
    return f"{number_prefix(company_code, day)}-{seq:0{SEQUENCE_WIDTH}d}"


def parse_sequence(number: str) -> int:
    """Trailing sequence of a reservation number; 0 when it cannot be parsed."""
    tail = number.rsplit("-", 1)[-1]
    return int(tail) if tail.isdigit() else 0


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _is_number_collision(exc: IntegrityError) -> bool:
    return "reservation_number" in str(getattr(exc, "orig", exc))


class ReservationNumberGenerator:
    def __init__(self, *, max_retries: int = 5) -> None:
        self.max_retries = max(1, int(max_retries))

    async def next_number(self, session: AsyncSession, company_code: str, day: date) -> str:
        prefix = number_prefix(company_code, day)
        last = await session.scalar(
            select(Reservation.reservation_number)
            .where(Reservation.reservation_number.like(f"{_escape_like(prefix)}-%", escape="\\"))
            .order_by(Reservation.reservation_number.desc())
            .limit(1)
        )
        seq = parse_sequence(last) + 1 if last else 1
        return format_number(company_code, day, seq)

    async def insert_reservation(
        self,
        session: AsyncSession,
        build: Callable[[str], Reservation],
        *,
        company_code: str,
        day: date,
    ) -> Reservation:
        """
        Build and flush a Reservation under a freshly allocated number.

        ``build`` is called once per attempt with the candidate number and
        must return a new, unattached Reservation. Each attempt runs in its
        own savepoint so a collision does not poison the outer transaction.
        """
        for attempt in range(1, self.max_retries + 1):
            number = await self.next_number(session, company_code, day)
            try:
                async with session.begin_nested():
                    reservation = build(number)
                    session.add(reservation)
                    await session.flush()
                return reservation
            except IntegrityError as exc:
                if not _is_number_collision(exc):
                    raise
                logger.warning(
                    "reservation number collision number=%s attempt=%s/%s",
                    number,
                    attempt,
                    self.max_retries,
                )

        raise ReservationNumberExhausted(company_code=company_code, day=day.isoformat())
