# app/domain/ports.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Protocol

from app.models.enums import NotificationKind, PaymentStatus


@dataclass(frozen=True)
class ChargeResult:
    transaction_id: str
    status: PaymentStatus


class PaymentAuthority(Protocol):
    """Opaque payment gateway; amount validation happens before the call."""

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        method: str,
    ) -> ChargeResult:
        ...


class NotificationDispatcher(Protocol):
    """Fire-and-forget from the state machine's point of view."""

    async def notify(
        self,
        user_id: int,
        kind: NotificationKind,
        payload: Mapping[str, Any],
    ) -> None:
        ...


class NotificationChannel(Protocol):
    name: str

    async def send(
        self,
        user_id: int,
        *,
        title: str,
        message: str,
        payload: Mapping[str, Any],
    ) -> None:
        ...
