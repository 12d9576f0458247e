# app/services/notifications.py
"""
Notification fan-out.

Every notification lands in the ``notifications`` inbox table. Delivery over
external channels (email / push / sms) is gated by the user's
UserNotificationPreferences; a user without a preferences row gets the
inbox entry only. A failing channel is logged and skipped, it never
propagates back into the reservation state machine.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.ports import NotificationChannel
from app.models.enums import NotificationKind
from app.models.notification import Notification
from app.models.notification_preferences import UserNotificationPreferences
from app.obs.metrics import notification_failures_total

logger = logging.getLogger("foodsaver.notifications")

CHANNEL_NAMES = ("email", "push", "sms")

_TITLES = {
    NotificationKind.RESERVATION_CREATED: "Reservation created",
    NotificationKind.PAYMENT_CONFIRMED: "Payment confirmed",
    NotificationKind.PICKUP_CONFIRMED: "Pickup confirmed",
    NotificationKind.STATUS_CHANGED: "Reservation updated",
}


def render_message(kind: NotificationKind, payload: Mapping[str, Any]) -> Tuple[str, str]:
    """(title, message) for the inbox row and external channels."""
    title = _TITLES.get(kind, "Reservation update")
    number = payload.get("reservation_number", "")

    if kind == NotificationKind.RESERVATION_CREATED:
        return title, f"Reservation {number} is waiting for payment."
    if kind == NotificationKind.PAYMENT_CONFIRMED:
        return title, f"Reservation {number} is paid. Show code {payload.get('confirmation_code')} at pickup."
    if kind == NotificationKind.PICKUP_CONFIRMED:
        if payload.get("reservation_completed"):
            return title, f"All items of reservation {number} were picked up."
        return title, f"Part of reservation {number} was picked up."

    # STATUS_CHANGED (cancellations)
    parts = [
        f"{i.get('title')} x{i.get('quantity')}" for i in payload.get("cancelled_items") or []
    ]
    message = f"Reservation {number} was updated."
    if parts:
        message = f"Cancelled from reservation {number}: {', '.join(parts)}."
    refund = payload.get("refund_due")
    if refund and str(refund) not in ("0", "0.00"):
        message += f" A refund of {refund} {payload.get('currency', '')} will be processed.".rstrip()
    return title, message


@dataclass(frozen=True)
class NotificationPolicy:
    email: bool = False
    push: bool = False
    sms: bool = False
    # None: every kind is allowed
    kinds: Optional[FrozenSet[str]] = None

    @classmethod
    def from_preferences(
        cls, prefs: Optional[UserNotificationPreferences]
    ) -> "NotificationPolicy":
        if prefs is None:
            return cls()
        kinds = None
        if prefs.notification_types is not None:
            kinds = frozenset(str(k) for k in prefs.notification_types)
        return cls(
            email=bool(prefs.email_notifications),
            push=bool(prefs.push_notifications),
            sms=bool(prefs.sms_notifications),
            kinds=kinds,
        )

    def allows(self, kind: NotificationKind) -> bool:
        return self.kinds is None or str(kind) in self.kinds

    def channels_for(self, kind: NotificationKind) -> Tuple[str, ...]:
        if not self.allows(kind):
            return ()
        return tuple(name for name in CHANNEL_NAMES if getattr(self, name))


class LoggingChannel:
    """Writes the notification to the log; default for every channel name."""

    def __init__(self, name: str) -> None:
        self.name = name

    async def send(
        self,
        user_id: int,
        *,
        title: str,
        message: str,
        payload: Mapping[str, Any],
    ) -> None:
        logger.info("[%s] user=%s %s: %s", self.name, user_id, title, message)


class WebhookChannel:
    """POSTs the notification as JSON to an HTTP endpoint."""

    def __init__(
        self,
        name: str,
        url: str,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.name = name
        self.url = url
        self.timeout = timeout
        self._client = client

    async def send(
        self,
        user_id: int,
        *,
        title: str,
        message: str,
        payload: Mapping[str, Any],
    ) -> None:
        body = {
            "channel": self.name,
            "user_id": user_id,
            "title": title,
            "message": message,
            "payload": dict(payload),
        }
        if self._client is not None:
            resp = await self._client.post(self.url, json=body, timeout=self.timeout)
            resp.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.url, json=body)
            resp.raise_for_status()


class PreferenceNotificationDispatcher:
    """
    NotificationDispatcher backed by the inbox table and preference-gated channels.

    Uses its own session so it can run after the reservation transaction
    committed.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        channels: Optional[Mapping[str, NotificationChannel]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._channels: Dict[str, NotificationChannel] = dict(channels or {})

    async def notify(
        self,
        user_id: int,
        kind: NotificationKind,
        payload: Mapping[str, Any],
    ) -> None:
        title, message = render_message(kind, payload)

        async with self._session_factory() as session:
            async with session.begin():
                prefs = await session.scalar(
                    select(UserNotificationPreferences).where(
                        UserNotificationPreferences.user_id == user_id
                    )
                )
                session.add(
                    Notification(
                        user_id=user_id,
                        kind=str(kind),
                        title=title,
                        message=message,
                        payload=dict(payload),
                        reference_id=_reference_id(payload),
                        reference_type="reservation",
                    )
                )
                policy = NotificationPolicy.from_preferences(prefs)

        for name in policy.channels_for(kind):
            channel = self._channels.get(name)
            if channel is None:
                continue
            try:
                await channel.send(user_id, title=title, message=message, payload=payload)
            except Exception:
                notification_failures_total.labels(name).inc()
                logger.exception("notification channel=%s failed user=%s kind=%s", name, user_id, kind)


def _reference_id(payload: Mapping[str, Any]) -> Optional[str]:
    rid = payload.get("reservation_id")
    return str(rid) if rid is not None else None


def build_channels(webhook_url: Optional[str], *, timeout: float = 10.0) -> Dict[str, NotificationChannel]:
    """email/sms log only; push goes to the webhook when one is configured."""
    channels: Dict[str, NotificationChannel] = {name: LoggingChannel(name) for name in CHANNEL_NAMES}
    if webhook_url:
        channels["push"] = WebhookChannel("push", webhook_url, timeout=timeout)
    return channels
