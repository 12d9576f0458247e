# app/core/container.py
"""
Collaborator wiring.

Built once per process (app lifespan or the first request) and stored on
``app.state.services``; nothing here is a module-level singleton, so tests
build their own container against their own session factory.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import AppSettings
from app.domain.ports import NotificationChannel, NotificationDispatcher, PaymentAuthority
from app.models.types import utc_now
from app.services.confirmation_code import ConfirmationCodeIssuer
from app.services.notifications import PreferenceNotificationDispatcher, build_channels
from app.services.payments import LocalPaymentAuthority
from app.services.reservation_queries import ReservationQueries
from app.services.reservation_service import ReservationService


@dataclass
class Services:
    settings: AppSettings
    payments: PaymentAuthority
    notifier: NotificationDispatcher
    reservations: ReservationService
    queries: ReservationQueries
    utc_now: Callable[[], datetime] = utc_now


def build_services(
    settings: AppSettings,
    session_factory: Callable[[], AsyncSession],
    *,
    payment_authority: Optional[PaymentAuthority] = None,
    notifier: Optional[NotificationDispatcher] = None,
    channels: Optional[Mapping[str, NotificationChannel]] = None,
    utc_now: Callable[[], datetime] = utc_now,
) -> Services:
    payments = payment_authority or LocalPaymentAuthority()
    if notifier is None:
        if channels is None:
            channels = build_channels(
                settings.NOTIFY_WEBHOOK_URL, timeout=settings.NOTIFY_TIMEOUT_SECONDS
            )
        notifier = PreferenceNotificationDispatcher(session_factory, channels)

    codes = ConfirmationCodeIssuer(utc_now=utc_now)
    return Services(
        settings=settings,
        payments=payments,
        notifier=notifier,
        reservations=ReservationService(
            payment_authority=payments,
            notifier=notifier,
            codes=codes,
            settings=settings,
            utc_now=utc_now,
        ),
        queries=ReservationQueries(codes=codes, settings=settings, utc_now=utc_now),
        utc_now=utc_now,
    )
