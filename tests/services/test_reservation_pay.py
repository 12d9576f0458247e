# tests/services/test_reservation_pay.py
import re
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from app.domain.ports import ChargeResult
from app.models.enums import NotificationKind, PaymentStatus, ReservationStatus
from app.models.payment_transaction import PaymentTransaction
from app.models.reservation import Reservation
from app.services.errors import (
    AlreadyPaid,
    AmountMismatch,
    NotAuthorized,
    PaymentDeclined,
    ReservationNotFound,
)
from app.services.reservation_service import LineRequest, ReservationService
from tests.factories import NOW, customer, make_business, make_listing, owner_of

pytestmark = pytest.mark.asyncio

PICKUP = NOW + timedelta(hours=2)


class DecliningAuthority:
    def __init__(self) -> None:
        self.calls = 0

    async def charge(self, amount, currency, method) -> ChargeResult:
        self.calls += 1
        return ChargeResult(transaction_id=uuid.uuid4().hex, status=PaymentStatus.FAILED)


async def _pending(session, service, *, quantity=2, price="5.00"):
    biz = await make_business(session, code="PAY")
    listing = await make_listing(session, biz, price=price, quantity=3)
    [r] = await service.create(
        session,
        customer_id=501,
        items=[LineRequest(listing.id, quantity)],
        pickup_time=PICKUP,
    )
    return biz, listing, r


async def test_pay_confirms_and_issues_code(session, async_session_maker, service, notifier):
    """Paying 10.00 USD confirms R and issues an 8 char code."""
    _, _, r = await _pending(session, service)

    result = await service.pay(session, r.id, actor=customer(501), amount="10.00", currency="USD")

    assert result.reservation.status == ReservationStatus.CONFIRMED
    assert re.fullmatch(r"[A-Z0-9]{8}", result.confirmation_code)
    assert result.payment.status == PaymentStatus.COMPLETED
    assert result.qr_payload["confirmation_code"] == result.confirmation_code
    assert result.qr_code.startswith("data:image/png;base64,")
    assert result.qr_payload["pickup_locations"][0]["items"][0]["quantity"] == 2

    async with async_session_maker() as s:
        stored = await s.get(Reservation, r.id)
        assert stored.status == ReservationStatus.CONFIRMED
        assert stored.confirmation_code == result.confirmation_code
        assert stored.code_issued_at == NOW

    payload = notifier.last(NotificationKind.PAYMENT_CONFIRMED)
    assert payload["amount"] == "10.00"
    assert payload["confirmation_code"] == result.confirmation_code


async def test_second_payment_is_rejected(session, service):
    _, _, r = await _pending(session, service)
    await service.pay(session, r.id, actor=customer(501), amount="10.00")

    with pytest.raises(AlreadyPaid):
        await service.pay(session, r.id, actor=customer(501), amount="10.00")


async def test_amount_must_match_total_exactly(session, async_session_maker, service):
    _, _, r = await _pending(session, service)

    with pytest.raises(AmountMismatch) as ei:
        await service.pay(session, r.id, actor=customer(501), amount="9.99")
    assert ei.value.context == {"expected": "10.00", "received": "9.99"}

    async with async_session_maker() as s:
        payments = (await s.execute(select(PaymentTransaction))).scalars().all()
    assert payments == []


async def test_only_the_owning_customer_can_pay(session, service):
    biz, _, r = await _pending(session, service)

    with pytest.raises(NotAuthorized):
        await service.pay(session, r.id, actor=customer(999), amount="10.00")
    with pytest.raises(NotAuthorized):
        await service.pay(session, r.id, actor=owner_of(biz), amount="10.00")
    with pytest.raises(ReservationNotFound):
        await service.pay(session, 424242, actor=customer(501), amount="10.00")


async def test_declined_charge_is_recorded_and_reservation_stays_pending(
    session, async_session_maker, settings, clock, notifier
):
    authority = DecliningAuthority()
    service = ReservationService(
        payment_authority=authority, notifier=notifier, settings=settings, utc_now=clock
    )
    _, _, r = await _pending(session, service)

    with pytest.raises(PaymentDeclined):
        await service.pay(session, r.id, actor=customer(501), amount="10.00")

    assert authority.calls == 1
    async with async_session_maker() as s:
        stored = await s.get(Reservation, r.id)
        payments = (await s.execute(select(PaymentTransaction))).scalars().all()
    assert stored.status == ReservationStatus.PENDING
    assert stored.confirmation_code is None
    assert [p.status for p in payments] == ["FAILED"]
    assert NotificationKind.PAYMENT_CONFIRMED not in notifier.kinds()


async def test_payment_can_be_retried_after_a_decline(session, settings, clock, notifier):
    declining = ReservationService(
        payment_authority=DecliningAuthority(), notifier=notifier, settings=settings, utc_now=clock
    )
    _, _, r = await _pending(session, declining)
    with pytest.raises(PaymentDeclined):
        await declining.pay(session, r.id, actor=customer(501), amount="10.00")

    ok = ReservationService(notifier=notifier, settings=settings, utc_now=clock)
    result = await ok.pay(session, r.id, actor=customer(501), amount="10.00")
    assert result.reservation.status == ReservationStatus.CONFIRMED
