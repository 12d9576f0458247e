# tests/services/test_reservation_cancel.py
from datetime import timedelta
from decimal import Decimal

import pytest

from app.models.enums import NotificationKind, ReservationStatus
from app.models.reservation import Reservation
from app.services.errors import (
    CancellationWindowClosed,
    InvalidStateTransition,
    NotAuthorized,
    NothingToCancel,
)
from app.services.reservation_service import LineRequest
from tests.factories import (
    NOW,
    customer,
    listing_state,
    make_branch,
    make_business,
    make_listing,
    manager_of,
    owner_of,
)

pytestmark = pytest.mark.asyncio

PICKUP = NOW + timedelta(hours=2)


async def _create(session, service, lines, customer_id=501):
    [r] = await service.create(
        session, customer_id=customer_id, items=lines, pickup_time=PICKUP
    )
    return r


async def _stored(maker, reservation_id):
    async with maker() as s:
        r = await s.get(Reservation, reservation_id)
        return r.status, [i.status for i in r.items], r.cancellation_reason


async def test_customer_cancels_pending_reservation(
    session, async_session_maker, service, notifier
):
    biz = await make_business(session)
    listing = await make_listing(session, biz, quantity=5)
    r = await _create(session, service, [LineRequest(listing.id, 3)])

    result = await service.cancel(session, r.id, actor=customer(501), reason="Changed plans")

    assert result.reservation_cancelled
    assert result.refund_due == Decimal("0.00")
    assert await _stored(async_session_maker, r.id) == (
        ReservationStatus.CANCELLED,
        ["CANCELLED"],
        "Changed plans",
    )
    assert (await listing_state(async_session_maker, listing.id))[0] == 5
    assert notifier.last(NotificationKind.STATUS_CHANGED)["status"] == "CANCELLED"


async def test_default_reason_is_recorded(session, async_session_maker, service):
    biz = await make_business(session)
    listing = await make_listing(session, biz)
    r = await _create(session, service, [LineRequest(listing.id, 1)])

    await service.cancel(session, r.id, actor=customer(501))

    assert (await _stored(async_session_maker, r.id))[2] == "Cancelled"


async def test_customer_cannot_cancel_after_payment(session, async_session_maker, service):
    biz = await make_business(session)
    listing = await make_listing(session, biz, quantity=3)
    r = await _create(session, service, [LineRequest(listing.id, 2)])
    await service.pay(session, r.id, actor=customer(501), amount="10.00")

    with pytest.raises(CancellationWindowClosed):
        await service.cancel(session, r.id, actor=customer(501))

    assert (await _stored(async_session_maker, r.id))[0] == ReservationStatus.CONFIRMED
    assert (await listing_state(async_session_maker, listing.id))[0] == 1


async def test_customer_cancel_guards(session, service):
    biz = await make_business(session)
    listing = await make_listing(session, biz)
    r = await _create(session, service, [LineRequest(listing.id, 1)])

    with pytest.raises(NotAuthorized):
        await service.cancel(session, r.id, actor=customer(777))

    await service.cancel(session, r.id, actor=customer(501))
    with pytest.raises(InvalidStateTransition):
        await service.cancel(session, r.id, actor=customer(501))


async def test_staff_cancel_of_paid_items_reports_refund(
    session, async_session_maker, service, notifier
):
    biz = await make_business(session)
    north = await make_branch(session, biz)
    south = await make_branch(session, biz)
    ln = await make_listing(session, biz, branch=north, price="4.00", quantity=5)
    ls = await make_listing(session, biz, branch=south, price="3.00", quantity=5)
    r = await _create(session, service, [LineRequest(ln.id, 2), LineRequest(ls.id, 1)])
    await service.pay(session, r.id, actor=customer(501), amount="11.00")

    partial = await service.cancel(session, r.id, actor=manager_of(north), reason="Sold out")

    assert not partial.reservation_cancelled
    assert partial.refund_due == Decimal("8.00")
    assert partial.notes == ["Refund of 8.00 due to the customer"]
    assert [i.listing_id for i in partial.cancelled_items] == [ln.id]
    status, items, _ = await _stored(async_session_maker, r.id)
    assert status == ReservationStatus.CONFIRMED
    assert sorted(items) == ["CANCELLED", "PENDING"]
    assert (await listing_state(async_session_maker, ln.id))[0] == 5
    assert (await listing_state(async_session_maker, ls.id))[0] == 4
    assert notifier.last(NotificationKind.STATUS_CHANGED)["refund_due"] == "8.00"

    rest = await service.cancel(session, r.id, actor=owner_of(biz))
    assert rest.reservation_cancelled
    assert rest.refund_due == Decimal("3.00")
    assert (await _stored(async_session_maker, r.id))[0] == ReservationStatus.CANCELLED


async def test_staff_cancel_before_payment_lowers_the_total(
    session, async_session_maker, service
):
    biz = await make_business(session)
    north = await make_branch(session, biz)
    south = await make_branch(session, biz)
    ln = await make_listing(session, biz, branch=north, price="5.00", quantity=5)
    ls = await make_listing(session, biz, branch=south, price="5.00", quantity=5)
    r = await _create(session, service, [LineRequest(ln.id, 1), LineRequest(ls.id, 1)])

    await service.cancel(session, r.id, actor=manager_of(north))

    async with async_session_maker() as s:
        assert (await s.get(Reservation, r.id)).total_amount == Decimal("5.00")
    paid = await service.pay(session, r.id, actor=customer(501), amount="5.00")
    assert paid.reservation.status == ReservationStatus.CONFIRMED
    assert paid.payment.amount == Decimal("5.00")


async def test_staff_without_pending_items_gets_nothing_to_cancel(session, service):
    biz = await make_business(session)
    listing = await make_listing(session, biz)
    r = await _create(session, service, [LineRequest(listing.id, 1)])
    await service.cancel(session, r.id, actor=owner_of(biz))

    with pytest.raises(NothingToCancel):
        await service.cancel(session, r.id, actor=owner_of(biz))
    other = await make_business(session)
    with pytest.raises(NotAuthorized):
        await service.cancel(session, r.id, actor=owner_of(other, user_id=702))


async def test_release_revives_listing_sold_by_another_pickup(
    session, async_session_maker, service
):
    biz = await make_business(session)
    listing = await make_listing(session, biz, quantity=2)
    picked = await _create(session, service, [LineRequest(listing.id, 1)])
    waiting = await _create(session, service, [LineRequest(listing.id, 1)], customer_id=502)

    paid = await service.pay(session, picked.id, actor=customer(501), amount="5.00")
    await service.verify_pickup(
        session, picked.id, actor=owner_of(biz), confirmation_code=paid.confirmation_code
    )
    assert (await listing_state(async_session_maker, listing.id))[:2] == (0, "SOLD")

    await service.cancel(session, waiting.id, actor=customer(502))

    assert (await listing_state(async_session_maker, listing.id))[:2] == (1, "AVAILABLE")
