# tests/services/test_reservation_verify.py
from datetime import timedelta

import pytest

from app.models.enums import NotificationKind, ReservationItemStatus, ReservationStatus
from app.models.reservation import Reservation
from app.services.errors import (
    InvalidConfirmationCode,
    InvalidStateTransition,
    NotAuthorized,
    NothingToVerify,
    VerificationExpired,
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


async def _paid(session, service, biz, lines):
    [r] = await service.create(session, customer_id=501, items=lines, pickup_time=PICKUP)
    paid = await service.pay(session, r.id, actor=customer(501), amount=r.total_amount)
    return r, paid.confirmation_code


async def _stored(maker, reservation_id):
    async with maker() as s:
        r = await s.get(Reservation, reservation_id)
        return r.status, [i.status for i in r.items], r.pickup_confirmed_at


async def test_owner_verifies_whole_reservation(session, async_session_maker, service, notifier):
    """Verification completes R and L stays AVAILABLE with 1 left."""
    biz = await make_business(session)
    listing = await make_listing(session, biz, quantity=3)
    r, code = await _paid(session, service, biz, [LineRequest(listing.id, 2)])

    result = await service.verify_pickup(
        session, r.id, actor=owner_of(biz), confirmation_code=code
    )

    assert result.reservation_completed
    assert [i.status for i in result.verified_items] == [ReservationItemStatus.COMPLETED]
    assert await _stored(async_session_maker, r.id) == (
        ReservationStatus.COMPLETED,
        [ReservationItemStatus.COMPLETED],
        NOW,
    )
    assert await listing_state(async_session_maker, listing.id) == (1, "AVAILABLE", "normal")
    assert notifier.last(NotificationKind.PICKUP_CONFIRMED)["reservation_completed"] is True


async def test_depleted_listing_is_marked_sold_on_pickup(session, async_session_maker, service):
    biz = await make_business(session)
    listing = await make_listing(session, biz, quantity=2)
    r, code = await _paid(session, service, biz, [LineRequest(listing.id, 2)])

    await service.verify_pickup(session, r.id, actor=owner_of(biz), confirmation_code=code)

    assert (await listing_state(async_session_maker, listing.id))[:2] == (0, "SOLD")


async def test_code_is_case_insensitive_and_trimmed(session, service):
    biz = await make_business(session)
    listing = await make_listing(session, biz)
    r, code = await _paid(session, service, biz, [LineRequest(listing.id, 1)])

    result = await service.verify_pickup(
        session, r.id, actor=owner_of(biz), confirmation_code=f"  {code.lower()} "
    )
    assert result.reservation_completed


async def test_verification_after_window_fails_without_changes(
    session, async_session_maker, service, clock
):
    """Three hours after pickup_time the code is no longer accepted."""
    biz = await make_business(session)
    listing = await make_listing(session, biz)
    r, code = await _paid(session, service, biz, [LineRequest(listing.id, 1)])

    clock.advance(hours=5)
    with pytest.raises(VerificationExpired):
        await service.verify_pickup(session, r.id, actor=owner_of(biz), confirmation_code=code)

    assert await _stored(async_session_maker, r.id) == (
        ReservationStatus.CONFIRMED,
        [ReservationItemStatus.PENDING],
        None,
    )


async def test_wrong_code_and_foreign_staff_are_rejected(session, service):
    biz = await make_business(session)
    other = await make_business(session)
    listing = await make_listing(session, biz)
    r, code = await _paid(session, service, biz, [LineRequest(listing.id, 1)])

    with pytest.raises(InvalidConfirmationCode):
        await service.verify_pickup(
            session, r.id, actor=owner_of(biz), confirmation_code="AAAAAAAA"
        )
    with pytest.raises(NotAuthorized):
        await service.verify_pickup(
            session, r.id, actor=owner_of(other, user_id=701), confirmation_code=code
        )


async def test_unpaid_reservation_has_no_valid_code(session, service):
    biz = await make_business(session)
    listing = await make_listing(session, biz)
    [r] = await service.create(
        session, customer_id=501, items=[LineRequest(listing.id, 1)], pickup_time=PICKUP
    )

    with pytest.raises(InvalidConfirmationCode):
        await service.verify_pickup(
            session, r.id, actor=owner_of(biz), confirmation_code="ABCDEFGH"
        )


async def test_branch_managers_verify_only_their_items(session, async_session_maker, service):
    biz = await make_business(session)
    north = await make_branch(session, biz, name="North")
    south = await make_branch(session, biz, name="South")
    ln = await make_listing(session, biz, branch=north, title="Bagels")
    ls = await make_listing(session, biz, branch=south, title="Soup")
    r, code = await _paid(session, service, biz, [LineRequest(ln.id, 1), LineRequest(ls.id, 1)])

    first = await service.verify_pickup(
        session, r.id, actor=manager_of(north), confirmation_code=code
    )
    assert not first.reservation_completed
    assert [i.listing_id for i in first.verified_items] == [ln.id]
    status, items, confirmed_at = await _stored(async_session_maker, r.id)
    assert status == ReservationStatus.CONFIRMED
    assert sorted(items) == ["COMPLETED", "PENDING"]
    assert confirmed_at is None

    with pytest.raises(NothingToVerify):
        await service.verify_pickup(
            session, r.id, actor=manager_of(north), confirmation_code=code
        )

    second = await service.verify_pickup(
        session, r.id, actor=manager_of(south, user_id=801), confirmation_code=code
    )
    assert second.reservation_completed
    assert (await _stored(async_session_maker, r.id))[0] == ReservationStatus.COMPLETED


async def test_completed_reservation_cannot_be_verified_again(session, service):
    biz = await make_business(session)
    listing = await make_listing(session, biz)
    r, code = await _paid(session, service, biz, [LineRequest(listing.id, 1)])
    await service.verify_pickup(session, r.id, actor=owner_of(biz), confirmation_code=code)

    with pytest.raises(InvalidStateTransition):
        await service.verify_pickup(session, r.id, actor=owner_of(biz), confirmation_code=code)
