# tests/services/test_reservation_number_alloc.py
from datetime import date, timedelta

import pytest

from app.core.tx import run_in_tx
from app.models.reservation import Reservation
from app.services.errors import ReservationNumberExhausted
from app.services.reservation_number import ReservationNumberGenerator
from app.services.reservation_service import LineRequest
from tests.factories import NOW, make_business, make_listing

pytestmark = pytest.mark.asyncio

DAY = date(2026, 3, 14)


class StaleGenerator(ReservationNumberGenerator):
    """Hands out a fixed number for the first ``stale_calls`` attempts."""

    def __init__(self, stale: str, stale_calls: int, **kw) -> None:
        super().__init__(**kw)
        self.stale = stale
        self.stale_calls = stale_calls
        self.calls = 0

    async def next_number(self, session, company_code, day):
        self.calls += 1
        if self.calls <= self.stale_calls:
            return self.stale
        return await super().next_number(session, company_code, day)


def _builder(business_id: int):
    def _build(number: str) -> Reservation:
        return Reservation(
            reservation_number=number,
            customer_id=501,
            business_id=business_id,
            pickup_time=NOW + timedelta(hours=1),
            total_amount=0,
            items=[],
            payments=[],
        )

    return _build


async def _seed(session, service, code):
    biz = await make_business(session, code=code)
    listing = await make_listing(session, biz)
    [r] = await service.create(
        session,
        customer_id=501,
        items=[LineRequest(listing.id, 1)],
        pickup_time=NOW + timedelta(hours=1),
    )
    return biz, r


async def test_next_number_follows_greatest_existing(session, service):
    biz, r = await _seed(session, service, "NXT")
    assert r.reservation_number == "NXT-20260314-00001"

    gen = ReservationNumberGenerator()
    assert await gen.next_number(session, "NXT", DAY) == "NXT-20260314-00002"
    assert await gen.next_number(session, "NXT", DAY + timedelta(days=1)) == "NXT-20260315-00001"
    # prefixes that merely share leading characters are separate sequences
    assert await gen.next_number(session, "NX", DAY) == "NX-20260314-00001"
    await session.rollback()


async def test_collision_is_retried_with_a_fresh_number(session, service):
    biz, r = await _seed(session, service, "COL")
    gen = StaleGenerator(r.reservation_number, stale_calls=1, max_retries=3)

    created = await run_in_tx(
        session,
        lambda: gen.insert_reservation(session, _builder(biz.id), company_code="COL", day=DAY),
    )

    assert gen.calls == 2
    assert created.reservation_number == "COL-20260314-00002"


async def test_persistent_collisions_exhaust_retries(session, service):
    biz, r = await _seed(session, service, "EXH")
    gen = StaleGenerator(r.reservation_number, stale_calls=99, max_retries=2)

    with pytest.raises(ReservationNumberExhausted):
        await run_in_tx(
            session,
            lambda: gen.insert_reservation(session, _builder(biz.id), company_code="EXH", day=DAY),
        )
    assert gen.calls == 2
