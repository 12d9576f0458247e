# tests/services/test_reservation_concurrency.py
import asyncio
from datetime import timedelta

import pytest

from app.services.errors import OutOfStock
from app.services.reservation_service import LineRequest
from tests.factories import NOW, listing_state, make_business, make_listing

pytestmark = pytest.mark.asyncio


async def _attempt(maker, service, listing_id, customer_id):
    async with maker() as s:
        return await service.create(
            s,
            customer_id=customer_id,
            items=[LineRequest(listing_id, 1)],
            pickup_time=NOW + timedelta(hours=1),
        )


async def test_last_unit_goes_to_exactly_one_request(session, async_session_maker, service):
    """Two concurrent requests for the last unit."""
    biz = await make_business(session)
    listing = await make_listing(session, biz, quantity=1)

    results = await asyncio.gather(
        _attempt(async_session_maker, service, listing.id, 501),
        _attempt(async_session_maker, service, listing.id, 502),
        return_exceptions=True,
    )

    won = [r for r in results if isinstance(r, list)]
    lost = [r for r in results if isinstance(r, BaseException)]
    assert len(won) == 1 and len(won[0]) == 1
    assert len(lost) == 1 and isinstance(lost[0], OutOfStock)
    assert (await listing_state(async_session_maker, listing.id))[0] == 0


async def test_many_concurrent_requests_never_oversell(session, async_session_maker, service):
    biz = await make_business(session)
    listing = await make_listing(session, biz, quantity=3)

    results = await asyncio.gather(
        *[_attempt(async_session_maker, service, listing.id, 600 + n) for n in range(6)],
        return_exceptions=True,
    )

    assert sum(isinstance(r, list) for r in results) == 3
    assert all(isinstance(r, (list, OutOfStock)) for r in results)
    assert (await listing_state(async_session_maker, listing.id))[0] == 0
