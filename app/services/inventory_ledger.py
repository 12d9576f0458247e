# app/services/inventory_ledger.py
"""
Inventory ledger for FoodListing.quantity.

All movements are conditional UPDATEs evaluated by the database:

    reserve  : quantity = quantity - n  WHERE status='AVAILABLE' AND quantity >= n
    release  : quantity = quantity + n
    sold     : status = 'SOLD'          WHERE status='AVAILABLE' AND quantity <= 0

The check and the write happen in one statement, so two concurrent callers
can never both take the last unit. The ORM identity map is not synchronised
(``synchronize_session=False``); callers that need the new quantity on an
already loaded FoodListing must refresh it.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Iterable, List, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.tx import run_in_tx
from app.models.enums import ListingStatus, PickupStatus
from app.models.food_listing import FoodListing
from app.obs.metrics import inventory_conflicts_total
from app.services.errors import (
    InvalidReservationRequest,
    ListingNotFound,
    ListingUnavailable,
    OutOfStock,
)

logger = logging.getLogger("foodsaver.inventory")


def merge_quantities(lines: Iterable[Tuple[int, int]]) -> List[Tuple[int, int]]:
    """
    Collapse duplicate listing ids and order by listing id.

    A stable id order means concurrent multi-listing reservations lock rows
    in the same sequence.
    """
    merged: "OrderedDict[int, int]" = OrderedDict()
    for listing_id, qty in lines:
        merged[int(listing_id)] = merged.get(int(listing_id), 0) + int(qty)
    return sorted(merged.items())


class InventoryLedger:
    def __init__(self, *, retry_attempts: int = 1, revive_sold: bool = True) -> None:
        self.retry_attempts = max(0, int(retry_attempts))
        self.revive_sold = revive_sold

    # ---------------- reserve ----------------

    async def reserve(self, session: AsyncSession, listing_id: int, qty: int) -> None:
        """
        Atomically take ``qty`` units from an AVAILABLE listing.

        Raises ListingNotFound / ListingUnavailable / OutOfStock; on any
        failure the quantity is untouched.
        """
        if qty <= 0:
            raise InvalidReservationRequest(
                "Quantity must be at least 1", listing_id=listing_id, quantity=qty
            )

        stmt = (
            update(FoodListing)
            .where(
                FoodListing.id == listing_id,
                FoodListing.status == ListingStatus.AVAILABLE.value,
                FoodListing.quantity >= qty,
            )
            .values(quantity=FoodListing.quantity - qty)
            .execution_options(synchronize_session=False)
        )

        for attempt in range(self.retry_attempts + 1):
            res = await session.execute(stmt)
            if res.rowcount == 1:
                logger.debug("reserved listing=%s qty=%s", listing_id, qty)
                return

            row = (
                await session.execute(
                    select(FoodListing.status, FoodListing.quantity).where(
                        FoodListing.id == listing_id
                    )
                )
            ).first()
            if row is None:
                raise ListingNotFound(listing_id=listing_id)
            status, available = row
            if status != ListingStatus.AVAILABLE.value:
                inventory_conflicts_total.labels("listing_unavailable").inc()
                raise ListingUnavailable(listing_id=listing_id, status=status)
            if available < qty:
                break
            # stock reappeared between the UPDATE and the re-read: try again
            logger.info(
                "reserve retry listing=%s qty=%s attempt=%s", listing_id, qty, attempt + 1
            )

        available = await session.scalar(
            select(FoodListing.quantity).where(FoodListing.id == listing_id)
        )
        inventory_conflicts_total.labels("out_of_stock").inc()
        raise OutOfStock(
            f"Only {available} units available",
            listing_id=listing_id,
            requested=qty,
            available=available,
        )

    async def reserve_many(
        self, session: AsyncSession, lines: Iterable[Tuple[int, int]]
    ) -> None:
        """
        All-or-nothing reserve over several listings.

        Runs inside a savepoint when the caller already holds a transaction,
        so a failure on the n-th listing rolls back the first n-1 decrements.
        """
        merged = merge_quantities(lines)

        async def _apply() -> None:
            for listing_id, qty in merged:
                await self.reserve(session, listing_id, qty)

        await run_in_tx(session, _apply)

    # ---------------- release ----------------

    async def release(self, session: AsyncSession, listing_id: int, qty: int) -> None:
        """
        Give ``qty`` units back to a listing.

        A SOLD listing becomes AVAILABLE again when the release leaves stock
        on hand and its pickup window has not expired.
        """
        if qty <= 0:
            raise InvalidReservationRequest(
                "Quantity must be at least 1", listing_id=listing_id, quantity=qty
            )

        res = await session.execute(
            update(FoodListing)
            .where(FoodListing.id == listing_id)
            .values(quantity=FoodListing.quantity + qty)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise ListingNotFound(listing_id=listing_id)

        if self.revive_sold:
            revived = await session.execute(
                update(FoodListing)
                .where(
                    FoodListing.id == listing_id,
                    FoodListing.status == ListingStatus.SOLD.value,
                    FoodListing.quantity > 0,
                    FoodListing.pickup_status != PickupStatus.EXPIRED.value,
                )
                .values(status=ListingStatus.AVAILABLE.value)
                .execution_options(synchronize_session=False)
            )
            if revived.rowcount:
                logger.info("listing=%s revived from SOLD after release", listing_id)

        logger.debug("released listing=%s qty=%s", listing_id, qty)

    # ---------------- sold ----------------

    async def mark_sold_if_depleted(self, session: AsyncSession, listing_id: int) -> bool:
        """AVAILABLE -> SOLD once quantity reaches 0. Returns True when it flipped."""
        res = await session.execute(
            update(FoodListing)
            .where(
                FoodListing.id == listing_id,
                FoodListing.status == ListingStatus.AVAILABLE.value,
                FoodListing.quantity <= 0,
            )
            .values(status=ListingStatus.SOLD.value)
            .execution_options(synchronize_session=False)
        )
        flipped = bool(res.rowcount)
        if flipped:
            logger.info("listing=%s sold out", listing_id)
        return flipped
