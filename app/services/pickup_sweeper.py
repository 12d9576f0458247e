# app/services/pickup_sweeper.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.pickup_status import classify
from app.models.enums import ListingStatus, PickupStatus
from app.models.food_listing import FoodListing
from app.models.types import utc_now
from app.obs.metrics import pickup_sweeper_listings_updated_total, pickup_sweeper_runs_total

logger = logging.getLogger("foodsaver.pickup_sweeper")


@dataclass
class SweepStats:
    scanned: int = 0
    updated: int = 0
    expired: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


async def _apply(
    session: AsyncSession,
    listing_id: int,
    current: str,
    new_status: PickupStatus,
) -> bool:
    values: Dict[str, str] = {"pickup_status": new_status.value}
    if new_status is PickupStatus.EXPIRED:
        values["status"] = ListingStatus.UNAVAILABLE.value

    res = await session.execute(
        update(FoodListing)
        .where(
            FoodListing.id == listing_id,
            FoodListing.status == ListingStatus.AVAILABLE.value,
            FoodListing.pickup_status == current,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return bool(res.rowcount)


async def sweep_pickup_status(
    session: AsyncSession,
    *,
    now: Optional[datetime] = None,
    batch_size: int = 100,
) -> SweepStats:
    """
    Refresh the cached pickup_status of AVAILABLE listings.

    Semantics:
      - candidates: status='AVAILABLE' AND pickup_status != 'expired',
        walked in id order (keyset, ``id > last_id``), ``batch_size`` per
        transaction;
      - each listing is reclassified from (pickup_end, now); only changed
        rows are written, guarded by the status/pickup_status read, so a
        listing touched concurrently is left alone;
      - listings that reach 'expired' also become UNAVAILABLE;
      - a failing listing is rolled back to its savepoint, logged and
        counted, the run continues.

    The session is committed after every batch. Running it again with the
    same ``now`` changes nothing.
    """
    if now is None:
        now = utc_now()
    batch_size = max(1, int(batch_size))

    stats = SweepStats()
    last_id = 0

    while True:
        rows = (
            await session.execute(
                select(FoodListing.id, FoodListing.pickup_end, FoodListing.pickup_status)
                .where(
                    FoodListing.status == ListingStatus.AVAILABLE.value,
                    FoodListing.pickup_status != PickupStatus.EXPIRED.value,
                    FoodListing.id > last_id,
                )
                .order_by(FoodListing.id)
                .limit(batch_size)
            )
        ).all()
        if not rows:
            await session.commit()
            break

        for listing_id, pickup_end, current in rows:
            stats.scanned += 1
            try:
                new_status = classify(pickup_end, now)
                if new_status.value == current:
                    continue
                async with session.begin_nested():
                    changed = await _apply(session, listing_id, current, new_status)
            except Exception:
                stats.failed += 1
                logger.exception("pickup sweep failed for listing=%s", listing_id)
                continue

            if changed:
                stats.updated += 1
                pickup_sweeper_listings_updated_total.labels(new_status.value).inc()
                if new_status is PickupStatus.EXPIRED:
                    stats.expired += 1

        await session.commit()
        last_id = rows[-1][0]
        if len(rows) < batch_size:
            break

    pickup_sweeper_runs_total.inc()
    logger.info(
        "pickup sweep done scanned=%s updated=%s expired=%s failed=%s",
        stats.scanned,
        stats.updated,
        stats.expired,
        stats.failed,
    )
    return stats
