# app/jobs/pickup_status_sweep.py
"""
Pickup-status sweep (one-shot entry point).

Usage:
    python -m app.jobs.pickup_status_sweep

Reclassifies every AVAILABLE listing's pickup_status and retires expired
listings; the same routine runs periodically from app.core.scheduler when
ENABLE_PICKUP_SWEEPER is on.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.core.config import get_settings
from app.core.logging import setup_logging
from app.db.engine import create_async_engine_safe
from app.services.pickup_sweeper import SweepStats, sweep_pickup_status

logger = logging.getLogger("foodsaver.jobs.pickup_status_sweep")


async def main() -> SweepStats:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)

    engine = create_async_engine_safe(settings.DATABASE_URL, poolclass=NullPool)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with maker() as session:
            stats = await sweep_pickup_status(
                session,
                now=datetime.now(timezone.utc),
                batch_size=settings.PICKUP_SWEEPER_BATCH_SIZE,
            )
        logger.info("[PickupSweep] %s (batch_size=%s)", stats.as_dict(), settings.PICKUP_SWEEPER_BATCH_SIZE)
        return stats
    finally:
        await engine.dispose()


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
