# app/core/scheduler.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.core.config import AppSettings, get_settings
from app.db.session import async_session_maker
from app.services.pickup_sweeper import sweep_pickup_status

logger = logging.getLogger("foodsaver.scheduler")

_scheduler: AsyncIOScheduler | None = None


async def _job_sweep_pickup_status():
    settings = get_settings()
    async with async_session_maker() as session:
        await sweep_pickup_status(session, batch_size=settings.PICKUP_SWEEPER_BATCH_SIZE)


def init_scheduler(settings: Optional[AppSettings] = None) -> Optional[AsyncIOScheduler]:
    global _scheduler
    settings = settings or get_settings()
    if not settings.ENABLE_PICKUP_SWEEPER:
        return None
    _scheduler = AsyncIOScheduler(timezone="UTC")
    _scheduler.add_job(
        _job_sweep_pickup_status,
        "interval",
        seconds=settings.PICKUP_SWEEPER_INTERVAL_SECONDS,
        id="pickup-status-sweep",
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(timezone.utc),
    )
    _scheduler.start()
    logger.info(
        "pickup sweeper scheduled every %ss", settings.PICKUP_SWEEPER_INTERVAL_SECONDS
    )
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
