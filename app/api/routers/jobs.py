# app/api/routers/jobs.py
from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_services, get_session
from app.core.container import Services
from app.services.pickup_sweeper import sweep_pickup_status

router = APIRouter(prefix="/jobs", tags=["ops"])


@router.post("/pickup-sweep")
async def run_pickup_sweep(
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
) -> Dict[str, int]:
    """Run the pickup-status sweep once, synchronously (ops / debugging)."""
    stats = await sweep_pickup_status(
        session,
        now=services.utc_now(),
        batch_size=services.settings.PICKUP_SWEEPER_BATCH_SIZE,
    )
    return stats.as_dict()
