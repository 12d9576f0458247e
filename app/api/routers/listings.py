# app/api/routers/listings.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_reservation_queries, get_session
from app.models.enums import ListingStatus
from app.schemas.listing import ListingListOut, ListingOut
from app.services.reservation_queries import ReservationQueries

router = APIRouter(prefix="/listings", tags=["listings"])


@router.get("", response_model=ListingListOut)
async def list_listings(
    business_id: Optional[int] = Query(None),
    branch_id: Optional[int] = Query(None),
    status: Optional[ListingStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    queries: ReservationQueries = Depends(get_reservation_queries),
):
    """pickup_status / remaining time are computed at read time, not taken from the column."""
    return await queries.list_listings(
        session,
        business_id=business_id,
        branch_id=branch_id,
        status=status.value if status else None,
        page=page,
        limit=limit,
    )


@router.get("/{listing_id}", response_model=ListingOut)
async def get_listing(
    listing_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    queries: ReservationQueries = Depends(get_reservation_queries),
):
    return await queries.get_listing(session, listing_id)
