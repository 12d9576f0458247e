# app/services/reservation_queries.py
"""
Read side of reservations and listings.

Views are plain dicts (validated by the API schemas). Access rule is the
same as the state machine: a customer sees their own reservations, staff
see reservations holding at least one item they own, and only those items.
"""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import AppSettings, get_settings
from app.core.tx import run_in_tx
from app.domain.actors import Actor
from app.domain.pickup_status import classify, format_remaining, remaining_hours
from app.models.enums import (
    ActorRole,
    ReservationItemStatus,
    ReservationStatus,
    TERMINAL_RESERVATION_STATUSES,
)
from app.models.food_listing import FoodListing
from app.models.reservation import Reservation
from app.models.reservation_item import ReservationItem
from app.models.types import utc_now
from app.services.confirmation_code import (
    ConfirmationCodeIssuer,
    build_qr_payload,
    render_qr_image,
)
from app.services.errors import ListingNotFound, NotAuthorized, PaymentRequired
from app.services.reservation_service import can_view, load_reservation, owned_items, to_money

MAX_PAGE_SIZE = 100


def format_pickup_location(listing: FoodListing) -> Optional[str]:
    branch = listing.branch
    if branch is not None:
        return f"{branch.name} ({branch.branch_code}) - {branch.address or ''}".rstrip(" -")
    business = listing.business
    return business.address if business is not None else None


def listing_view(listing: FoodListing, now: datetime) -> Dict[str, Any]:
    """Listing with pickup status computed on the fly (the stored column may lag the sweeper)."""
    hours = remaining_hours(listing.pickup_end, now)
    business = listing.business
    branch = listing.branch
    return {
        "id": listing.id,
        "business_id": listing.business_id,
        "branch_id": listing.branch_id,
        "business_name": business.company_name if business else None,
        "branch_name": branch.name if branch else None,
        "title": listing.title,
        "description": listing.description,
        "price": to_money(listing.price),
        "original_price": to_money(listing.original_price),
        "quantity": listing.quantity,
        "status": listing.status,
        "pickup_start": listing.pickup_start,
        "pickup_end": listing.pickup_end,
        "pickup_status": classify(listing.pickup_end, now).value,
        "remaining_hours": hours,
        "remaining_text": format_remaining(hours),
        "pickup_location": format_pickup_location(listing),
    }


def _item_view(item: ReservationItem) -> Dict[str, Any]:
    listing = item.listing
    return {
        "id": item.id,
        "listing_id": item.listing_id,
        "title": listing.title,
        "business_id": listing.business_id,
        "branch_id": listing.branch_id,
        "quantity": item.quantity,
        "price": to_money(item.price),
        "line_total": to_money(item.line_total),
        "status": item.status,
        "pickup_location": format_pickup_location(listing),
    }


def _pagination(total: int, page: int, limit: int) -> Dict[str, int]:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def _clamp_page(page: int, limit: int) -> tuple[int, int]:
    return max(1, int(page)), min(MAX_PAGE_SIZE, max(1, int(limit)))


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


class ReservationQueries:
    def __init__(
        self,
        *,
        codes: Optional[ConfirmationCodeIssuer] = None,
        settings: Optional[AppSettings] = None,
        utc_now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or get_settings()
        self._now = utc_now
        self.codes = codes or ConfirmationCodeIssuer(utc_now=utc_now)

    @property
    def _window(self) -> timedelta:
        return timedelta(hours=self.settings.VERIFICATION_WINDOW_HOURS)

    async def _load_visible(
        self, session: AsyncSession, reservation_id: int, actor: Actor
    ) -> Reservation:
        reservation = await load_reservation(session, reservation_id)
        if not can_view(reservation, actor):
            raise NotAuthorized(reservation_id=reservation_id)
        return reservation

    def _can_cancel(self, reservation: Reservation, actor: Actor) -> bool:
        if actor.is_customer:
            return reservation.status == ReservationStatus.PENDING and not reservation.is_paid
        if reservation.status in TERMINAL_RESERVATION_STATUSES:
            return False
        return any(i.status == ReservationItemStatus.PENDING for i in owned_items(reservation, actor))

    def reservation_view(self, reservation: Reservation, actor: Actor) -> Dict[str, Any]:
        now = self._now()
        items = reservation.items if actor.is_customer else owned_items(reservation, actor)
        is_paid = reservation.is_paid
        return {
            "id": reservation.id,
            "reservation_number": reservation.reservation_number,
            "customer_id": reservation.customer_id,
            "business_id": reservation.business_id,
            "status": reservation.status,
            "pickup_time": reservation.pickup_time,
            "total_amount": to_money(reservation.total_amount),
            # the code is the customer's proof of purchase; staff never read it back
            "confirmation_code": reservation.confirmation_code if actor.is_customer else None,
            "code_issued_at": reservation.code_issued_at,
            "pickup_confirmed_at": reservation.pickup_confirmed_at,
            "cancellation_reason": reservation.cancellation_reason,
            "created_at": reservation.created_at,
            "updated_at": reservation.updated_at,
            "items": [_item_view(i) for i in items],
            "payments": [
                {
                    "transaction_id": p.transaction_id,
                    "amount": to_money(p.amount),
                    "currency": p.currency,
                    "payment_method": p.payment_method,
                    "status": p.status,
                    "created_at": p.created_at,
                }
                for p in reservation.payments
            ],
            "is_paid": is_paid,
            "is_pickup_time": now >= reservation.pickup_time,
            "can_cancel": self._can_cancel(reservation, actor),
            "payment_status": "PAID" if is_paid else "PENDING",
            "time_remaining_seconds": int((reservation.pickup_time - now).total_seconds()),
        }

    # ---------------- single reservation ----------------

    async def get_reservation(
        self, session: AsyncSession, reservation_id: int, *, actor: Actor
    ) -> Dict[str, Any]:
        reservation = await self._load_visible(session, reservation_id, actor)
        return self.reservation_view(reservation, actor)

    async def get_status(
        self, session: AsyncSession, reservation_id: int, *, actor: Actor
    ) -> Dict[str, Any]:
        reservation = await self._load_visible(session, reservation_id, actor)
        items = reservation.items if actor.is_customer else owned_items(reservation, actor)
        return {
            "id": reservation.id,
            "reservation_number": reservation.reservation_number,
            "status": reservation.status,
            "is_paid": reservation.is_paid,
            "has_qr_code": reservation.confirmation_code is not None,
            "pickup_time": reservation.pickup_time,
            "pickup_confirmed_at": reservation.pickup_confirmed_at,
            "total_amount": to_money(reservation.total_amount),
            "items": [
                {"id": i.id, "title": i.listing.title, "quantity": i.quantity, "status": i.status}
                for i in items
            ],
        }

    async def get_qr(
        self, session: AsyncSession, reservation_id: int, *, actor: Actor
    ) -> Dict[str, Any]:
        """Current code + QR payload; a paid reservation without a code gets one issued here."""

        async def _inner() -> Dict[str, Any]:
            reservation = await load_reservation(session, reservation_id, for_update=True)
            if not actor.is_customer or reservation.customer_id != actor.id:
                raise NotAuthorized(reservation_id=reservation_id)
            if not reservation.is_paid:
                raise PaymentRequired(reservation_id=reservation_id)
            if reservation.confirmation_code is None:
                self.codes.issue(reservation, now=self._now())
                await session.flush()

            now = self._now()
            payload = build_qr_payload(reservation)
            return {
                "reservation_id": reservation.id,
                "reservation_number": reservation.reservation_number,
                "confirmation_code": reservation.confirmation_code,
                "code_issued_at": reservation.code_issued_at,
                "reservation_status": reservation.status,
                "pickup_time": reservation.pickup_time,
                "total_amount": to_money(reservation.total_amount),
                "qr_payload": payload,
                "qr_code": render_qr_image(payload),
                "is_expired": now > reservation.pickup_time + self._window,
                "is_valid": reservation.status == ReservationStatus.CONFIRMED,
            }

        return await run_in_tx(session, _inner)

    # ---------------- lists ----------------

    def _date_filters(
        self, from_date: Optional[date], to_date: Optional[date]
    ) -> List[Any]:
        conds: List[Any] = []
        if from_date is not None:
            conds.append(Reservation.pickup_time >= _day_start(from_date))
        if to_date is not None:
            conds.append(Reservation.pickup_time < _day_start(to_date + timedelta(days=1)))
        return conds

    async def list_customer_reservations(
        self,
        session: AsyncSession,
        *,
        actor: Actor,
        status: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        if not actor.is_customer:
            raise NotAuthorized("Only customers have a reservation history")
        page, limit = _clamp_page(page, limit)

        conds = [Reservation.customer_id == actor.id, *self._date_filters(from_date, to_date)]
        if status:
            conds.append(Reservation.status == status)

        total = await session.scalar(select(func.count(Reservation.id)).where(and_(*conds)))
        rows = (
            await session.execute(
                select(Reservation)
                .where(and_(*conds))
                .order_by(Reservation.created_at.desc(), Reservation.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).scalars().all()

        return {
            "reservations": [self.reservation_view(r, actor) for r in rows],
            "pagination": _pagination(int(total or 0), page, limit),
        }

    async def list_business_reservations(
        self,
        session: AsyncSession,
        *,
        actor: Actor,
        status: Optional[str] = None,
        branch_id: Optional[int] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        if not actor.is_staff or actor.business_id is None:
            raise NotAuthorized("Only business staff can list business reservations")
        page, limit = _clamp_page(page, limit)

        if actor.role == ActorRole.BRANCH_MANAGER:
            branch_id = actor.branch_id

        item_conds = [FoodListing.business_id == actor.business_id]
        if branch_id is not None:
            item_conds.append(FoodListing.branch_id == branch_id)
        owned_ids = (
            select(ReservationItem.reservation_id)
            .join(FoodListing, FoodListing.id == ReservationItem.listing_id)
            .where(and_(*item_conds))
        )

        conds = [Reservation.id.in_(owned_ids), *self._date_filters(from_date, to_date)]
        if status:
            conds.append(Reservation.status == status)

        total = await session.scalar(select(func.count(Reservation.id)).where(and_(*conds)))
        rows = (
            await session.execute(
                select(Reservation)
                .where(and_(*conds))
                .order_by(Reservation.pickup_time.asc(), Reservation.id.asc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).scalars().all()

        out = []
        for r in rows:
            view = self.reservation_view(r, actor)
            if branch_id is not None:
                view["items"] = [i for i in view["items"] if i["branch_id"] == branch_id]
            view["business_item_quantity"] = sum(i["quantity"] for i in view["items"])
            out.append(view)

        return {"reservations": out, "pagination": _pagination(int(total or 0), page, limit)}

    # ---------------- listings ----------------

    async def get_listing(self, session: AsyncSession, listing_id: int) -> Dict[str, Any]:
        listing = await session.get(FoodListing, listing_id, populate_existing=True)
        if listing is None:
            raise ListingNotFound(listing_id=listing_id)
        return listing_view(listing, self._now())

    async def list_listings(
        self,
        session: AsyncSession,
        *,
        business_id: Optional[int] = None,
        branch_id: Optional[int] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        page, limit = _clamp_page(page, limit)
        conds: List[Any] = []
        if business_id is not None:
            conds.append(FoodListing.business_id == business_id)
        if branch_id is not None:
            conds.append(FoodListing.branch_id == branch_id)
        if status:
            conds.append(FoodListing.status == status)

        count_stmt = select(func.count(FoodListing.id))
        stmt = select(FoodListing).execution_options(populate_existing=True)
        if conds:
            count_stmt = count_stmt.where(and_(*conds))
            stmt = stmt.where(and_(*conds))

        total = await session.scalar(count_stmt)
        rows = (
            await session.execute(
                stmt.order_by(FoodListing.pickup_end.asc(), FoodListing.id.asc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).scalars().all()

        now = self._now()
        return {
            "listings": [listing_view(row, now) for row in rows],
            "pagination": _pagination(int(total or 0), page, limit),
        }
