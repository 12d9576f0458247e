# app/api/routers/reservations.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_actor, get_reservation_queries, get_reservation_service, get_session
from app.domain.actors import Actor
from app.models.enums import ReservationStatus
from app.schemas.reservation import (
    CancelIn,
    CancelOut,
    PaymentIn,
    PaymentResultOut,
    QrOut,
    QrRefreshOut,
    ReservationCreateIn,
    ReservationCreateOut,
    ReservationListOut,
    ReservationOut,
    ReservationStatusOut,
    VerifyIn,
    VerifyOut,
)
from app.services.errors import NotAuthorized
from app.services.reservation_queries import ReservationQueries
from app.services.reservation_service import LineRequest, ReservationService

router = APIRouter(prefix="/reservations", tags=["reservations"])


# ---------------------------------------------------------
# lists (declared before /{reservation_id})
# ---------------------------------------------------------


@router.get("/customer/me", response_model=ReservationListOut)
async def list_my_reservations(
    status: Optional[ReservationStatus] = Query(None),
    from_date: Optional[date] = Query(None, description="pickup date lower bound (UTC)"),
    to_date: Optional[date] = Query(None, description="pickup date upper bound (UTC, inclusive)"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    queries: ReservationQueries = Depends(get_reservation_queries),
):
    return await queries.list_customer_reservations(
        session,
        actor=actor,
        status=status.value if status else None,
        from_date=from_date,
        to_date=to_date,
        page=page,
        limit=limit,
    )


@router.get("/business/me", response_model=ReservationListOut)
async def list_business_reservations(
    status: Optional[ReservationStatus] = Query(None),
    branch_id: Optional[int] = Query(None, description="BUSINESS actors may narrow to one branch"),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    queries: ReservationQueries = Depends(get_reservation_queries),
):
    return await queries.list_business_reservations(
        session,
        actor=actor,
        status=status.value if status else None,
        branch_id=branch_id,
        from_date=from_date,
        to_date=to_date,
        page=page,
        limit=limit,
    )


# ---------------------------------------------------------
# state machine
# ---------------------------------------------------------


@router.post("", response_model=ReservationCreateOut, status_code=201)
async def create_reservation(
    payload: ReservationCreateIn,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    svc: ReservationService = Depends(get_reservation_service),
    queries: ReservationQueries = Depends(get_reservation_queries),
):
    """
    Reserve listings for pickup. Items spanning several businesses produce
    one reservation per business (unless the request forbids it).
    """
    if not actor.is_customer:
        raise NotAuthorized("Only customers can create reservations")

    reservations = await svc.create(
        session,
        customer_id=actor.id,
        items=[LineRequest(listing_id=i.listing_id, quantity=i.quantity) for i in payload.items],
        pickup_time=payload.pickup_time,
        allow_multiple_businesses=payload.allow_multiple_businesses,
    )
    views = [queries.reservation_view(r, actor) for r in reservations]
    return {"reservations": views, "count": len(views)}


@router.post("/{reservation_id}/pay", response_model=PaymentResultOut)
async def pay_reservation(
    payload: PaymentIn,
    reservation_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    svc: ReservationService = Depends(get_reservation_service),
):
    result = await svc.pay(
        session,
        reservation_id,
        actor=actor,
        amount=payload.amount,
        currency=payload.currency,
        method=payload.payment_method,
    )
    return {
        "reservation_id": result.reservation.id,
        "reservation_number": result.reservation.reservation_number,
        "status": result.reservation.status,
        "transaction_id": result.payment.transaction_id,
        "payment_status": result.payment.status,
        "amount": result.payment.amount,
        "currency": result.payment.currency,
        "confirmation_code": result.confirmation_code,
        "qr_payload": result.qr_payload,
        "qr_code": result.qr_code,
    }


@router.post("/{reservation_id}/verify", response_model=VerifyOut)
async def verify_pickup(
    payload: VerifyIn,
    reservation_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    svc: ReservationService = Depends(get_reservation_service),
):
    result = await svc.verify_pickup(
        session, reservation_id, actor=actor, confirmation_code=payload.confirmation_code
    )
    return {
        "reservation_id": result.reservation.id,
        "reservation_number": result.reservation.reservation_number,
        "status": result.reservation.status,
        "verified_item_ids": [i.id for i in result.verified_items],
        "reservation_completed": result.reservation_completed,
        "pickup_confirmed_at": result.reservation.pickup_confirmed_at,
    }


@router.post("/{reservation_id}/cancel", response_model=CancelOut)
async def cancel_reservation(
    payload: Optional[CancelIn] = None,
    reservation_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    svc: ReservationService = Depends(get_reservation_service),
):
    result = await svc.cancel(
        session, reservation_id, actor=actor, reason=payload.reason if payload else None
    )
    return {
        "reservation_id": result.reservation.id,
        "reservation_number": result.reservation.reservation_number,
        "status": result.reservation.status,
        "cancelled_item_ids": [i.id for i in result.cancelled_items],
        "reservation_cancelled": result.reservation_cancelled,
        "refund_due": result.refund_due,
        "notes": result.notes,
    }


@router.post("/{reservation_id}/qr/refresh", response_model=QrRefreshOut)
async def refresh_qr(
    reservation_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    svc: ReservationService = Depends(get_reservation_service),
):
    issued = await svc.refresh_code(session, reservation_id, actor=actor)
    return {
        "confirmation_code": issued.confirmation_code,
        "issued_at": issued.issued_at,
        "qr_payload": issued.qr_payload,
        "qr_code": issued.qr_code,
    }


# ---------------------------------------------------------
# reads
# ---------------------------------------------------------


@router.get("/{reservation_id}", response_model=ReservationOut)
async def get_reservation(
    reservation_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    queries: ReservationQueries = Depends(get_reservation_queries),
):
    return await queries.get_reservation(session, reservation_id, actor=actor)


@router.get("/{reservation_id}/status", response_model=ReservationStatusOut)
async def get_reservation_status(
    reservation_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    queries: ReservationQueries = Depends(get_reservation_queries),
):
    return await queries.get_status(session, reservation_id, actor=actor)


@router.get("/{reservation_id}/qr", response_model=QrOut)
async def get_reservation_qr(
    reservation_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
    queries: ReservationQueries = Depends(get_reservation_queries),
):
    return await queries.get_qr(session, reservation_id, actor=actor)
