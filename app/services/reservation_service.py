# app/services/reservation_service.py
"""
Reservation state machine.

    create   -> PENDING (one reservation per business, inventory taken)
    pay      -> CONFIRMED (payment recorded, confirmation code issued)
    verify   -> items COMPLETED; reservation COMPLETED once every item is
    cancel   -> items CANCELLED (inventory released); reservation CANCELLED
                once every item is

Every operation runs in a single transaction (``run_in_tx``). Notifications
are sent after the transaction commits and never fail the operation.

A reservation whose items end up split between COMPLETED and CANCELLED stays
CONFIRMED: COMPLETED means every item was picked up, CANCELLED means every
item was cancelled.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import AppSettings, get_settings
from app.core.tx import run_in_tx
from app.domain.actors import Actor
from app.domain.ports import NotificationDispatcher, PaymentAuthority
from app.models.business import Business
from app.models.enums import (
    ListingStatus,
    NotificationKind,
    PaymentStatus,
    ReservationItemStatus,
    ReservationStatus,
    TERMINAL_RESERVATION_STATUSES,
)
from app.models.food_listing import FoodListing
from app.models.payment_transaction import PaymentTransaction
from app.models.reservation import Reservation
from app.models.reservation_item import ReservationItem
from app.models.types import utc_now
from app.obs.metrics import (
    payments_total,
    reservation_transitions_total,
    reservations_created_total,
)
from app.services.confirmation_code import ConfirmationCodeIssuer, IssuedCode
from app.services.errors import (
    AlreadyPaid,
    AmountMismatch,
    BusinessNotFound,
    CancellationWindowClosed,
    InvalidConfirmationCode,
    InvalidReservationRequest,
    InvalidStateTransition,
    ListingNotFound,
    ListingUnavailable,
    MultiBusinessNotAllowed,
    NotAuthorized,
    NothingToCancel,
    NothingToVerify,
    OutOfStock,
    PaymentDeclined,
    PaymentRequired,
    PickupTimeOutOfWindow,
    ReservationNotFound,
    VerificationExpired,
)
from app.services.inventory_ledger import InventoryLedger
from app.services.payments import LocalPaymentAuthority
from app.services.reservation_number import ReservationNumberGenerator

logger = logging.getLogger("foodsaver.reservations")

CENT = Decimal("0.01")
DEFAULT_CANCEL_REASON = "Cancelled"


@dataclass(frozen=True)
class LineRequest:
    listing_id: int
    quantity: int


@dataclass
class PayResult:
    reservation: Reservation
    payment: PaymentTransaction
    confirmation_code: str
    qr_payload: Dict[str, Any]
    qr_code: str


@dataclass
class VerifyResult:
    reservation: Reservation
    verified_items: List[ReservationItem]
    reservation_completed: bool


@dataclass
class CancelResult:
    reservation: Reservation
    cancelled_items: List[ReservationItem]
    refund_due: Decimal
    reservation_cancelled: bool
    notes: List[str] = field(default_factory=list)


# ---------------- pure helpers ----------------


def to_money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT)


def merge_lines(lines: Iterable[Any]) -> List[LineRequest]:
    """
    Normalise the request: accept LineRequest / (id, qty) / mappings, reject
    empty requests and quantities below 1, merge duplicate listings.
    """
    merged: "OrderedDict[int, int]" = OrderedDict()
    for raw in lines:
        if isinstance(raw, LineRequest):
            listing_id, qty = raw.listing_id, raw.quantity
        elif isinstance(raw, Mapping):
            listing_id, qty = raw.get("listing_id"), raw.get("quantity")
        else:
            listing_id, qty = raw
        if listing_id is None or qty is None or int(qty) < 1:
            raise InvalidReservationRequest(
                "Each item needs a listing_id and a quantity of at least 1",
                listing_id=listing_id,
                quantity=qty,
            )
        merged[int(listing_id)] = merged.get(int(listing_id), 0) + int(qty)

    if not merged:
        raise InvalidReservationRequest("At least one item is required")
    return [LineRequest(listing_id=k, quantity=v) for k, v in merged.items()]


def group_lines_by_business(
    lines: Sequence[LineRequest],
    listings: Mapping[int, FoodListing],
) -> "OrderedDict[int, List[LineRequest]]":
    """Partition request lines by the owning business of each listing (request order kept)."""
    groups: "OrderedDict[int, List[LineRequest]]" = OrderedDict()
    for line in lines:
        business_id = listings[line.listing_id].business_id
        groups.setdefault(business_id, []).append(line)
    return groups


def payable_total(reservation: Reservation) -> Decimal:
    """Sum of snapshot price x quantity over items that are not cancelled."""
    total = sum(
        (i.line_total for i in reservation.items if i.status != ReservationItemStatus.CANCELLED),
        Decimal("0"),
    )
    return to_money(total)


def owned_items(reservation: Reservation, actor: Actor) -> List[ReservationItem]:
    return [
        i
        for i in reservation.items
        if actor.owns_listing(i.listing.business_id, i.listing.branch_id)
    ]


def can_view(reservation: Reservation, actor: Actor) -> bool:
    if actor.is_customer:
        return reservation.customer_id == actor.id
    return bool(owned_items(reservation, actor))


def _item_summary(item: ReservationItem) -> Dict[str, Any]:
    return {
        "item_id": item.id,
        "listing_id": item.listing_id,
        "title": item.listing.title if item.listing is not None else None,
        "quantity": item.quantity,
        "price": str(to_money(item.price)),
        "status": item.status,
    }


async def load_reservation(
    session: AsyncSession, reservation_id: int, *, for_update: bool = False
) -> Reservation:
    stmt = (
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    reservation = (await session.execute(stmt)).scalars().first()
    if reservation is None:
        raise ReservationNotFound(reservation_id=reservation_id)
    return reservation


class ReservationService:
    def __init__(
        self,
        *,
        payment_authority: Optional[PaymentAuthority] = None,
        notifier: Optional[NotificationDispatcher] = None,
        ledger: Optional[InventoryLedger] = None,
        numbers: Optional[ReservationNumberGenerator] = None,
        codes: Optional[ConfirmationCodeIssuer] = None,
        settings: Optional[AppSettings] = None,
        utc_now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or get_settings()
        self._now = utc_now
        self._payments = payment_authority or LocalPaymentAuthority()
        self._notifier = notifier
        self.ledger = ledger or InventoryLedger(
            retry_attempts=self.settings.INVENTORY_RETRY_ATTEMPTS,
            revive_sold=self.settings.RELEASE_REVIVES_SOLD_LISTINGS,
        )
        self.numbers = numbers or ReservationNumberGenerator(
            max_retries=self.settings.RESERVATION_NUMBER_MAX_RETRIES
        )
        self.codes = codes or ConfirmationCodeIssuer(utc_now=utc_now)

    # ---------------- create ----------------

    async def create(
        self,
        session: AsyncSession,
        *,
        customer_id: int,
        items: Iterable[Any],
        pickup_time: datetime,
        allow_multiple_businesses: Optional[bool] = None,
    ) -> List[Reservation]:
        """
        Reserve inventory and create one PENDING reservation per business.

        Validation order: listing exists and is AVAILABLE, enough stock,
        pickup_time inside every listing's window, then the multi-business
        rule. Nothing is written unless every check passes, and all
        decrements commit or roll back together.

        Always returns a list, one reservation per business; a single-business
        request yields a one-element list.
        """
        lines = merge_lines(items)
        if pickup_time.tzinfo is None:
            pickup_time = pickup_time.replace(tzinfo=timezone.utc)
        if allow_multiple_businesses is None:
            allow_multiple_businesses = self.settings.ALLOW_MULTIPLE_BUSINESSES
        now = self._now()

        async def _inner() -> List[Reservation]:
            listing_ids = [line.listing_id for line in lines]
            rows = (
                await session.execute(
                    select(FoodListing)
                    .where(FoodListing.id.in_(listing_ids))
                    .execution_options(populate_existing=True)
                )
            ).scalars().all()
            listings: Dict[int, FoodListing] = {row.id: row for row in rows}

            for line in lines:
                listing = listings.get(line.listing_id)
                if listing is None:
                    raise ListingNotFound(listing_id=line.listing_id)
                if listing.status != ListingStatus.AVAILABLE:
                    raise ListingUnavailable(listing_id=listing.id, status=listing.status)

            for line in lines:
                listing = listings[line.listing_id]
                if listing.quantity < line.quantity:
                    raise OutOfStock(
                        f"Only {listing.quantity} units available for {listing.title}",
                        listing_id=listing.id,
                        requested=line.quantity,
                        available=listing.quantity,
                    )

            for line in lines:
                listing = listings[line.listing_id]
                if not (listing.pickup_start <= pickup_time <= listing.pickup_end):
                    raise PickupTimeOutOfWindow(
                        listing_id=listing.id,
                        pickup_start=listing.pickup_start.isoformat(),
                        pickup_end=listing.pickup_end.isoformat(),
                    )

            groups = group_lines_by_business(lines, listings)
            if len(groups) > 1 and not allow_multiple_businesses:
                raise MultiBusinessNotAllowed(business_ids=list(groups.keys()))

            businesses: Dict[int, Business] = {}
            for business_id in groups:
                business = listings[groups[business_id][0].listing_id].business
                if business is None:
                    raise BusinessNotFound(business_id=business_id)
                businesses[business_id] = business

            await self.ledger.reserve_many(
                session, [(line.listing_id, line.quantity) for line in lines]
            )
            for listing in listings.values():
                await session.refresh(listing, attribute_names=["quantity", "status"])

            created: List[Reservation] = []
            for business_id, group in groups.items():

                def _build(number: str, business_id: int = business_id, group=group) -> Reservation:
                    reservation_items = []
                    for line in group:
                        listing = listings[line.listing_id]
                        item = ReservationItem(
                            listing_id=listing.id,
                            quantity=line.quantity,
                            price=to_money(listing.price),
                            status=ReservationItemStatus.PENDING.value,
                        )
                        item.listing = listing
                        reservation_items.append(item)
                    return Reservation(
                        reservation_number=number,
                        customer_id=customer_id,
                        business_id=business_id,
                        pickup_time=pickup_time,
                        total_amount=to_money(sum(i.line_total for i in reservation_items)),
                        status=ReservationStatus.PENDING.value,
                        items=reservation_items,
                        payments=[],
                    )

                reservation = await self.numbers.insert_reservation(
                    session,
                    _build,
                    company_code=businesses[business_id].company_code,
                    day=now.date(),
                )
                created.append(reservation)

            return created

        reservations = await run_in_tx(session, _inner)

        for reservation in reservations:
            reservations_created_total.inc()
            logger.info(
                "reservation created number=%s customer=%s business=%s total=%s",
                reservation.reservation_number,
                customer_id,
                reservation.business_id,
                reservation.total_amount,
            )
            await self._notify(
                customer_id,
                NotificationKind.RESERVATION_CREATED,
                {
                    "reservation_id": reservation.id,
                    "reservation_number": reservation.reservation_number,
                    "total_amount": str(reservation.total_amount),
                    "pickup_time": reservation.pickup_time.isoformat(),
                    "items": [_item_summary(i) for i in reservation.items],
                },
            )
        return reservations

    # ---------------- pay ----------------

    async def pay(
        self,
        session: AsyncSession,
        reservation_id: int,
        *,
        actor: Actor,
        amount: Any,
        currency: Optional[str] = None,
        method: str = "card",
    ) -> PayResult:
        amount = to_money(amount)
        currency = currency or self.settings.DEFAULT_CURRENCY

        async def _inner():
            reservation = await load_reservation(session, reservation_id, for_update=True)
            if not actor.is_customer or reservation.customer_id != actor.id:
                raise NotAuthorized(reservation_id=reservation_id)
            if reservation.is_paid:
                raise AlreadyPaid(reservation_id=reservation_id)
            if reservation.status != ReservationStatus.PENDING:
                raise InvalidStateTransition(
                    reservation_id=reservation_id, status=reservation.status, action="pay"
                )

            expected = payable_total(reservation)
            if amount != expected:
                raise AmountMismatch(
                    f"Amount {amount} does not match reservation total {expected}",
                    expected=str(expected),
                    received=str(amount),
                )

            charge = await self._payments.charge(amount, currency, method)
            payment = PaymentTransaction(
                reservation_id=reservation.id,
                amount=amount,
                currency=currency,
                payment_method=method,
                transaction_id=charge.transaction_id,
                status=PaymentStatus(charge.status).value,
            )
            reservation.payments.append(payment)
            payments_total.labels(payment.status).inc()

            if payment.status != PaymentStatus.COMPLETED:
                await session.flush()
                return reservation, payment, None

            reservation.status = ReservationStatus.CONFIRMED.value
            await session.flush()
            issued = self.codes.issue(reservation, now=self._now())
            await session.flush()
            return reservation, payment, issued

        reservation, payment, issued = await run_in_tx(session, _inner)

        if issued is None:
            logger.warning(
                "payment declined reservation=%s txn=%s", reservation_id, payment.transaction_id
            )
            raise PaymentDeclined(
                reservation_id=reservation_id, transaction_id=payment.transaction_id
            )

        reservation_transitions_total.labels(ReservationStatus.CONFIRMED.value).inc()
        logger.info(
            "reservation paid number=%s amount=%s %s txn=%s",
            reservation.reservation_number,
            amount,
            currency,
            payment.transaction_id,
        )
        await self._notify(
            reservation.customer_id,
            NotificationKind.PAYMENT_CONFIRMED,
            {
                "reservation_id": reservation.id,
                "reservation_number": reservation.reservation_number,
                "transaction_id": payment.transaction_id,
                "amount": str(amount),
                "currency": currency,
                "confirmation_code": issued.confirmation_code,
                "qr_payload": issued.qr_payload,
            },
        )
        return PayResult(
            reservation=reservation,
            payment=payment,
            confirmation_code=issued.confirmation_code,
            qr_payload=issued.qr_payload,
            qr_code=issued.qr_code,
        )

    # ---------------- verify ----------------

    async def verify_pickup(
        self,
        session: AsyncSession,
        reservation_id: int,
        *,
        actor: Actor,
        confirmation_code: str,
    ) -> VerifyResult:
        """
        Staff-side pickup confirmation for the items the actor owns.

        Checks run in order: code, ownership, payment, status, time window
        (no lower bound: early pickup is allowed).
        """
        window = timedelta(hours=self.settings.VERIFICATION_WINDOW_HOURS)

        async def _inner():
            now = self._now()
            reservation = await load_reservation(session, reservation_id, for_update=True)

            if not self.codes.matches(reservation, confirmation_code):
                raise InvalidConfirmationCode(reservation_id=reservation_id)

            mine = owned_items(reservation, actor)
            if not mine:
                raise NotAuthorized(reservation_id=reservation_id)
            if not reservation.is_paid:
                raise PaymentRequired(reservation_id=reservation_id)
            if reservation.status in TERMINAL_RESERVATION_STATUSES:
                raise InvalidStateTransition(
                    reservation_id=reservation_id, status=reservation.status, action="verify"
                )

            deadline = reservation.pickup_time + window
            if now > deadline:
                raise VerificationExpired(
                    reservation_id=reservation_id,
                    pickup_time=reservation.pickup_time.isoformat(),
                    expired_at=deadline.isoformat(),
                )

            pending = [i for i in mine if i.status == ReservationItemStatus.PENDING]
            if not pending:
                raise NothingToVerify(reservation_id=reservation_id)

            for item in pending:
                item.status = ReservationItemStatus.COMPLETED.value
            await session.flush()

            for listing_id in sorted({i.listing_id for i in pending}):
                await self.ledger.mark_sold_if_depleted(session, listing_id)

            completed = False
            if reservation.all_items_in(ReservationItemStatus.COMPLETED):
                reservation.status = ReservationStatus.COMPLETED.value
                if reservation.pickup_confirmed_at is None:
                    reservation.pickup_confirmed_at = now
                completed = True
            await session.flush()
            return reservation, pending, completed

        reservation, verified, completed = await run_in_tx(session, _inner)

        if completed:
            reservation_transitions_total.labels(ReservationStatus.COMPLETED.value).inc()
        logger.info(
            "pickup verified number=%s actor=%s items=%s completed=%s",
            reservation.reservation_number,
            actor.id,
            [i.id for i in verified],
            completed,
        )
        await self._notify(
            reservation.customer_id,
            NotificationKind.PICKUP_CONFIRMED,
            {
                "reservation_id": reservation.id,
                "reservation_number": reservation.reservation_number,
                "items": [_item_summary(i) for i in verified],
                "reservation_completed": completed,
            },
        )
        return VerifyResult(
            reservation=reservation, verified_items=verified, reservation_completed=completed
        )

    # ---------------- cancel ----------------

    async def cancel(
        self,
        session: AsyncSession,
        reservation_id: int,
        *,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> CancelResult:
        """
        Customer: whole reservation, only while PENDING and unpaid.
        Staff: their own PENDING items, any time before pickup; when the
        reservation was paid the cancelled lines are reported as refund due.
        """

        async def _inner():
            reservation = await load_reservation(session, reservation_id, for_update=True)

            if actor.is_customer:
                if reservation.customer_id != actor.id:
                    raise NotAuthorized(reservation_id=reservation_id)
                if reservation.status == ReservationStatus.CANCELLED:
                    raise InvalidStateTransition(
                        reservation_id=reservation_id, status=reservation.status, action="cancel"
                    )
                if reservation.is_paid or reservation.status != ReservationStatus.PENDING:
                    raise CancellationWindowClosed(
                        reservation_id=reservation_id, status=reservation.status
                    )
                targets = [i for i in reservation.items if i.status == ReservationItemStatus.PENDING]
            elif actor.is_staff:
                mine = owned_items(reservation, actor)
                if not mine:
                    raise NotAuthorized(reservation_id=reservation_id)
                targets = [i for i in mine if i.status == ReservationItemStatus.PENDING]
            else:
                raise NotAuthorized(reservation_id=reservation_id)

            if not targets:
                raise NothingToCancel(reservation_id=reservation_id)

            for item in sorted(targets, key=lambda i: i.listing_id):
                item.status = ReservationItemStatus.CANCELLED.value
                await self.ledger.release(session, item.listing_id, item.quantity)
            await session.flush()

            refund_due = Decimal("0.00")
            if reservation.is_paid:
                refund_due = to_money(sum((i.line_total for i in targets), Decimal("0")))

            cancelled = False
            if reservation.all_items_in(ReservationItemStatus.CANCELLED):
                reservation.status = ReservationStatus.CANCELLED.value
                reservation.cancellation_reason = reason or DEFAULT_CANCEL_REASON
                cancelled = True
            elif reason:
                reservation.cancellation_reason = reason
            if not cancelled and not reservation.is_paid:
                # the amount a later pay() must match
                reservation.total_amount = payable_total(reservation)
            await session.flush()
            return reservation, targets, refund_due, cancelled

        reservation, targets, refund_due, cancelled = await run_in_tx(session, _inner)

        if cancelled:
            reservation_transitions_total.labels(ReservationStatus.CANCELLED.value).inc()
        logger.info(
            "items cancelled number=%s actor=%s role=%s items=%s refund_due=%s",
            reservation.reservation_number,
            actor.id,
            actor.role,
            [i.id for i in targets],
            refund_due,
        )

        notes: List[str] = []
        if refund_due > 0:
            notes.append(f"Refund of {refund_due} due to the customer")
        await self._notify(
            reservation.customer_id,
            NotificationKind.STATUS_CHANGED,
            {
                "reservation_id": reservation.id,
                "reservation_number": reservation.reservation_number,
                "status": reservation.status,
                "cancelled_by": str(actor.role),
                "reason": reason,
                "cancelled_items": [_item_summary(i) for i in targets],
                "refund_due": str(refund_due),
                "currency": self.settings.DEFAULT_CURRENCY,
            },
        )
        return CancelResult(
            reservation=reservation,
            cancelled_items=targets,
            refund_due=refund_due,
            reservation_cancelled=cancelled,
            notes=notes,
        )

    # ---------------- confirmation code ----------------

    async def refresh_code(
        self, session: AsyncSession, reservation_id: int, *, actor: Actor
    ) -> IssuedCode:
        """Replace the confirmation code; the previous one stops matching."""

        async def _inner() -> IssuedCode:
            reservation = await load_reservation(session, reservation_id, for_update=True)
            if not can_view(reservation, actor):
                raise NotAuthorized(reservation_id=reservation_id)
            if not reservation.is_paid:
                raise PaymentRequired(reservation_id=reservation_id)
            if reservation.status in TERMINAL_RESERVATION_STATUSES:
                raise InvalidStateTransition(
                    reservation_id=reservation_id, status=reservation.status, action="refresh_code"
                )
            issued = self.codes.issue(reservation, now=self._now())
            await session.flush()
            return issued

        issued = await run_in_tx(session, _inner)
        logger.info("confirmation code refreshed reservation=%s actor=%s", reservation_id, actor.id)
        return issued

    # ---------------- internals ----------------

    async def _notify(self, user_id: int, kind: NotificationKind, payload: Dict[str, Any]) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.notify(user_id, kind, payload)
        except Exception:
            logger.exception("notification failed user=%s kind=%s", user_id, kind)
