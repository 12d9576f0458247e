# app/services/confirmation_code.py
"""
Pickup confirmation codes and the QR payload shown to the customer.

A code is 8 uppercase alphanumeric characters drawn from
sha256(reservation id, issue time, random salt). Codes are only ever
compared against a given reservation's stored code, never looked up
globally, so uniqueness across reservations is not required.

The payload is also rendered as a scannable PNG (segno) for display at the
pickup counter.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import segno

from app.models.reservation import Reservation
from app.models.types import utc_now
from app.services.errors import PaymentRequired

CODE_LENGTH = 8
QR_SCALE = 4


def generate_code(reservation_id: int, *, now: datetime, salt: Optional[str] = None) -> str:
    salt = salt if salt is not None else secrets.token_hex(16)
    digest = hashlib.sha256(f"{reservation_id}:{now.timestamp()}:{salt}".encode()).digest()
    # base32 alphabet is A-Z2-7
    return base64.b32encode(digest).decode("ascii")[:CODE_LENGTH]


def codes_match(expected: Optional[str], given: Optional[str]) -> bool:
    if not expected or not given:
        return False
    return hmac.compare_digest(expected.encode(), given.strip().upper().encode())


@dataclass(frozen=True)
class IssuedCode:
    confirmation_code: str
    issued_at: datetime
    qr_payload: Dict[str, Any]
    qr_code: str


def build_qr_payload(reservation: Reservation) -> Dict[str, Any]:
    """
    Items grouped by (business, branch) so each pickup counter sees only
    what it hands out.
    """
    groups: Dict[tuple, Dict[str, Any]] = {}
    for item in reservation.items:
        listing = item.listing
        business = listing.business
        branch = listing.branch
        key = (listing.business_id, listing.branch_id)
        group = groups.get(key)
        if group is None:
            group = {
                "business_id": listing.business_id,
                "business_name": business.company_name if business else None,
                "branch_id": listing.branch_id,
                "branch_name": branch.name if branch else None,
                "branch_code": branch.branch_code if branch else None,
                "address": (branch.address if branch else None)
                or (business.address if business else None),
                "operating_hours": branch.operating_hours if branch else None,
                "manager_name": branch.manager_name if branch else None,
                "manager_phone": branch.manager_phone if branch else None,
                "items": [],
            }
            groups[key] = group
        group["items"].append(
            {
                "item_id": item.id,
                "listing_id": item.listing_id,
                "title": listing.title,
                "quantity": item.quantity,
                "status": item.status,
            }
        )

    pickup_locations: List[Dict[str, Any]] = list(groups.values())
    return {
        "reservation_id": reservation.id,
        "reservation_number": reservation.reservation_number,
        "confirmation_code": reservation.confirmation_code,
        "pickup_time": reservation.pickup_time.isoformat(),
        "status": reservation.status,
        "pickup_locations": pickup_locations,
    }


def render_qr_image(payload: Dict[str, Any]) -> str:
    """The payload as JSON encoded into a QR symbol, returned as a PNG data URL."""
    content = json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str)
    return segno.make(content, error="m", micro=False).png_data_uri(scale=QR_SCALE, border=2)


class ConfirmationCodeIssuer:
    def __init__(self, *, utc_now: Callable[[], datetime] = utc_now) -> None:
        self._now = utc_now

    def issue(self, reservation: Reservation, *, now: Optional[datetime] = None) -> IssuedCode:
        """
        Stamp a fresh code on ``reservation`` (any previous code stops matching).

        Requires a completed payment; the caller owns the transaction.
        """
        if not reservation.is_paid:
            raise PaymentRequired(reservation_id=reservation.id)

        now = now or self._now()
        reservation.confirmation_code = generate_code(reservation.id, now=now)
        reservation.code_issued_at = now
        payload = build_qr_payload(reservation)
        return IssuedCode(
            confirmation_code=reservation.confirmation_code,
            issued_at=now,
            qr_payload=payload,
            qr_code=render_qr_image(payload),
        )

    @staticmethod
    def matches(reservation: Reservation, code: Optional[str]) -> bool:
        return codes_match(reservation.confirmation_code, code)
