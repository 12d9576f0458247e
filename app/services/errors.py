# app/services/errors.py
"""
Reservation-core error taxonomy.

Every error has a stable machine-readable ``code`` and an HTTP status so the
API layer can render it as a Problem document without guessing:

    NotFoundError          404
    ConflictError          409
    UnauthorizedError      403
    ExpiredError           410
    ValidationFailedError  422
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ReservationError(Exception):
    kind = "error"
    code = "reservation_error"
    http_status = 400
    default_message = "Reservation operation failed"

    def __init__(self, message: Optional[str] = None, **context: Any) -> None:
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind, "code": self.code, "message": self.message}
        if self.context:
            out["context"] = self.context
        return out


# ---------------- NotFound ----------------


class NotFoundError(ReservationError):
    kind = "not_found"
    code = "not_found"
    http_status = 404
    default_message = "Entity not found"


class ReservationNotFound(NotFoundError):
    code = "reservation_not_found"
    default_message = "Reservation not found"


class ListingNotFound(NotFoundError):
    code = "listing_not_found"
    default_message = "Listing not found"


class BusinessNotFound(NotFoundError):
    code = "business_not_found"
    default_message = "Business not found"


# ---------------- Conflict ----------------


class ConflictError(ReservationError):
    kind = "conflict"
    code = "conflict"
    http_status = 409
    default_message = "Request conflicts with the current state"


class OutOfStock(ConflictError):
    code = "out_of_stock"
    default_message = "Not enough quantity available"


class ListingUnavailable(ConflictError):
    code = "listing_unavailable"
    default_message = "Listing is not available"


class AlreadyPaid(ConflictError):
    code = "already_paid"
    default_message = "Payment already processed for this reservation"


class MultiBusinessNotAllowed(ConflictError):
    code = "multi_business_not_allowed"
    default_message = "Items from more than one business cannot be reserved together"


class CancellationWindowClosed(ConflictError):
    code = "cancellation_window_closed"
    default_message = "Paid reservations cannot be cancelled by the customer"


class InvalidStateTransition(ConflictError):
    code = "invalid_state_transition"
    default_message = "Operation not allowed in the current reservation status"


class NothingToVerify(ConflictError):
    code = "nothing_to_verify"
    default_message = "No pending items to verify for this actor"


class NothingToCancel(ConflictError):
    code = "nothing_to_cancel"
    default_message = "No pending items to cancel for this actor"


class PaymentDeclined(ConflictError):
    code = "payment_declined"
    default_message = "Payment was declined"


class ReservationNumberExhausted(ConflictError):
    code = "reservation_number_exhausted"
    default_message = "Could not allocate a unique reservation number"


# ---------------- Unauthorized ----------------


class UnauthorizedError(ReservationError):
    kind = "unauthorized"
    code = "unauthorized"
    http_status = 403
    default_message = "Not authorized"


class NotAuthorized(UnauthorizedError):
    code = "not_authorized"
    default_message = "Actor has no access to this reservation"


# ---------------- Expired ----------------


class ExpiredError(ReservationError):
    kind = "expired"
    code = "expired"
    http_status = 410
    default_message = "Expired"


class VerificationExpired(ExpiredError):
    code = "verification_expired"
    default_message = "Confirmation code has expired"


# ---------------- ValidationFailed ----------------


class ValidationFailedError(ReservationError):
    kind = "validation_failed"
    code = "validation_failed"
    http_status = 422
    default_message = "Validation failed"


class PickupTimeOutOfWindow(ValidationFailedError):
    code = "pickup_time_out_of_window"
    default_message = "Pickup time is outside the listing pickup window"


class AmountMismatch(ValidationFailedError):
    code = "amount_mismatch"
    default_message = "Payment amount does not match the reservation total"


class InvalidConfirmationCode(ValidationFailedError):
    code = "invalid_confirmation_code"
    default_message = "Invalid confirmation code"


class PaymentRequired(ValidationFailedError):
    code = "payment_required"
    default_message = "Payment must be completed first"


class InvalidReservationRequest(ValidationFailedError):
    code = "invalid_reservation_request"
    default_message = "Malformed reservation request"
