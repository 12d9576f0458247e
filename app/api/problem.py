# app/api/problem.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, TypedDict

from fastapi import HTTPException

from app.services.errors import ReservationError


class ProblemDetail(TypedDict, total=False):
    # required
    type: str  # validation|state|inventory|payment
    # optional: where the problem is
    path: str  # e.g. items[1]
    reason: str
    listing_id: int
    reservation_id: int

    requested: int
    available: int


@dataclass(frozen=True)
class Problem:
    error_code: str
    message: str
    http_status: int
    kind: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    details: Optional[List[ProblemDetail]] = None
    trace_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
            "http_status": int(self.http_status),
        }
        if self.kind:
            out["kind"] = self.kind
        if self.context:
            out["context"] = self.context
        if self.details:
            out["details"] = self.details
        if self.trace_id:
            out["trace_id"] = self.trace_id
        return out


def make_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    kind: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    p = Problem(
        error_code=str(error_code),
        message=str(message),
        http_status=int(status_code),
        kind=kind,
        context=context,
        details=list(details) if details else None,
        trace_id=trace_id,
    )
    return p.to_dict()


def problem_from_error(
    exc: ReservationError,
    *,
    context: Optional[Dict[str, Any]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Domain error -> Problem; the error's own context wins over request context."""
    merged: Dict[str, Any] = dict(context or {})
    merged.update({k: _jsonable(v) for k, v in exc.context.items()})
    return make_problem(
        status_code=exc.http_status,
        error_code=exc.code,
        message=exc.message,
        kind=exc.kind,
        context=merged or None,
        trace_id=trace_id,
    )


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)


def raise_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
) -> None:
    raise HTTPException(
        status_code=int(status_code),
        detail=make_problem(
            status_code=int(status_code),
            error_code=error_code,
            message=message,
            context=context,
            details=details,
        ),
    )


def raise_400(error_code: str, message: str, *, details: Optional[Sequence[ProblemDetail]] = None) -> None:
    raise_problem(status_code=400, error_code=error_code, message=message, details=details)
