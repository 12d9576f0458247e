# app/api/deps.py
from __future__ import annotations

from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.problem import raise_400
from app.core.config import get_settings
from app.core.container import Services, build_services
from app.db.session import AsyncSessionLocal
from app.domain.actors import Actor
from app.models.enums import ActorRole
from app.services.reservation_queries import ReservationQueries
from app.services.reservation_service import ReservationService


# ---------------------------
# async session (per request)
# ---------------------------


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


# ---------------------------
# collaborators
# ---------------------------


def get_services(request: Request) -> Services:
    """
    Container built in the lifespan; built lazily when the app runs without
    one (e.g. ASGI transports that skip lifespan events).
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services(get_settings(), AsyncSessionLocal)
        request.app.state.services = services
    return services


def get_reservation_service(services: Services = Depends(get_services)) -> ReservationService:
    return services.reservations


def get_reservation_queries(services: Services = Depends(get_services)) -> ReservationQueries:
    return services.queries


# ---------------------------
# actor (authentication is upstream)
# ---------------------------


async def get_actor(
    x_actor_id: Optional[int] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
    x_business_id: Optional[int] = Header(default=None),
    x_branch_id: Optional[int] = Header(default=None),
) -> Actor:
    """
    Build the calling Actor from gateway headers:

    - X-Actor-Id / X-Actor-Role: always required
    - X-Business-Id: required for BUSINESS and BRANCH_MANAGER
    - X-Branch-Id: required for BRANCH_MANAGER
    """
    if x_actor_id is None or not x_actor_role:
        raise_400("actor_required", "X-Actor-Id and X-Actor-Role headers are required")

    try:
        role = ActorRole(x_actor_role.strip().upper())
    except ValueError:
        raise_400("actor_role_invalid", f"Unknown actor role: {x_actor_role}")

    if role != ActorRole.CUSTOMER and x_business_id is None:
        raise_400("business_required", "X-Business-Id is required for business actors")
    if role == ActorRole.BRANCH_MANAGER and x_branch_id is None:
        raise_400("branch_required", "X-Branch-Id is required for branch managers")

    return Actor(
        id=int(x_actor_id),
        role=role,
        business_id=x_business_id if role != ActorRole.CUSTOMER else None,
        branch_id=x_branch_id if role == ActorRole.BRANCH_MANAGER else None,
    )


__all__ = (
    "get_session",
    "get_services",
    "get_reservation_service",
    "get_reservation_queries",
    "get_actor",
)
