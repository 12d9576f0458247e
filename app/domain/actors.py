# app/domain/actors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.models.enums import ActorRole


@dataclass(frozen=True)
class Actor:
    """
    Caller identity handed to every state-machine operation.

    - CUSTOMER:        id is the customer id
    - BUSINESS:        business_id required
    - BRANCH_MANAGER:  business_id and branch_id required
    """

    id: int
    role: ActorRole
    business_id: Optional[int] = None
    branch_id: Optional[int] = None

    @property
    def is_customer(self) -> bool:
        return self.role == ActorRole.CUSTOMER

    @property
    def is_staff(self) -> bool:
        return self.role in (ActorRole.BUSINESS, ActorRole.BRANCH_MANAGER)

    def owns_listing(self, business_id: int, branch_id: Optional[int]) -> bool:
        if not self.is_staff or self.business_id is None:
            return False
        if business_id != self.business_id:
            return False
        if self.role == ActorRole.BRANCH_MANAGER:
            return self.branch_id is not None and branch_id == self.branch_id
        return True

    @classmethod
    def customer(cls, customer_id: int) -> "Actor":
        return cls(id=customer_id, role=ActorRole.CUSTOMER)

    @classmethod
    def business(cls, user_id: int, business_id: int) -> "Actor":
        return cls(id=user_id, role=ActorRole.BUSINESS, business_id=business_id)

    @classmethod
    def branch_manager(cls, user_id: int, business_id: int, branch_id: int) -> "Actor":
        return cls(
            id=user_id,
            role=ActorRole.BRANCH_MANAGER,
            business_id=business_id,
            branch_id=branch_id,
        )
