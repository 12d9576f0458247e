# app/services/payments.py
from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from app.domain.ports import ChargeResult
from app.models.enums import PaymentStatus

logger = logging.getLogger("foodsaver.payments")


class LocalPaymentAuthority:
    """
    In-process payment authority: every positive charge succeeds.

    Stands in for a real gateway in dev/test; anything implementing
    ``PaymentAuthority`` can replace it in the container.
    """

    async def charge(self, amount: Decimal, currency: str, method: str) -> ChargeResult:
        if amount <= 0:
            logger.warning("declined non-positive charge amount=%s %s", amount, currency)
            return ChargeResult(transaction_id=uuid.uuid4().hex, status=PaymentStatus.FAILED)

        txn = uuid.uuid4().hex
        logger.info("charged %s %s via %s txn=%s", amount, currency, method, txn)
        return ChargeResult(transaction_id=txn, status=PaymentStatus.COMPLETED)
