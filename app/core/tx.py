# app/core/tx.py
from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


async def run_in_tx(session: AsyncSession, fn: Callable[[], Awaitable[T]]) -> T:
    """
    All-or-nothing execution of ``fn``.

    - session idle: ``async with session.begin()`` (commit / rollback)
    - session already in a transaction: wrap ``fn`` in a SAVEPOINT so a failure
      rolls back only this unit; the caller still owns the outer commit
    """
    if session.in_transaction():
        async with session.begin_nested():
            return await fn()
    async with session.begin():
        return await fn()
