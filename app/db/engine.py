# app/db/engine.py
# Engine factory: PostgreSQL gets pre-ping; SQLite gets serializable write transactions.
from __future__ import annotations

import re
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

__all__ = ["create_async_engine_safe", "normalize_async_dsn"]

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def normalize_async_dsn(url: str) -> str:
    """Map sync/legacy DSNs onto the async drivers (psycopg3 / aiosqlite)."""
    url = (url or "").strip()
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite://" + url[len("sqlite:///") - 1 :]
    if url.startswith("postgresql+asyncpg://") or url.startswith("postgres+asyncpg://"):
        return re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _connect_args_for(url_str: str) -> dict[str, Any]:
    backend = make_url(url_str).get_backend_name()
    if backend.startswith("sqlite"):
        return {"timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
    return {}


def _install_sqlite_serializable(engine: AsyncEngine) -> None:
    """
    pysqlite's implicit transactions start lazily and deadlock when two
    readers both try to upgrade to a write lock. Take over BEGIN and start
    every transaction IMMEDIATE so competing writers queue on the busy timeout.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_async_engine_safe(url_str: str, *, echo: bool = False, **extra: Any) -> AsyncEngine:
    """Async engine for 'postgresql+psycopg' or 'sqlite+aiosqlite'."""
    url_str = normalize_async_dsn(url_str)
    backend = make_url(url_str).get_backend_name()

    kwargs: dict[str, Any] = {"echo": echo}
    if backend.startswith("postgresql"):
        kwargs["pool_pre_ping"] = True
    connect_args = _connect_args_for(url_str)
    if connect_args:
        kwargs["connect_args"] = connect_args
    kwargs.update(extra)

    engine = create_async_engine(url_str, **kwargs)
    if backend.startswith("sqlite"):
        _install_sqlite_serializable(engine)
    return engine
