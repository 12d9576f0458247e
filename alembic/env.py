# alembic/env.py

from __future__ import annotations

import os
import re
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.engine import Connection
from sqlalchemy.pool import NullPool

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# models are imported lazily so the logging config above applies to them
from app.db.base import Base, init_models  # noqa: E402

# ---------------------------------------------------------------------------
# include_object: never generate drops for objects the models do not know
# ---------------------------------------------------------------------------


def include_object(
    obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any
) -> bool:
    if reflected and compare_to is None:
        return False
    return True


# ---------------------------------------------------------------------------
# URL: migrations run on the sync drivers (psycopg / sqlite3)
# ---------------------------------------------------------------------------

_ASYNC_DRV_RE = re.compile(r"\+asyncpg\b|\+psycopg2\b|\+pg8000\b", re.I)


def normalize_sync_url(url: str) -> str:
    if not url:
        return url
    url = url.strip()
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()

    url = _ASYNC_DRV_RE.sub("+psycopg", url)
    url = re.sub(r"^postgres://", "postgresql+psycopg://", url, flags=re.I)
    if url.lower().startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    url = re.sub(r"^sqlite\+aiosqlite://", "sqlite://", url, flags=re.I)
    return url


def get_url() -> str:
    """
    Precedence:
      1. DATABASE_URL
      2. sqlalchemy.url in alembic.ini
    """
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError(
            "Alembic cannot determine the database URL: set DATABASE_URL "
            "or sqlalchemy.url in alembic.ini"
        )
    return normalize_sync_url(url)


# ---------------------------------------------------------------------------
# runners
# ---------------------------------------------------------------------------


def run_migrations_offline() -> None:
    """Offline mode: emit SQL without connecting."""
    init_models()
    context.configure(
        url=get_url(),
        target_metadata=Base.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=False,
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    init_models()
    url = get_url()
    engine = create_engine(url, poolclass=NullPool, future=True)

    with engine.connect() as connection:  # type: Connection
        context.configure(
            connection=connection,
            target_metadata=Base.metadata,
            compare_type=True,
            compare_server_default=False,
            include_object=include_object,
            # SQLite cannot ALTER most things in place
            render_as_batch=url.startswith("sqlite"),
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
