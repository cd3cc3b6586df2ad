"""Database base configuration."""
import os
import ssl
import sys
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase


def database_engine_args(url: str) -> tuple[str, dict]:
    """URL and connect_args for asyncpg.

    Managed Postgres hands out ``postgresql://...?sslmode=require``; asyncpg
    needs its own driver prefix and takes TLS through ``ssl`` instead of
    ``sslmode``. Certificates are not verified unless DATABASE_SSL_VERIFY is
    set, since hosted databases commonly use self-signed chains.
    """
    url = (url or "").strip()
    if url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]

    parsed = urlparse(url)
    qs = parse_qs(parsed.query, keep_blank_values=True)
    sslmode = qs.pop("sslmode", None)
    url = urlunparse(parsed._replace(query=urlencode(qs, doseq=True)))
    if sslmode != ["require"]:
        return url, {}

    if os.environ.get("DATABASE_SSL_VERIFY", "false").strip().lower() in ("true", "1"):
        return url, {"ssl": True}
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return url, {"ssl": ctx}


def make_session_factory(engine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by services; every unit of work opens its own session."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Tests build their own engines; don't connect to the configured database under pytest
_is_pytest = 'pytest' in sys.modules or 'PYTEST_CURRENT_TEST' in os.environ

if not _is_pytest:
    from app.settings import settings

    _db_url, _connect_args = database_engine_args(settings.database_url)
    engine = create_async_engine(
        _db_url,
        connect_args=_connect_args,
        echo=settings.database_echo,
        pool_pre_ping=True,
    )
    AsyncSessionLocal = make_session_factory(engine)
else:
    engine = None
    AsyncSessionLocal = None


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# Models are registered by importing app.infra.db.models (main.py, alembic env, tests);
# importing them here would be circular: base.py -> models -> market.py -> base.py
