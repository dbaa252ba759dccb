from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import get_settings

# Values asyncpg accepts for its `ssl` query parameter.
ASYNCPG_SSL_MODES = frozenset({"disable", "allow", "prefer", "require", "verify-ca", "verify-full"})

engine: Optional[AsyncEngine] = None
SessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


def init_engine() -> None:
    """Build the engine and session factory from settings; both stay None without a URL."""
    global engine, SessionLocal
    url = normalize_database_url(get_settings().database_url)
    if not url:
        engine = None
        SessionLocal = None
        return
    engine = create_async_engine(url, future=True, pool_pre_ping=True)
    # Services keep reading ids and columns after commit.
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def dispose_engine() -> None:
    global engine, SessionLocal
    if engine is not None:
        await engine.dispose()
    engine = None
    SessionLocal = None


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    if not SessionLocal:
        raise RuntimeError("Database not configured")
    async with SessionLocal() as session:
        yield session


def _translate_ssl(query: Dict[str, str]) -> Dict[str, str]:
    translated = dict(query)
    sslmode = translated.pop("sslmode", None)
    if sslmode:
        translated["ssl"] = sslmode
    if "ssl" in translated:
        mode = translated["ssl"].lower()
        translated["ssl"] = mode if mode in ASYNCPG_SSL_MODES else "disable"
    return translated


def normalize_database_url(raw_url: Optional[str]) -> Optional[str]:
    """Point Postgres URLs at asyncpg and rewrite libpq's `sslmode` as `ssl`.

    Anything that is not Postgres (sqlite for local runs and tests) is returned as is.
    """
    if not raw_url:
        return raw_url

    url = raw_url
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            url = "postgresql+asyncpg://" + url[len(scheme):]
            break

    parsed = urlparse(url)
    if parsed.scheme != "postgresql+asyncpg":
        return url

    query = _translate_ssl(dict(parse_qsl(parsed.query, keep_blank_values=True)))
    return urlunparse(parsed._replace(query=urlencode(query)))
