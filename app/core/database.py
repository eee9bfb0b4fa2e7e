"""Async engine and session factory for record, render and job persistence."""

import ssl
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings

settings = get_settings()

# Query params some hosted Postgres URLs carry that asyncpg rejects
ASYNCPG_UNSUPPORTED_PARAMS = ("sslmode", "channel_binding", "options")
LOCAL_HOSTS = ("localhost", "127.0.0.1", "db")


def prepare_database_url(url: str) -> tuple[str, dict[str, Any]]:
    """
    Split a database URL into an asyncpg-safe URL and connect_args.

    SQLite URLs pass through untouched. Postgres URLs lose the params asyncpg
    does not accept; remote hosts get a default SSL context instead.
    """
    parsed = urlparse(url)
    if parsed.scheme.startswith("sqlite"):
        return url, {}

    params = parse_qs(parsed.query)
    for param in ASYNCPG_UNSUPPORTED_PARAMS:
        params.pop(param, None)
    clean_url = urlunparse(parsed._replace(query=urlencode(params, doseq=True)))

    if (parsed.hostname or "") in LOCAL_HOSTS:
        return clean_url, {}
    return clean_url, {"ssl": ssl.create_default_context()}


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Build an async engine; pooling options only apply to server databases."""
    clean_url, connect_args = prepare_database_url(url)
    pool_options: dict[str, Any] = {}
    if not clean_url.startswith("sqlite"):
        # Pipeline tasks, render polls and request handlers each hold a session
        pool_options = {
            "pool_pre_ping": True,
            "pool_size": 5,
            "max_overflow": 10,
            "pool_recycle": 280,
        }
    return create_async_engine(clean_url, echo=echo, connect_args=connect_args, **pool_options)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory shared by every store.

    Objects stay usable after commit since stores return them to callers
    after the session closes.
    """
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


engine = create_engine(settings.database_url, echo=settings.debug)
AsyncSessionLocal = create_session_factory(engine)
