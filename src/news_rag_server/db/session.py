"""
Database Engine Management

Builds the async SQLAlchemy engine for PostgreSQL. The engine is created
explicitly at startup and handed to the components that need it; nothing is
connected at import time.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine


def normalize_database_url(url: str) -> str:
    """
    Force the asyncpg driver on plain PostgreSQL URLs.

    ``postgres://`` and ``postgresql://`` (as handed out by most hosting
    providers) become ``postgresql+asyncpg://``.
    """
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


def create_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(
        normalize_database_url(database_url),
        echo=False,  # Set True for SQL debugging
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )
