"""Credential store schema and async engine lifecycle."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from config.settings import Settings
from keygate.core.logging import get_logger

log = get_logger(__name__)

metadata = MetaData()

# ── Tables ───────────────────────────────────────────────────────

credentials = Table(
    "credentials",
    metadata,
    Column("credential_id", String, primary_key=True),
    Column("secret_value", String(128), nullable=False, unique=True),
    Column("owner_identity", String, nullable=False, index=True),
    Column("issued_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=True),
    Column("request_count", Integer, nullable=False, default=0),
    Column("request_limit", Integer, nullable=False),
    Column("revoked", Boolean, nullable=False, default=False),
    Column("provisioning_event_id", String, nullable=True, unique=True),
)

processed_events = Table(
    "processed_events",
    metadata,
    Column("event_id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("processed_at", DateTime(timezone=True), nullable=False),
)


# ── Engine ───────────────────────────────────────────────────────


def create_engine(settings: Settings) -> AsyncEngine:
    """Build the async engine. The caller owns it and must dispose it."""
    db_url = settings.database_url.get_secret_value()
    kwargs: dict[str, object] = {"echo": False}
    if not db_url.startswith("sqlite"):
        kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True)
    engine = create_async_engine(db_url, **kwargs)
    log.info("database_engine_created", host=db_url.split("@")[-1].split("?")[0])
    return engine


async def init_schema(engine: AsyncEngine) -> None:
    """Create all tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    log.info("schema_initialized")


async def close_engine(engine: AsyncEngine) -> None:
    """Dispose the database engine."""
    await engine.dispose()
    log.info("database_engine_closed")
