"""DB-backed credential store — atomic quota gate and idempotent issuance."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import Any, TypeVar

from sqlalchemy import false, insert, or_, select, true, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from keygate.core.exceptions import PersistenceUnavailableError, SecretCollisionError
from keygate.core.logging import get_logger
from keygate.core.types import (
    STATE_TO_DENIAL,
    Admitted,
    ConsumeDecision,
    CredentialState,
    DedupOutcome,
    Denied,
    DenialReason,
)
from keygate.data.db import credentials, processed_events
from keygate.saas.credential import Credential, mask_secret

log = get_logger(__name__)

T = TypeVar("T")

# A failed conditional update that re-reads as ACTIVE lost a race with an
# admin limit change; retry the update a few times before giving up.
_MAX_CONSUME_ATTEMPTS = 3


def _utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CredentialRepository:
    """Async SQL-backed credential storage.

    Every mutation on a single credential is one conditional statement, so
    concurrent callers (in this process or any other) are serialized by the
    database rather than by application locks.
    """

    def __init__(self, engine: AsyncEngine, *, timeout: float = 5.0) -> None:
        self._engine = engine
        self._timeout = timeout

    # ── Quota gate ───────────────────────────────────────────────

    async def try_consume(
        self, secret_value: str, *, now: datetime | None = None
    ) -> ConsumeDecision:
        """Atomically admit one request and consume one unit of quota.

        Returns ``Admitted(remaining)`` or ``Denied(reason)``. Only the
        conditional UPDATE decides admission; the follow-up read merely
        explains a denial.
        """
        moment = _utc(now) or datetime.now(timezone.utc)
        return await self._guarded("try_consume", self._try_consume(secret_value, moment))

    async def _try_consume(self, secret_value: str, now: datetime) -> ConsumeDecision:
        stmt = (
            update(credentials)
            .where(
                credentials.c.secret_value == secret_value,
                credentials.c.revoked == false(),
                or_(
                    credentials.c.expires_at.is_(None),
                    credentials.c.expires_at > now,
                ),
                credentials.c.request_count < credentials.c.request_limit,
            )
            .values(request_count=credentials.c.request_count + 1)
            .returning(credentials.c.request_count, credentials.c.request_limit)
        )

        for _ in range(_MAX_CONSUME_ATTEMPTS):
            async with self._engine.begin() as conn:
                row = (await conn.execute(stmt)).first()
            if row is not None:
                return Admitted(remaining=row.request_limit - row.request_count)

            credential = await self._find_one(credentials.c.secret_value == secret_value)
            if credential is None:
                return Denied(DenialReason.NOT_FOUND)
            state = credential.state(now)
            if state is not CredentialState.ACTIVE:
                return Denied(STATE_TO_DENIAL[state])

        log.warning("consume_retries_exhausted", key=mask_secret(secret_value))
        return Denied(DenialReason.QUOTA_EXCEEDED)

    # ── Idempotent issuance ──────────────────────────────────────

    async def mark_if_new(
        self, event_id: str, event_type: str, *, now: datetime | None = None
    ) -> DedupOutcome:
        """Record ``event_id`` as processed exactly once."""
        moment = _utc(now) or datetime.now(timezone.utc)

        async def _mark() -> DedupOutcome:
            try:
                async with self._engine.begin() as conn:
                    await self._insert_event(conn, event_id, event_type, moment)
            except IntegrityError:
                return DedupOutcome.ALREADY_PROCESSED
            return DedupOutcome.FRESH

        return await self._guarded("mark_if_new", _mark())

    async def insert_for_event(self, credential: Credential, event_type: str) -> DedupOutcome:
        """Mark the credential's provisioning event and insert the credential together.

        Both rows commit in one transaction, so an event is never marked
        processed without its credential. Raises ``SecretCollisionError``
        when the secret is taken but the event is new.
        """
        event_id = credential.provisioning_event_id
        if event_id is None:
            raise ValueError("credential has no provisioning_event_id")
        return await self._guarded(
            "insert_for_event", self._insert_for_event(credential, event_id, event_type)
        )

    async def _insert_for_event(
        self, credential: Credential, event_id: str, event_type: str
    ) -> DedupOutcome:
        try:
            async with self._engine.begin() as conn:
                await self._insert_event(conn, event_id, event_type, credential.issued_at)
                await conn.execute(insert(credentials).values(**self._to_row(credential)))
        except IntegrityError as exc:
            if await self._event_seen(event_id):
                log.info("provisioning_event_duplicate", event_id=event_id)
                return DedupOutcome.ALREADY_PROCESSED
            raise SecretCollisionError(
                "Generated secret already exists",
                context={"event_id": event_id},
            ) from exc
        return DedupOutcome.FRESH

    async def insert(self, credential: Credential) -> None:
        """Insert a credential that is not tied to a provisioning event."""

        async def _insert() -> None:
            try:
                async with self._engine.begin() as conn:
                    await conn.execute(insert(credentials).values(**self._to_row(credential)))
            except IntegrityError as exc:
                raise SecretCollisionError(
                    "Credential conflicts with an existing record",
                    context={"credential_id": credential.credential_id},
                ) from exc

        await self._guarded("insert", _insert())

    @staticmethod
    async def _insert_event(
        conn: AsyncConnection, event_id: str, event_type: str, now: datetime
    ) -> None:
        await conn.execute(
            insert(processed_events).values(
                event_id=event_id,
                event_type=event_type,
                processed_at=now,
            )
        )

    async def _event_seen(self, event_id: str) -> bool:
        async with self._engine.connect() as conn:
            marker = await conn.execute(
                select(processed_events.c.event_id).where(processed_events.c.event_id == event_id)
            )
            if marker.first() is not None:
                return True
            owner = await conn.execute(
                select(credentials.c.credential_id).where(
                    credentials.c.provisioning_event_id == event_id
                )
            )
            return owner.first() is not None

    # ── Lookups ──────────────────────────────────────────────────

    async def find_by_secret(self, secret_value: str) -> Credential | None:
        return await self._guarded(
            "find_by_secret", self._find_one(credentials.c.secret_value == secret_value)
        )

    async def find_by_id(self, credential_id: str) -> Credential | None:
        return await self._guarded(
            "find_by_id", self._find_one(credentials.c.credential_id == credential_id)
        )

    async def find_by_event_id(self, event_id: str) -> Credential | None:
        """Recovery lookup for keys whose delivery email never arrived."""
        return await self._guarded(
            "find_by_event_id",
            self._find_one(credentials.c.provisioning_event_id == event_id),
        )

    async def list_credentials(self, owner: str | None = None) -> list[Credential]:
        """Snapshot of all credentials, oldest first, optionally for one owner."""
        stmt = select(credentials).order_by(credentials.c.issued_at, credentials.c.credential_id)
        if owner is not None:
            stmt = stmt.where(credentials.c.owner_identity == owner)

        async def _list() -> list[Credential]:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                return [self._row_to_credential(r) for r in result.mappings().all()]

        return await self._guarded("list_credentials", _list())

    async def _find_one(self, clause: ColumnElement[bool]) -> Credential | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(select(credentials).where(clause))
            r = result.mappings().first()
            if r is None:
                return None
            return self._row_to_credential(r)

    # ── Admin mutations ──────────────────────────────────────────

    async def revoke(self, credential_id: str) -> Credential | None:
        """One-way flip of ``revoked``. Revoking twice is a no-op."""
        stmt = (
            update(credentials)
            .where(credentials.c.credential_id == credential_id)
            .values(revoked=true())
            .returning(*credentials.c)
        )
        credential = await self._guarded("revoke", self._mutate_one(stmt))
        if credential is not None:
            log.info("credential_revoked", credential_id=credential_id)
        return credential

    async def set_request_limit(self, credential_id: str, request_limit: int) -> Credential | None:
        if request_limit < 1:
            raise ValueError("request_limit must be positive")
        stmt = (
            update(credentials)
            .where(credentials.c.credential_id == credential_id)
            .values(request_limit=request_limit)
            .returning(*credentials.c)
        )
        credential = await self._guarded("set_request_limit", self._mutate_one(stmt))
        if credential is not None:
            log.info(
                "credential_limit_changed",
                credential_id=credential_id,
                request_limit=request_limit,
            )
        return credential

    async def _mutate_one(self, stmt: Any) -> Credential | None:
        async with self._engine.begin() as conn:
            r = (await conn.execute(stmt)).mappings().first()
            if r is None:
                return None
            return self._row_to_credential(r)

    # ── Helpers ──────────────────────────────────────────────────

    async def _guarded(self, op: str, aw: Awaitable[T]) -> T:
        """Bound a store call by the timeout and map driver failures."""
        try:
            return await asyncio.wait_for(aw, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            log.error("store_timeout", op=op, timeout=self._timeout)
            raise PersistenceUnavailableError(
                "Credential store timed out", context={"op": op}
            ) from exc
        except SQLAlchemyError as exc:
            log.error("store_error", op=op, error=str(exc))
            raise PersistenceUnavailableError(
                "Credential store unavailable", context={"op": op}
            ) from exc

    @staticmethod
    def _to_row(credential: Credential) -> dict[str, object]:
        return {
            "credential_id": credential.credential_id,
            "secret_value": credential.secret_value,
            "owner_identity": credential.owner_identity,
            "issued_at": credential.issued_at,
            "expires_at": credential.expires_at,
            "request_count": credential.request_count,
            "request_limit": credential.request_limit,
            "revoked": credential.revoked,
            "provisioning_event_id": credential.provisioning_event_id,
        }

    @staticmethod
    def _row_to_credential(r: Any) -> Credential:
        """Convert a DB row mapping to a Credential dataclass."""
        return Credential(
            credential_id=r["credential_id"],
            secret_value=r["secret_value"],
            owner_identity=r["owner_identity"],
            issued_at=_utc(r["issued_at"]),  # type: ignore[arg-type]
            expires_at=_utc(r["expires_at"]),
            request_count=r["request_count"],
            request_limit=r["request_limit"],
            revoked=bool(r["revoked"]),
            provisioning_event_id=r["provisioning_event_id"],
        )
