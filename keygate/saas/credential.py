"""Credential record — the metered API key issued after a completed checkout.

Each credential has:
- A UUIDv7 id and a 48-character hex secret (24 random bytes)
- The owner identity (customer email) it was issued for
- A request counter bounded by a request limit
- Optional absolute expiry and a one-way revocation flag
- The provisioning event id that created it
"""

from __future__ import annotations

import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from uuid_extensions import uuid7

from keygate.core.constants import MASKED_PREFIX_LENGTH, SECRET_BYTES, SECRET_LENGTH
from keygate.core.exceptions import InvalidCredentialError
from keygate.core.types import CredentialState

RandomSource = Callable[[int], bytes]


def generate_secret(source: RandomSource = secrets.token_bytes) -> str:
    """Hex-encode SECRET_BYTES bytes drawn from ``source`` (a CSPRNG by default)."""
    raw = source(SECRET_BYTES)
    if len(raw) < SECRET_BYTES:
        raise InvalidCredentialError(
            "Random source returned too few bytes",
            context={"expected": SECRET_BYTES, "got": len(raw)},
        )
    return raw[:SECRET_BYTES].hex()


def looks_like_secret(value: str) -> bool:
    """Cheap shape check so garbage never reaches the store."""
    return len(value) == SECRET_LENGTH and all(c in string.hexdigits for c in value)


def mask_secret(value: str) -> str:
    return f"{value[:MASKED_PREFIX_LENGTH]}…" if value else ""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Credential:
    """An issued API key and its quota state."""

    owner_identity: str
    request_limit: int
    secret_value: str = field(default_factory=generate_secret)
    credential_id: str = field(default_factory=lambda: str(uuid7()))
    issued_at: datetime = field(default_factory=_utcnow)
    expires_at: datetime | None = None
    request_count: int = 0
    revoked: bool = False
    provisioning_event_id: str | None = None

    def __post_init__(self) -> None:
        errors: list[str] = []
        if not self.credential_id:
            errors.append("credential_id is empty")
        if not self.owner_identity:
            errors.append("owner_identity is empty")
        if not looks_like_secret(self.secret_value):
            errors.append("secret_value must be a hex string of the standard length")
        if self.request_limit < 1:
            errors.append("request_limit must be positive")
        if self.request_count < 0:
            errors.append("request_count must not be negative")
        if self.issued_at.tzinfo is None:
            errors.append("issued_at must be timezone-aware")
        if self.expires_at is not None:
            if self.expires_at.tzinfo is None:
                errors.append("expires_at must be timezone-aware")
            elif self.issued_at.tzinfo is not None and self.expires_at < self.issued_at:
                errors.append("expires_at precedes issued_at")
        if self.provisioning_event_id == "":
            errors.append("provisioning_event_id must be None or non-empty")
        if errors:
            raise InvalidCredentialError(
                "Invalid credential record",
                context={"credential_id": self.credential_id, "errors": errors},
            )

    @classmethod
    def issue(
        cls,
        owner_identity: str,
        *,
        request_limit: int,
        ttl: timedelta | None = None,
        provisioning_event_id: str | None = None,
        source: RandomSource = secrets.token_bytes,
        now: datetime | None = None,
    ) -> Credential:
        """Build a fresh credential with a newly generated secret."""
        issued_at = now or _utcnow()
        return cls(
            owner_identity=owner_identity,
            request_limit=request_limit,
            secret_value=generate_secret(source),
            issued_at=issued_at,
            expires_at=issued_at + ttl if ttl else None,
            provisioning_event_id=provisioning_event_id,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or _utcnow()) >= self.expires_at

    def state(self, now: datetime | None = None) -> CredentialState:
        """Effective state; revocation and expiry take precedence over quota."""
        if self.revoked:
            return CredentialState.REVOKED
        if self.is_expired(now):
            return CredentialState.EXPIRED
        if self.request_count >= self.request_limit:
            return CredentialState.QUOTA_EXCEEDED
        return CredentialState.ACTIVE

    @property
    def remaining(self) -> int:
        return max(self.request_limit - self.request_count, 0)
