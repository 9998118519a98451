"""System-wide shared types — access decisions, credential states, outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# ── Enums ────────────────────────────────────────────────────────

class CredentialState(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"
    QUOTA_EXCEEDED = "quota_exceeded"


class DenialReason(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"
    QUOTA_EXCEEDED = "quota_exceeded"


class DedupOutcome(str, Enum):
    FRESH = "fresh"
    ALREADY_PROCESSED = "already_processed"


class ProvisionOutcome(str, Enum):
    ISSUED = "issued"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


# ── Access Decisions ─────────────────────────────────────────────

@dataclass(frozen=True)
class Admitted:
    """Request admitted; one unit of quota consumed."""

    remaining: int

    @property
    def admitted(self) -> bool:
        return True


@dataclass(frozen=True)
class Denied:
    """Request refused; no quota consumed."""

    reason: DenialReason

    @property
    def admitted(self) -> bool:
        return False


ConsumeDecision = Admitted | Denied


STATE_TO_DENIAL: dict[CredentialState, DenialReason] = {
    CredentialState.REVOKED: DenialReason.REVOKED,
    CredentialState.EXPIRED: DenialReason.EXPIRED,
    CredentialState.QUOTA_EXCEEDED: DenialReason.QUOTA_EXCEEDED,
}
