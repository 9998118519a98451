"""Pydantic V2 request/response schemas for the Keygate API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from keygate.saas.credential import Credential


# ── Common ────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str


class ErrorOut(BaseModel):
    error: str


# ── Webhook ───────────────────────────────────────────────────────

class WebhookAck(BaseModel):
    received: bool = True
    outcome: str


# ── Protected access ─────────────────────────────────────────────

class AccessGranted(BaseModel):
    message: str = "access granted"
    remaining: int | None = None


# ── Admin ─────────────────────────────────────────────────────────

class CredentialOut(BaseModel):
    """Admin view of a credential, including its secret for recovery."""

    credential_id: str
    secret_value: str
    owner_identity: str
    issued_at: datetime
    expires_at: datetime | None = None
    request_count: int
    request_limit: int
    revoked: bool
    provisioning_event_id: str | None = None
    state: str

    @classmethod
    def from_credential(cls, credential: Credential) -> CredentialOut:
        return cls(
            credential_id=credential.credential_id,
            secret_value=credential.secret_value,
            owner_identity=credential.owner_identity,
            issued_at=credential.issued_at,
            expires_at=credential.expires_at,
            request_count=credential.request_count,
            request_limit=credential.request_limit,
            revoked=credential.revoked,
            provisioning_event_id=credential.provisioning_event_id,
            state=credential.state().value,
        )


class RequestLimitUpdate(BaseModel):
    """Request body for changing a credential's request limit."""

    request_limit: int = Field(..., ge=1)
