"""FastAPI dependency injection — components built in the app lifespan."""

from __future__ import annotations

import hmac

from fastapi import Depends, HTTPException, Request, status

from config.settings import Settings
from keygate.api.db.credentials import CredentialRepository
from keygate.core.constants import ADMIN_TOKEN_HEADERS
from keygate.core.logging import get_logger
from keygate.core.types import Admitted, DenialReason
from keygate.saas.gate import AccessGate
from keygate.saas.provisioner import Provisioner

log = get_logger(__name__)

DENIAL_RESPONSES: dict[DenialReason, tuple[int, str]] = {
    DenialReason.MISSING_CREDENTIAL: (status.HTTP_401_UNAUTHORIZED, "credential required"),
    DenialReason.NOT_FOUND: (status.HTTP_401_UNAUTHORIZED, "invalid credential"),
    DenialReason.REVOKED: (status.HTTP_403_FORBIDDEN, "revoked"),
    DenialReason.EXPIRED: (status.HTTP_403_FORBIDDEN, "expired"),
    DenialReason.QUOTA_EXCEEDED: (status.HTTP_429_TOO_MANY_REQUESTS, "quota exceeded"),
}


# ── Components ────────────────────────────────────────────────────


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


def get_credential_repo(request: Request) -> CredentialRepository:
    return request.app.state.repo  # type: ignore[no-any-return]


def get_gate(request: Request) -> AccessGate:
    return request.app.state.gate  # type: ignore[no-any-return]


def get_provisioner(request: Request) -> Provisioner:
    return request.app.state.provisioner  # type: ignore[no-any-return]


# ── Auth dependencies ─────────────────────────────────────────────


async def require_credential(
    request: Request,
    gate: AccessGate = Depends(get_gate),
) -> Admitted:
    """Admit the request against its key's quota or raise the mapped HTTP error."""
    decision = await gate.check(gate.extract_credential(request.headers))
    if isinstance(decision, Admitted):
        return decision

    code, error = DENIAL_RESPONSES[decision.reason]
    raise HTTPException(status_code=code, detail=error)


async def require_admin(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Shared-secret check for the admin endpoints, constant time."""
    expected = settings.admin_token.get_secret_value()
    supplied = next(
        (request.headers[h] for h in ADMIN_TOKEN_HEADERS if request.headers.get(h)),
        "",
    )
    if not expected or not supplied or not hmac.compare_digest(
        supplied.encode(), expected.encode()
    ):
        log.warning("admin_auth_failed", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="unauthorized",
        )
