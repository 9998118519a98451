"""Admin endpoints — credential listing, recovery lookup, revocation, limits."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from keygate.api.db.credentials import CredentialRepository
from keygate.api.deps import get_credential_repo, require_admin
from keygate.api.models.schemas import CredentialOut, ErrorOut, RequestLimitUpdate
from keygate.core.logging import get_logger
from keygate.saas.credential import Credential

log = get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
    responses={401: {"model": ErrorOut}, 404: {"model": ErrorOut}},
)


def _found(credential: Credential | None) -> CredentialOut:
    if credential is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="credential not found",
        )
    return CredentialOut.from_credential(credential)


@router.get("/keys", response_model=list[CredentialOut])
async def list_keys(
    owner: str | None = None,
    repo: CredentialRepository = Depends(get_credential_repo),
) -> list[CredentialOut]:
    """Snapshot of every credential, optionally filtered by owner email."""
    credentials = await repo.list_credentials(owner=owner)
    return [CredentialOut.from_credential(c) for c in credentials]


@router.get("/keys/by-event/{event_id}", response_model=CredentialOut)
async def key_for_event(
    event_id: str,
    repo: CredentialRepository = Depends(get_credential_repo),
) -> CredentialOut:
    """Recover the key issued for a payment event whose email never arrived."""
    return _found(await repo.find_by_event_id(event_id))


@router.post("/keys/{credential_id}/revoke", response_model=CredentialOut)
async def revoke_key(
    credential_id: str,
    repo: CredentialRepository = Depends(get_credential_repo),
) -> CredentialOut:
    credential = _found(await repo.revoke(credential_id))
    log.info("admin_revoked_key", credential_id=credential_id)
    return credential


@router.patch("/keys/{credential_id}/limit", response_model=CredentialOut)
async def update_limit(
    credential_id: str,
    body: RequestLimitUpdate,
    repo: CredentialRepository = Depends(get_credential_repo),
) -> CredentialOut:
    return _found(await repo.set_request_limit(credential_id, body.request_limit))
