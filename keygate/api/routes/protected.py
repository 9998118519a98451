"""Protected resource — every call consumes one unit of the caller's quota."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from keygate.api.deps import require_credential
from keygate.api.models.schemas import AccessGranted, ErrorOut
from keygate.core.constants import REMAINING_HEADER
from keygate.core.types import Admitted

router = APIRouter(tags=["protected"])


@router.api_route(
    "/protected",
    methods=["GET", "POST"],
    response_model=AccessGranted,
    responses={code: {"model": ErrorOut} for code in (401, 403, 429, 500)},
)
async def protected_resource(
    response: Response,
    admitted: Admitted = Depends(require_credential),
) -> AccessGranted:
    response.headers[REMAINING_HEADER] = str(admitted.remaining)
    return AccessGranted(message="access granted", remaining=admitted.remaining)
