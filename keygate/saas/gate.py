"""Access gate — resolves the caller's key and consumes one unit of quota."""

from __future__ import annotations

from collections.abc import Mapping

from keygate.api.db.credentials import CredentialRepository
from keygate.core.constants import CREDENTIAL_HEADERS
from keygate.core.logging import get_logger
from keygate.core.types import Admitted, ConsumeDecision, Denied, DenialReason
from keygate.saas.credential import looks_like_secret, mask_secret

log = get_logger(__name__)


class AccessGate:
    """Admission decisions for protected requests."""

    def __init__(self, repo: CredentialRepository) -> None:
        self._repo = repo

    @staticmethod
    def extract_credential(headers: Mapping[str, str]) -> str | None:
        """First non-empty value among the recognised headers."""
        for name in CREDENTIAL_HEADERS:
            value = (headers.get(name) or "").strip()
            if value:
                return value
        return None

    async def check(self, credential: str | None) -> ConsumeDecision:
        if not credential:
            return Denied(DenialReason.MISSING_CREDENTIAL)
        if not looks_like_secret(credential):
            log.info("access_denied", reason=DenialReason.NOT_FOUND.value, malformed=True)
            return Denied(DenialReason.NOT_FOUND)

        decision = await self._repo.try_consume(credential.lower())
        if isinstance(decision, Admitted):
            log.info("access_granted", key=mask_secret(credential), remaining=decision.remaining)
        else:
            log.info("access_denied", key=mask_secret(credential), reason=decision.reason.value)
        return decision
