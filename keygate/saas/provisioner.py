"""Provisioner — issues exactly one credential per completed checkout event."""

from __future__ import annotations

import asyncio
import secrets
from dataclasses import dataclass
from datetime import timedelta

from keygate.api.db.credentials import CredentialRepository
from keygate.billing.events import WebhookEvent
from keygate.core.constants import MAX_SECRET_ATTEMPTS
from keygate.core.exceptions import (
    NotificationDeliveryError,
    PayloadMalformedError,
    PersistenceUnavailableError,
    SecretCollisionError,
)
from keygate.core.interfaces import BaseNotifier
from keygate.core.logging import get_logger
from keygate.core.types import DedupOutcome, ProvisionOutcome
from keygate.saas.credential import Credential, RandomSource

log = get_logger(__name__)


@dataclass(frozen=True)
class ProvisionResult:
    outcome: ProvisionOutcome
    event_id: str
    credential: Credential | None = None


class Provisioner:
    """Turns verified ``checkout.session.completed`` events into credentials.

    Redelivery of the same event is harmless: the processed-event marker and
    the credential commit in one transaction, so the second delivery finds
    the marker and issues nothing.
    """

    def __init__(
        self,
        repo: CredentialRepository,
        notifier: BaseNotifier,
        *,
        request_limit: int = 1000,
        ttl: timedelta | None = timedelta(days=30),
        random_source: RandomSource = secrets.token_bytes,
        delivery_timeout: float = 15.0,
    ) -> None:
        if request_limit < 1:
            raise ValueError("request_limit must be positive")
        self._repo = repo
        self._notifier = notifier
        self._request_limit = request_limit
        self._ttl = ttl
        self._random_source = random_source
        self._delivery_timeout = delivery_timeout

    async def handle(self, event: WebhookEvent) -> ProvisionResult:
        if not event.is_checkout_completed:
            log.info("webhook_event_ignored", event_id=event.id, event_type=event.type)
            return ProvisionResult(ProvisionOutcome.IGNORED, event.id)

        owner = self._owner_of(event)
        credential = await self._persist(event, owner)
        if credential is None:
            return ProvisionResult(ProvisionOutcome.DUPLICATE, event.id)

        await self._deliver(credential)
        return ProvisionResult(ProvisionOutcome.ISSUED, event.id, credential)

    @staticmethod
    def _owner_of(event: WebhookEvent) -> str:
        try:
            session = event.checkout_session()
        except ValueError as exc:
            raise PayloadMalformedError(
                "Checkout session object is malformed", context={"event_id": event.id}
            ) from exc
        owner = session.contact_email
        if not owner:
            raise PayloadMalformedError(
                "Checkout session has no customer email", context={"event_id": event.id}
            )
        return owner

    async def _persist(self, event: WebhookEvent, owner: str) -> Credential | None:
        """Insert a credential for the event; ``None`` if the event was already handled."""
        for attempt in range(1, MAX_SECRET_ATTEMPTS + 1):
            credential = Credential.issue(
                owner,
                request_limit=self._request_limit,
                ttl=self._ttl,
                provisioning_event_id=event.id,
                source=self._random_source,
            )
            try:
                outcome = await self._repo.insert_for_event(credential, event.type)
            except SecretCollisionError:
                log.warning("secret_collision", event_id=event.id, attempt=attempt)
                continue

            if outcome is DedupOutcome.ALREADY_PROCESSED:
                return None
            log.info(
                "credential_issued",
                credential_id=credential.credential_id,
                owner=owner,
                event_id=event.id,
                request_limit=credential.request_limit,
            )
            return credential

        raise PersistenceUnavailableError(
            "Could not generate a unique secret",
            context={"event_id": event.id, "attempts": MAX_SECRET_ATTEMPTS},
        )

    async def _deliver(self, credential: Credential) -> None:
        # Delivery is best effort; the credential stays issued either way.
        try:
            await asyncio.wait_for(
                self._notifier.send_key(credential.owner_identity, credential.secret_value),
                timeout=self._delivery_timeout,
            )
        except (NotificationDeliveryError, asyncio.TimeoutError) as exc:
            log.error(
                "key_delivery_failed",
                credential_id=credential.credential_id,
                owner=credential.owner_identity,
                error=str(exc) or type(exc).__name__,
            )
