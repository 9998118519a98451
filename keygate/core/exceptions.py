"""Custom exception hierarchy for Keygate."""

from __future__ import annotations

from typing import Any


class KeygateBaseError(Exception):
    """Base exception for all Keygate errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = context or {}


# ── Webhook Verification ─────────────────────────────────────────

class WebhookVerificationError(KeygateBaseError):
    """Inbound notification rejected before touching the store."""


class SignatureInvalidError(WebhookVerificationError):
    """Signature header missing, unparseable, or not matching the payload."""


class SignatureStaleError(WebhookVerificationError):
    """Signed timestamp falls outside the replay tolerance window."""


class PayloadMalformedError(WebhookVerificationError):
    """Signature passed but the payload structure could not be parsed."""


# ── Store Layer ──────────────────────────────────────────────────

class PersistenceUnavailableError(KeygateBaseError):
    """Credential store unreachable, failing, or slower than the timeout. Retryable."""


class InvalidCredentialError(KeygateBaseError):
    """A credential record violates its invariants."""


class SecretCollisionError(KeygateBaseError):
    """Insert rejected because the generated secret already exists."""


# ── Delivery ─────────────────────────────────────────────────────

class NotificationDeliveryError(KeygateBaseError):
    """The key delivery email could not be sent."""
