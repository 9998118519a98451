"""Webhook signature verification — HMAC-SHA256 over ``"<timestamp>." + body``.

The header carries a timestamp and one or more signatures, Stripe style::

    Stripe-Signature: t=1700000000,v1=5257a869e7ec...,v1=...

Verification runs on the raw bytes, before any JSON decoding and before any
store access. Only a payload whose signature matches and whose timestamp is
within the tolerance window is parsed.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time

from pydantic import ValidationError

from keygate.billing.events import WebhookEvent
from keygate.core.constants import DEFAULT_SIGNATURE_TOLERANCE, SIGNATURE_SCHEME
from keygate.core.exceptions import (
    PayloadMalformedError,
    SignatureInvalidError,
    SignatureStaleError,
)
from keygate.core.logging import get_logger

log = get_logger(__name__)


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def sign_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a header value for ``payload`` — used to replay events locally."""
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},{SIGNATURE_SCHEME}={compute_signature(payload, secret, ts)}"


def parse_signature_header(header: str) -> tuple[int, list[str]]:
    """Split a header into its timestamp and ``v1`` candidates."""
    timestamp: int | None = None
    candidates: list[str] = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError as exc:
                raise SignatureInvalidError("Malformed signature timestamp") from exc
        elif key == SIGNATURE_SCHEME and value:
            candidates.append(value)

    if timestamp is None:
        raise SignatureInvalidError("Signature header has no timestamp")
    if not candidates:
        raise SignatureInvalidError(f"Signature header has no {SIGNATURE_SCHEME} signature")
    return timestamp, candidates


def verify_signature(
    payload: bytes,
    signature_header: str | None,
    secret: str,
    *,
    tolerance: int = DEFAULT_SIGNATURE_TOLERANCE,
    now: float | None = None,
) -> int:
    """Check the signature and replay window. Returns the signed timestamp."""
    if not secret:
        raise SignatureInvalidError("Webhook signing secret is not configured")
    if not signature_header:
        raise SignatureInvalidError("Missing signature header")

    timestamp, candidates = parse_signature_header(signature_header)
    expected = compute_signature(payload, secret, timestamp)
    if not any(hmac.compare_digest(expected.encode(), c.encode()) for c in candidates):
        log.warning("webhook_signature_mismatch", timestamp=timestamp)
        raise SignatureInvalidError("No signature matches the payload")

    current = time.time() if now is None else now
    if tolerance > 0 and abs(current - timestamp) > tolerance:
        log.warning("webhook_signature_stale", timestamp=timestamp, tolerance=tolerance)
        raise SignatureStaleError(
            "Signature timestamp outside the tolerance window",
            context={"timestamp": timestamp, "tolerance": tolerance},
        )
    return timestamp


def verify_webhook(
    payload: bytes,
    signature_header: str | None,
    secret: str,
    *,
    tolerance: int = DEFAULT_SIGNATURE_TOLERANCE,
    now: float | None = None,
) -> WebhookEvent:
    """Verify a raw notification and return the parsed event.

    Raises:
        SignatureInvalidError: header missing/garbled or signature mismatch.
        SignatureStaleError: timestamp outside ``tolerance`` seconds of ``now``.
        PayloadMalformedError: signature fine but the body is not a valid event.
    """
    verify_signature(payload, signature_header, secret, tolerance=tolerance, now=now)

    try:
        body = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PayloadMalformedError("Payload is not valid JSON") from exc
    if not isinstance(body, dict):
        raise PayloadMalformedError("Payload is not a JSON object")

    try:
        return WebhookEvent.model_validate(body)
    except ValidationError as exc:
        raise PayloadMalformedError(
            "Payload is not a valid event",
            context={"errors": exc.error_count()},
        ) from exc
