"""System-wide constants. All magic numbers and strings live here."""

from __future__ import annotations

API_VERSION = "0.1.0"

# ── Credentials ──────────────────────────────────────────────────
SECRET_BYTES = 24                    # 192 bits of CSPRNG output
SECRET_LENGTH = SECRET_BYTES * 2     # hex-encoded
MAX_SECRET_ATTEMPTS = 5              # regenerate on the (theoretical) collision
MASKED_PREFIX_LENGTH = 8

# ── Request Headers ──────────────────────────────────────────────
CREDENTIAL_HEADERS: tuple[str, ...] = ("x-api-key", "x-rapidapi-key")
ADMIN_TOKEN_HEADERS: tuple[str, ...] = ("admin-token", "x-admin-token")
SIGNATURE_HEADER = "stripe-signature"
REMAINING_HEADER = "X-Quota-Remaining"

# ── Webhook ──────────────────────────────────────────────────────
SIGNATURE_SCHEME = "v1"
DEFAULT_SIGNATURE_TOLERANCE = 300    # seconds
CHECKOUT_COMPLETED = "checkout.session.completed"
