"""Tests for the Credential record — validation, state precedence, secrets."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from keygate.core.exceptions import InvalidCredentialError
from keygate.core.types import CredentialState
from keygate.saas.credential import (
    Credential,
    generate_secret,
    looks_like_secret,
    mask_secret,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _credential(**overrides: object) -> Credential:
    fields: dict[str, object] = {
        "owner_identity": "buyer@example.com",
        "request_limit": 10,
        "issued_at": NOW - timedelta(days=1),
    }
    fields.update(overrides)
    return Credential(**fields)  # type: ignore[arg-type]


class TestSecretGeneration:
    def test_secret_is_48_lowercase_hex_chars(self) -> None:
        secret = generate_secret()
        assert len(secret) == 48
        assert secret == secret.lower()
        assert looks_like_secret(secret)

    def test_secrets_differ(self) -> None:
        assert len({generate_secret() for _ in range(200)}) == 200

    def test_uses_injected_source(self) -> None:
        assert generate_secret(lambda n: b"\xab" * n) == "ab" * 24

    def test_short_source_rejected(self) -> None:
        with pytest.raises(InvalidCredentialError):
            generate_secret(lambda n: b"\x00" * 4)

    def test_looks_like_secret_rejects_garbage(self) -> None:
        assert not looks_like_secret("")
        assert not looks_like_secret("abc")
        assert not looks_like_secret("z" * 48)
        assert not looks_like_secret("a" * 47)

    def test_mask_keeps_only_prefix(self) -> None:
        secret = "0123456789abcdef" * 3
        masked = mask_secret(secret)
        assert masked.startswith("01234567")
        assert secret not in masked
        assert mask_secret("") == ""


class TestValidation:
    def test_defaults(self) -> None:
        cred = Credential(owner_identity="a@b.com", request_limit=5)
        assert cred.request_count == 0
        assert cred.revoked is False
        assert cred.expires_at is None
        assert cred.credential_id
        assert looks_like_secret(cred.secret_value)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"owner_identity": ""},
            {"request_limit": 0},
            {"request_count": -1},
            {"secret_value": "not-a-secret"},
            {"credential_id": ""},
            {"issued_at": datetime(2026, 1, 1)},
            {"expires_at": datetime(2026, 1, 1)},
            {"expires_at": NOW - timedelta(days=2)},
            {"provisioning_event_id": ""},
        ],
    )
    def test_invalid_records_rejected(self, overrides: dict[str, object]) -> None:
        with pytest.raises(InvalidCredentialError) as exc_info:
            _credential(**overrides)
        assert exc_info.value.context["errors"]

    def test_issue_sets_expiry_from_ttl(self) -> None:
        cred = Credential.issue(
            "a@b.com", request_limit=3, ttl=timedelta(days=30),
            provisioning_event_id="evt_1", now=NOW,
        )
        assert cred.issued_at == NOW
        assert cred.expires_at == NOW + timedelta(days=30)
        assert cred.provisioning_event_id == "evt_1"

    def test_issue_without_ttl_never_expires(self) -> None:
        cred = Credential.issue("a@b.com", request_limit=3, now=NOW)
        assert cred.expires_at is None
        assert not cred.is_expired(NOW + timedelta(days=10_000))


class TestState:
    def test_active(self) -> None:
        assert _credential().state(NOW) is CredentialState.ACTIVE

    def test_quota_exceeded_at_limit(self) -> None:
        cred = _credential(request_count=10, request_limit=10)
        assert cred.state(NOW) is CredentialState.QUOTA_EXCEEDED
        assert cred.remaining == 0

    def test_expired_boundary_is_inclusive(self) -> None:
        cred = _credential(expires_at=NOW)
        assert cred.state(NOW) is CredentialState.EXPIRED
        assert cred.state(NOW - timedelta(seconds=1)) is CredentialState.ACTIVE

    def test_revoked_beats_expired_and_quota(self) -> None:
        cred = _credential(revoked=True, expires_at=NOW - timedelta(hours=1), request_count=10)
        assert cred.state(NOW) is CredentialState.REVOKED

    def test_expired_beats_quota(self) -> None:
        cred = _credential(expires_at=NOW - timedelta(hours=1), request_count=10)
        assert cred.state(NOW) is CredentialState.EXPIRED
