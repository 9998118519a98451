"""Tests for AccessGate — header extraction and admission delegation."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from keygate.core.types import Admitted, Denied, DenialReason
from keygate.saas.gate import AccessGate

SECRET = "ab" * 24


@pytest.fixture()
def repo() -> AsyncMock:
    mock = AsyncMock()
    mock.try_consume.return_value = Admitted(remaining=4)
    return mock


class TestExtractCredential:
    def test_primary_header(self) -> None:
        assert AccessGate.extract_credential({"x-api-key": SECRET}) == SECRET

    def test_alternate_header(self) -> None:
        assert AccessGate.extract_credential({"x-rapidapi-key": SECRET}) == SECRET

    def test_primary_wins_over_alternate(self) -> None:
        headers = {"x-api-key": "first", "x-rapidapi-key": "second"}
        assert AccessGate.extract_credential(headers) == "first"

    def test_blank_primary_falls_through(self) -> None:
        headers = {"x-api-key": "   ", "x-rapidapi-key": SECRET}
        assert AccessGate.extract_credential(headers) == SECRET

    def test_value_is_stripped(self) -> None:
        assert AccessGate.extract_credential({"x-api-key": f"  {SECRET} "}) == SECRET

    def test_missing(self) -> None:
        assert AccessGate.extract_credential({}) is None


class TestCheck:
    @pytest.mark.asyncio
    async def test_missing_credential(self, repo: AsyncMock) -> None:
        gate = AccessGate(repo)
        assert await gate.check(None) == Denied(DenialReason.MISSING_CREDENTIAL)
        assert await gate.check("") == Denied(DenialReason.MISSING_CREDENTIAL)
        repo.try_consume.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_credential_never_hits_store(self, repo: AsyncMock) -> None:
        gate = AccessGate(repo)
        assert await gate.check("not-a-key") == Denied(DenialReason.NOT_FOUND)
        repo.try_consume.assert_not_called()

    @pytest.mark.asyncio
    async def test_delegates_to_store(self, repo: AsyncMock) -> None:
        gate = AccessGate(repo)
        assert await gate.check(SECRET) == Admitted(remaining=4)
        repo.try_consume.assert_awaited_once_with(SECRET)

    @pytest.mark.asyncio
    async def test_uppercase_key_normalised(self, repo: AsyncMock) -> None:
        gate = AccessGate(repo)
        await gate.check(SECRET.upper())
        repo.try_consume.assert_awaited_once_with(SECRET)

    @pytest.mark.asyncio
    async def test_denial_passed_through(self, repo: AsyncMock) -> None:
        repo.try_consume.return_value = Denied(DenialReason.REVOKED)
        gate = AccessGate(repo)
        decision = await gate.check(SECRET)
        assert decision == Denied(DenialReason.REVOKED)
        assert not decision.admitted
