"""Tests for the per-client request limiter."""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from config.settings import Settings
from keygate.api.main import create_app
from keygate.api.ratelimit import FixedWindowLimiter
from keygate.billing.signature import sign_payload


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestFixedWindowLimiter:
    def test_allows_up_to_max_then_blocks(self) -> None:
        clock = FakeClock()
        limiter = FixedWindowLimiter(3, 60, clock=clock)
        assert [limiter.hit("1.2.3.4")[0] for _ in range(4)] == [True, True, True, False]

    def test_window_resets(self) -> None:
        clock = FakeClock()
        limiter = FixedWindowLimiter(1, 60, clock=clock)
        assert limiter.hit("a")[0]
        allowed, reset_in = limiter.hit("a")
        assert not allowed
        assert reset_in == pytest.approx(60)

        clock.now += 60
        assert limiter.hit("a")[0]

    def test_clients_counted_separately(self) -> None:
        limiter = FixedWindowLimiter(1, 60, clock=FakeClock())
        assert limiter.hit("a")[0]
        assert limiter.hit("b")[0]
        assert not limiter.hit("a")[0]

    @pytest.mark.parametrize("max_requests,window", [(0, 60), (5, 0)])
    def test_rejects_bad_config(self, max_requests: int, window: float) -> None:
        with pytest.raises(ValueError):
            FixedWindowLimiter(max_requests, window)


class TestRateLimitMiddleware:
    def test_over_limit_is_429(self, settings: Settings) -> None:
        limited = settings.model_copy(update={"rate_limit_max": 2})
        with TestClient(create_app(limited)) as client:
            codes = [client.get("/api/protected").status_code for _ in range(3)]
            blocked = client.get("/api/protected")

        assert codes == [401, 401, 429]
        assert blocked.status_code == 429
        assert blocked.json() == {"error": "too many requests"}
        assert int(blocked.headers["Retry-After"]) >= 1

    def test_webhook_and_health_exempt(self, settings: Settings) -> None:
        limited = settings.model_copy(update={"rate_limit_max": 1})
        secret = settings.stripe_webhook_secret.get_secret_value()
        with TestClient(create_app(limited)) as client:
            for i in range(3):
                payload = json.dumps({"id": f"evt_{i}", "type": "invoice.paid"}).encode()
                resp = client.post(
                    "/api/webhook",
                    content=payload,
                    headers={"stripe-signature": sign_payload(payload, secret)},
                )
                assert resp.status_code == 200
                assert client.get("/api/health").status_code == 200

    def test_disabled_with_zero(self, settings: Settings) -> None:
        unlimited = settings.model_copy(update={"rate_limit_max": 0})
        with TestClient(create_app(unlimited)) as client:
            codes = {client.get("/api/protected").status_code for _ in range(5)}
        assert codes == {401}
