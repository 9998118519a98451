"""Pytest configuration, shared fixtures, and compatibility helpers.

Async tests are marked with ``@pytest.mark.asyncio``. Some environments run
the suite without ``pytest-asyncio`` installed, which would otherwise make
those tests fail at collection/runtime.
"""

from __future__ import annotations

import asyncio
import inspect
from pathlib import Path
from typing import Any

import pytest
from pydantic import SecretStr

from config.settings import Settings

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_TOKEN = "admin-token-for-tests"


def pytest_configure(config: pytest.Config) -> None:
    """Register local markers used in the suite."""
    config.addinivalue_line("markers", "asyncio: mark test as asyncio-compatible")


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run ``@pytest.mark.asyncio`` tests without external plugins.

    If pytest-asyncio (or another async plugin) is installed, this hook may be
    bypassed by that plugin depending on hook ordering. In plugin-less
    environments, this fallback executes coroutine tests on a fresh loop.
    """
    if pyfuncitem.get_closest_marker("asyncio") is None:
        return None

    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None

    kwargs: dict[str, Any] = {
        arg: pyfuncitem.funcargs[arg]
        for arg in pyfuncitem._fixtureinfo.argnames
    }
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(test_func(**kwargs))
    finally:
        loop.close()
        asyncio.set_event_loop(asyncio.new_event_loop())
    return True


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    """A throwaway SQLite file per test; shared by every connection in the test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'keygate.db'}"


@pytest.fixture()
def settings(db_url: str) -> Settings:
    return Settings(
        keygate_env="dev",
        database_url=SecretStr(db_url),
        stripe_webhook_secret=SecretStr(WEBHOOK_SECRET),
        admin_token=SecretStr(ADMIN_TOKEN),
        default_request_limit=3,
        credential_ttl_days=30,
        store_timeout_seconds=10.0,
        email_mode="none",
    )
