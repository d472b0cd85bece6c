from __future__ import annotations

import asyncio
import contextlib
import os

import pytest

from cutover_engine import config
from cutover_engine.config import ExecutionSettings, Settings


def pytest_sessionstart(session: pytest.Session) -> None:
    # Keep a developer's .env log file out of unit test runs.
    os.environ.setdefault("CUTOVER_LOG_FILE", "")


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    config._load_settings_cached.cache_clear()
    yield
    config._load_settings_cached.cache_clear()


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with no simulated dry-run delays."""
    return Settings(
        execution=ExecutionSettings(
            dry_run_check_delay_seconds=0.0,
            dry_run_dns_delay_seconds=0.0,
        )
    )


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)
