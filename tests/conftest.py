"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import pytest

from repocleanr.config import ExecutorConfig, TransferConfig
from repocleanr.debug_log import DebugLog
from repocleanr.github.executor import RateLimitedExecutor
from tests.helpers.fake_github import FakeGitHub
from tests.helpers.fake_sleep import RecordingSleep


@pytest.fixture(autouse=True)
def _clear_repocleanr_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer ``REPOCLEANR_*`` settings out of the tests."""
    for name in (
        "REPOCLEANR_GITHUB_TOKEN",
        "REPOCLEANR_GITHUB_API_URL",
        "REPOCLEANR_MAX_RETRIES",
        "REPOCLEANR_READ_BATCH_SIZE",
        "REPOCLEANR_CHUNK_PAUSE_S",
        "REPOCLEANR_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def github() -> FakeGitHub:
    """Return an empty in-memory GitHub."""
    return FakeGitHub()


@pytest.fixture
def sleep() -> RecordingSleep:
    """Return a sleep replacement that records waits."""
    return RecordingSleep()


@pytest.fixture
def debug_log() -> DebugLog:
    """Return an empty run log."""
    return DebugLog()


@pytest.fixture
def executor(sleep: RecordingSleep, debug_log: DebugLog) -> RateLimitedExecutor:
    """Return an executor whose waits are recorded instead of slept."""
    return RateLimitedExecutor(ExecutorConfig(), sleep=sleep, debug_log=debug_log)


@pytest.fixture
def transfer_config() -> TransferConfig:
    """Return the default transfer configuration."""
    return TransferConfig()
