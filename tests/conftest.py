"""Shared fixtures for docsync tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from docsync.config.settings import SyncSettings
from docsync.storage.local_store import LocalStore
from docsync.sync.models import Snapshot
from docsync.sync.token_manager import parse_repo


class FakeClock:
    """Settable wall clock in epoch seconds."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep settings and tokens out of the real home directory."""
    monkeypatch.setenv("DOCSYNC_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("DOCSYNC_GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("PYTHON_KEYRING_BACKEND", "keyring.backends.null.Keyring")


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "test.db")


@pytest.fixture
def settings():
    return SyncSettings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_token_manager():
    def _make(token="ghp_test", repo="octo/docs"):
        manager = MagicMock()
        manager.get_token = AsyncMock(return_value=token)
        manager.get_repo = AsyncMock(return_value=parse_repo(repo))
        manager.has_token = AsyncMock(return_value=token is not None)
        manager.get_storage_location = AsyncMock(return_value="Environment variable")
        return manager
    return _make


@pytest.fixture
def snapshot_a():
    return Snapshot(
        name="Resume",
        markdown="# Alice\n",
        css="h1 { color: red; }",
        styles={"fontSize": 15, "paper": "A4"},
        update="1700000000000",
    )


@pytest.fixture
def snapshot_b():
    return Snapshot(
        name="Resume",
        markdown="# Alice Smith\n",
        css="h1 { color: red; }",
        styles={"fontSize": 15, "paper": "A4"},
        update="1700000005000",
    )
