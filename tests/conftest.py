"""
Pytest fixtures for provider-failover tests.

Provides common fixtures used across all test modules.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from provider_failover.config import FailoverConfig
from provider_failover.cooldown.store import CooldownStoreFile
from provider_failover.cooldown.tracker import ProviderCooldownTracker
from provider_failover.locking import FileLockPolicy

# ============================================================================
# Clock Fixtures
# ============================================================================


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock starting at a fixed instant."""
    return FakeClock()


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def fast_lock_policy() -> FileLockPolicy:
    """Lock policy with short delays so contention tests finish quickly."""
    return FileLockPolicy(
        retries=3,
        min_timeout=0.001,
        max_timeout=0.005,
        randomize=False,
        stale=30.0,
    )


@pytest.fixture
def agent_dir(tmp_path: Path) -> Path:
    """Create a temporary agent directory."""
    path = tmp_path / "agent"
    path.mkdir()
    return path


@pytest.fixture
def failover_config(agent_dir: Path, fast_lock_policy: FileLockPolicy) -> FailoverConfig:
    """Configuration pointing at the temporary agent directory."""
    return FailoverConfig(agent_dir=agent_dir, lock_policy=fast_lock_policy)


@pytest.fixture
def store_file(failover_config: FailoverConfig) -> CooldownStoreFile:
    """Cooldown store inside the temporary agent directory."""
    return CooldownStoreFile(failover_config.cooldown_path, failover_config.lock_policy)


@pytest.fixture
def tracker(failover_config: FailoverConfig, clock: FakeClock) -> ProviderCooldownTracker:
    """Cooldown tracker driven by the fake clock."""
    return ProviderCooldownTracker(config=failover_config, clock=clock)


@pytest.fixture(autouse=True)
def isolated_agent_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep the default agent directory out of the user's home."""
    default_dir = tmp_path / "default-agent"
    monkeypatch.setenv("PROVIDER_FAILOVER_AGENT_DIR", str(default_dir))
    monkeypatch.delenv("PROVIDER_FAILOVER_LOCK_RETRIES", raising=False)
    monkeypatch.delenv("PROVIDER_FAILOVER_LOCK_STALE_SECONDS", raising=False)
    return default_dir
