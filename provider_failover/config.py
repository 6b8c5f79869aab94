"""
Configuration for provider-failover.

Settings can be given explicitly or read from the environment:

- ``PROVIDER_FAILOVER_AGENT_DIR``: directory holding the agent's auth state
  and the cooldown document (default ``~/.provider-failover/agent``).
- ``PROVIDER_FAILOVER_LOCK_RETRIES``: lock acquisition retries.
- ``PROVIDER_FAILOVER_LOCK_STALE_SECONDS``: age after which a lock is stale.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from provider_failover.exceptions import ConfigurationError
from provider_failover.locking import FileLockPolicy

AGENT_DIR_ENV = "PROVIDER_FAILOVER_AGENT_DIR"
LOCK_RETRIES_ENV = "PROVIDER_FAILOVER_LOCK_RETRIES"
LOCK_STALE_ENV = "PROVIDER_FAILOVER_LOCK_STALE_SECONDS"

DEFAULT_AGENT_DIR = Path("~/.provider-failover/agent")
AUTH_STORE_FILENAME = "auth-profiles.json"
COOLDOWN_FILENAME = "provider-cooldowns.json"


@dataclass
class FailoverConfig:
    """
    Configuration for the cooldown store.

    Attributes:
        agent_dir: Directory containing the agent's authentication state.
        lock_policy: Retry/staleness policy for the cross-process lock.
        cooldown_filename: Name of the cooldown document inside ``agent_dir``.
    """

    agent_dir: Path = field(default_factory=lambda: DEFAULT_AGENT_DIR.expanduser())
    lock_policy: FileLockPolicy = field(default_factory=FileLockPolicy)
    cooldown_filename: str = COOLDOWN_FILENAME

    @classmethod
    def default(cls, agent_dir: str | Path | None = None) -> FailoverConfig:
        """Create default configuration, optionally for a specific agent directory."""
        if agent_dir is None:
            return cls()
        return cls(agent_dir=Path(agent_dir).expanduser())

    @classmethod
    def from_env(cls) -> FailoverConfig:
        """
        Build configuration from environment variables.

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed or is
                rejected by FileLockPolicy.
        """
        config = cls()

        agent_dir = os.environ.get(AGENT_DIR_ENV)
        if agent_dir:
            config.agent_dir = Path(agent_dir).expanduser()

        policy = config.lock_policy
        retries = os.environ.get(LOCK_RETRIES_ENV)
        if retries:
            policy = _override_policy(policy, LOCK_RETRIES_ENV, retries, "retries", int)
        stale = os.environ.get(LOCK_STALE_ENV)
        if stale:
            policy = _override_policy(policy, LOCK_STALE_ENV, stale, "stale", float)
        config.lock_policy = policy

        return config

    def with_agent_dir(self, agent_dir: str | Path | None) -> FailoverConfig:
        """Return a copy targeting ``agent_dir`` (unchanged if None)."""
        if agent_dir is None:
            return self
        return replace(self, agent_dir=Path(agent_dir).expanduser())

    @property
    def auth_store_path(self) -> Path:
        return self.agent_dir / AUTH_STORE_FILENAME

    @property
    def cooldown_path(self) -> Path:
        """The cooldown document lives beside the auth profile store."""
        return self.auth_store_path.parent / self.cooldown_filename


def _parse_number(key: str, raw: str, kind: type[int] | type[float]) -> int | float:
    try:
        value = kind(raw)
    except ValueError:
        raise ConfigurationError(
            config_key=key,
            expected=f"a non-negative {kind.__name__}",
            received=raw,
        ) from None
    if value < 0:
        raise ConfigurationError(
            config_key=key,
            expected=f"a non-negative {kind.__name__}",
            received=raw,
        )
    return value


def _override_policy(
    policy: FileLockPolicy,
    key: str,
    raw: str,
    attr: str,
    kind: type[int] | type[float],
) -> FileLockPolicy:
    value = _parse_number(key, raw, kind)
    try:
        return replace(policy, **{attr: value})
    except ValueError as e:
        raise ConfigurationError(
            config_key=key,
            expected=f"a valid lock setting ({e})",
            received=raw,
        ) from e
