"""
Provider cooldown tracking for provider-failover.

This module records which providers recently failed and for how long
they should be left alone:
- Reason-specific exponential backoff with a one hour ceiling
- A durable JSON document shared between processes
- Locked load-mutate-save transactions for every mutation

Example:
    >>> from provider_failover.cooldown import ProviderCooldownTracker
    >>> from provider_failover.types import FailureReason
    >>>
    >>> tracker = ProviderCooldownTracker("/tmp/agent")
    >>> tracker.mark("groq", FailureReason.RATE_LIMIT)
    >>> status = tracker.check("groq")
    >>> status.in_cooldown, status.remaining_ms
    (True, 59999)
"""

from provider_failover.cooldown.backoff import (
    BASE_COOLDOWN_MS,
    MAX_COOLDOWN_MS,
    calculate_cooldown_ms,
)
from provider_failover.cooldown.store import CooldownStoreFile, resolve_cooldown_path
from provider_failover.cooldown.tracker import (
    ProviderCooldownTracker,
    clear_expired_provider_cooldowns,
    clear_provider_cooldown,
    get_provider_cooldown_stats,
    is_provider_in_cooldown,
    mark_provider_cooldown,
)

__all__ = [
    # Backoff
    "BASE_COOLDOWN_MS",
    "MAX_COOLDOWN_MS",
    "calculate_cooldown_ms",
    # Store
    "CooldownStoreFile",
    "resolve_cooldown_path",
    # Tracker
    "ProviderCooldownTracker",
    "mark_provider_cooldown",
    "is_provider_in_cooldown",
    "clear_provider_cooldown",
    "clear_expired_provider_cooldowns",
    "get_provider_cooldown_stats",
]
