"""
Global provider cooldown tracking.

Provides the query and mutation API over the cooldown store. Mutations
(mark, clear, cleanup) are each a single locked transaction. Queries are
unlocked best-effort reads, except that ``check`` deletes an expired
record it finds in its own small locked transaction.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from provider_failover.config import FailoverConfig
from provider_failover.cooldown.backoff import calculate_cooldown_ms
from provider_failover.cooldown.store import CooldownStoreFile
from provider_failover.types import (
    CooldownRecord,
    CooldownStats,
    CooldownStatus,
    CooldownStoreDocument,
    FailureReason,
    SoonestExpiry,
)

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class ProviderCooldownTracker:
    """
    Tracks which providers are cooling down for one agent directory.

    Thread and process safety comes from the store's file lock, so any
    number of trackers (in any number of processes) may share a directory.

    Example:
        >>> tracker = ProviderCooldownTracker("/tmp/agent")
        >>> tracker.mark("groq", FailureReason.RATE_LIMIT)
        >>> tracker.check("groq").in_cooldown
        True
        >>> tracker.clear("groq")
        True
    """

    def __init__(
        self,
        agent_dir: str | Path | None = None,
        *,
        config: FailoverConfig | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """
        Initialize the tracker.

        Args:
            agent_dir: Agent directory holding the cooldown document.
            config: Base configuration. Defaults to ``FailoverConfig.from_env()``.
            clock: Returns the current time in epoch milliseconds.
        """
        self.store = CooldownStoreFile.for_agent(agent_dir, config)
        self._clock = clock or _wall_clock_ms

    @property
    def path(self) -> Path:
        return self.store.path

    def now_ms(self) -> int:
        return self._clock()

    def mark(
        self,
        provider: str,
        reason: FailureReason | str,
        affected_profiles: list[str] | None = None,
        custom_duration_ms: int | None = None,
    ) -> CooldownRecord:
        """
        Put a provider into cooldown, or extend an existing cooldown.

        The attempt count carries over from any record still in the store,
        so repeated failures back off exponentially.

        Args:
            provider: Provider identifier.
            reason: Why the provider failed.
            affected_profiles: Credential profiles implicated by the failure.
            custom_duration_ms: Explicit duration instead of the backoff table.

        Returns:
            The record written to the store.

        Raises:
            ValueError: If provider is empty or the custom duration is negative.
            LockAcquisitionError: If the store lock could not be acquired.
            StoreWriteError: If the store could not be written.
        """
        if not provider:
            raise ValueError("provider must be a non-empty string")
        if custom_duration_ms is not None and custom_duration_ms < 0:
            raise ValueError("custom_duration_ms must be non-negative")

        failure = FailureReason(reason)

        def update(document: CooldownStoreDocument) -> CooldownRecord:
            now = self.now_ms()
            existing = document.cooldowns.get(provider)
            attempt_count = (existing.attempt_count if existing else 0) + 1

            if custom_duration_ms is not None:
                duration_ms = custom_duration_ms
            else:
                duration_ms = calculate_cooldown_ms(failure, attempt_count)

            record = CooldownRecord(
                provider=provider,
                until=now + duration_ms,
                reason=failure,
                attempt_count=attempt_count,
                last_error=failure.value,
                affected_profiles=list(affected_profiles) if affected_profiles else None,
            )
            document.cooldowns[provider] = record
            return record

        record = self.store.with_locked_update(update)
        logger.debug(
            f"Provider {provider} in global cooldown for "
            f"{record.until - self.now_ms()}ms due to {failure.value} "
            f"(attempt {record.attempt_count})"
        )
        return record

    def check(self, provider: str) -> CooldownStatus:
        """
        Check whether a provider is cooling down.

        An expired record is deleted as a side effect; the deletion
        re-checks expiry under the lock so a concurrent re-mark survives.

        Args:
            provider: Provider identifier.

        Returns:
            CooldownStatus describing the provider.
        """
        document = self.store.load()
        record = document.cooldowns.get(provider)
        if record is None:
            return CooldownStatus(in_cooldown=False)

        now = self.now_ms()
        if record.is_active(now):
            return CooldownStatus(
                in_cooldown=True,
                cooldown=record,
                remaining_ms=record.remaining_ms(now),
            )

        def drop_expired(doc: CooldownStoreDocument) -> bool:
            current = doc.cooldowns.get(provider)
            if current is not None and not current.is_active(self.now_ms()):
                del doc.cooldowns[provider]
                return True
            return False

        if self.store.with_locked_update(drop_expired):
            logger.debug(f"Global cooldown for provider {provider} expired")
        return CooldownStatus(in_cooldown=False)

    def is_in_cooldown(self, provider: str) -> bool:
        """Shorthand for ``check(provider).in_cooldown``."""
        return self.check(provider).in_cooldown

    def clear(self, provider: str) -> bool:
        """
        Remove a provider's cooldown, resetting its attempt count.

        Returns:
            True if a record was removed.
        """

        def update(document: CooldownStoreDocument) -> bool:
            return document.cooldowns.pop(provider, None) is not None

        removed = self.store.with_locked_update(update)
        if removed:
            logger.debug(f"Cleared global cooldown for provider {provider}")
        return removed

    def clear_expired(self) -> int:
        """
        Remove every expired record.

        Returns:
            Number of records removed.
        """

        def update(document: CooldownStoreDocument) -> int:
            now = self.now_ms()
            expired = [
                provider
                for provider, record in document.cooldowns.items()
                if not record.is_active(now)
            ]
            for provider in expired:
                del document.cooldowns[provider]
            return len(expired)

        cleaned = self.store.with_locked_update(update)
        if cleaned > 0:
            logger.debug(f"Cleaned {cleaned} expired provider cooldowns")
        return cleaned

    def list_active(self) -> list[CooldownRecord]:
        """Active cooldown records, soonest expiry first."""
        now = self.now_ms()
        active = [r for r in self.store.load().cooldowns.values() if r.is_active(now)]
        return sorted(active, key=lambda r: (r.until, r.provider))

    def stats(self) -> CooldownStats:
        """
        Summarize the cooldown store.

        Returns:
            CooldownStats; ``total_providers`` includes expired records
            that have not been reclaimed yet.
        """
        document = self.store.load()
        now = self.now_ms()

        stats = CooldownStats(total_providers=len(document.cooldowns))
        soonest: CooldownRecord | None = None
        for record in document.cooldowns.values():
            if not record.is_active(now):
                continue
            stats.active_cooldowns += 1
            stats.cooldowns_by_reason[record.reason] = (
                stats.cooldowns_by_reason.get(record.reason, 0) + 1
            )
            if soonest is None or record.until < soonest.until:
                soonest = record

        if soonest is not None:
            stats.soonest_expiry = SoonestExpiry(
                provider=soonest.provider,
                remaining_ms=soonest.remaining_ms(now),
            )
        return stats


# Module-level helpers operating on an agent directory


def mark_provider_cooldown(
    provider: str,
    reason: FailureReason | str,
    agent_dir: str | Path | None = None,
    affected_profiles: list[str] | None = None,
    custom_duration_ms: int | None = None,
) -> CooldownRecord:
    """Mark ``provider`` as cooling down. See :meth:`ProviderCooldownTracker.mark`."""
    return ProviderCooldownTracker(agent_dir).mark(
        provider,
        reason,
        affected_profiles=affected_profiles,
        custom_duration_ms=custom_duration_ms,
    )


def is_provider_in_cooldown(provider: str, agent_dir: str | Path | None = None) -> CooldownStatus:
    """Check ``provider``. See :meth:`ProviderCooldownTracker.check`."""
    return ProviderCooldownTracker(agent_dir).check(provider)


def clear_provider_cooldown(provider: str, agent_dir: str | Path | None = None) -> bool:
    """Clear ``provider``'s cooldown. See :meth:`ProviderCooldownTracker.clear`."""
    return ProviderCooldownTracker(agent_dir).clear(provider)


def clear_expired_provider_cooldowns(agent_dir: str | Path | None = None) -> int:
    """Remove expired records. See :meth:`ProviderCooldownTracker.clear_expired`."""
    return ProviderCooldownTracker(agent_dir).clear_expired()


def get_provider_cooldown_stats(agent_dir: str | Path | None = None) -> CooldownStats:
    """Summarize cooldowns. See :meth:`ProviderCooldownTracker.stats`."""
    return ProviderCooldownTracker(agent_dir).stats()
