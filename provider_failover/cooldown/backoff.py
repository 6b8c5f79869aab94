"""
Backoff calculation for provider cooldowns.

Each failure reason has a base duration that doubles with every
consecutive failure. Growth stops at 64x the base and no cooldown ever
exceeds one hour, so a flapping provider converges to a stable ceiling.
"""

from __future__ import annotations

from provider_failover.types import FailureReason

MAX_COOLDOWN_MS = 3_600_000
MAX_MULTIPLIER = 64

BASE_COOLDOWN_MS: dict[FailureReason, int] = {
    FailureReason.BILLING: 300_000,
    FailureReason.RATE_LIMIT: 60_000,
    FailureReason.AUTH: 300_000,
    FailureReason.TIMEOUT: 30_000,
    FailureReason.FORMAT: 10_000,
    FailureReason.MODEL_NOT_FOUND: 300_000,
    FailureReason.UNKNOWN: 60_000,
}


def calculate_cooldown_ms(
    reason: FailureReason | str | None,
    attempt_count: int | None,
) -> int:
    """
    Calculate how long a provider should cool down.

    Args:
        reason: Why the provider failed. Unrecognised values use the
            ``unknown`` base duration.
        attempt_count: Consecutive failure count (1 = first offense).
            Missing or non-positive counts are treated as 1.

    Returns:
        Cooldown duration in milliseconds.

    Example:
        >>> calculate_cooldown_ms(FailureReason.RATE_LIMIT, 3)
        240000
        >>> calculate_cooldown_ms("rate_limit", 12)
        3600000
    """
    base_ms = BASE_COOLDOWN_MS[FailureReason(reason)]
    normalized = max(1, attempt_count or 1)

    # 2^(n-1), capped at 64x (reached on the 7th attempt)
    multiplier = min(2 ** min(normalized - 1, 6), MAX_MULTIPLIER)

    return min(base_ms * multiplier, MAX_COOLDOWN_MS)
