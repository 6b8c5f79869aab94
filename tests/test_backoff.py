"""
Tests for cooldown backoff calculation.

Tests cover:
- Exact rate limit progression
- Ceiling on attempt count and duration
- Normalization of attempt counts and reasons
"""

import pytest

from provider_failover.cooldown.backoff import (
    BASE_COOLDOWN_MS,
    MAX_COOLDOWN_MS,
    calculate_cooldown_ms,
)
from provider_failover.types import FailureReason


class TestCalculateCooldown:
    """Tests for calculate_cooldown_ms."""

    def test_rate_limit_progression(self):
        """Test rate limit durations double up to the one hour cap."""
        expected = [60_000, 120_000, 240_000, 480_000, 960_000, 1_920_000, 3_600_000]
        actual = [calculate_cooldown_ms(FailureReason.RATE_LIMIT, n) for n in range(1, 8)]
        assert actual == expected

    @pytest.mark.parametrize("reason", list(FailureReason))
    def test_monotonic_and_capped(self, reason):
        """Test durations never decrease and never exceed one hour."""
        durations = [calculate_cooldown_ms(reason, n) for n in range(1, 8)]
        assert durations == sorted(durations)
        assert all(d <= MAX_COOLDOWN_MS for d in durations)

    @pytest.mark.parametrize("reason", list(FailureReason))
    def test_ceiling_after_seventh_attempt(self, reason):
        """Test attempt counts beyond 7 stop growing."""
        ceiling = calculate_cooldown_ms(reason, 7)
        for n in (8, 9, 20, 1000):
            assert calculate_cooldown_ms(reason, n) == ceiling

    def test_multiplier_capped_at_64(self):
        """Test short bases stop at 64x rather than reaching the hour cap."""
        assert calculate_cooldown_ms(FailureReason.FORMAT, 7) == 640_000
        assert calculate_cooldown_ms(FailureReason.FORMAT, 50) == 640_000
        assert calculate_cooldown_ms(FailureReason.TIMEOUT, 7) == 1_920_000

    def test_long_bases_hit_hour_cap(self):
        """Test minute-scale bases are clamped to one hour."""
        assert calculate_cooldown_ms(FailureReason.BILLING, 4) == 2_400_000
        assert calculate_cooldown_ms(FailureReason.BILLING, 5) == MAX_COOLDOWN_MS

    @pytest.mark.parametrize("attempt_count", [0, -3, None])
    def test_non_positive_attempts_are_first_offense(self, attempt_count):
        """Test missing or non-positive counts are treated as 1."""
        assert calculate_cooldown_ms(FailureReason.AUTH, attempt_count) == 300_000

    def test_base_durations(self):
        """Test each reason uses its own base on the first attempt."""
        for reason, base in BASE_COOLDOWN_MS.items():
            assert calculate_cooldown_ms(reason, 1) == base
        assert set(BASE_COOLDOWN_MS) == set(FailureReason)

    def test_string_reasons(self):
        """Test plain strings are accepted."""
        assert calculate_cooldown_ms("timeout", 1) == 30_000
        assert calculate_cooldown_ms("model_not_found", 1) == 300_000

    @pytest.mark.parametrize("reason", ["overloaded", "", None])
    def test_unknown_reason_uses_default(self, reason):
        """Test unrecognised reasons fall back to the unknown base."""
        assert calculate_cooldown_ms(reason, 1) == 60_000
        assert calculate_cooldown_ms(reason, 2) == 120_000


class TestFailureReason:
    """Tests for the FailureReason enumeration."""

    def test_closed_enumeration(self):
        """Test the seven reason values."""
        assert {r.value for r in FailureReason} == {
            "billing",
            "rate_limit",
            "auth",
            "timeout",
            "format",
            "model_not_found",
            "unknown",
        }

    def test_unknown_values_map_to_unknown(self):
        """Test out-of-enumeration values do not raise."""
        assert FailureReason("overloaded") is FailureReason.UNKNOWN
        assert FailureReason(None) is FailureReason.UNKNOWN

    def test_case_insensitive_lookup(self):
        """Test values are matched case-insensitively."""
        assert FailureReason("Rate_Limit") is FailureReason.RATE_LIMIT
