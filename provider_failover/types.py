"""
Core types for provider-failover.

This module defines the data model shared by the cooldown store and the
fallback engine: the closed set of failure reasons, the persisted cooldown
document, and the result types returned by cooldown queries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

COOLDOWN_STORE_VERSION = 1


class FailureReason(str, Enum):
    """
    Classified reasons a provider call can fail.

    Any value outside the enumeration maps to UNKNOWN:

        >>> FailureReason("overloaded")
        <FailureReason.UNKNOWN: 'unknown'>
    """

    BILLING = "billing"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    TIMEOUT = "timeout"
    FORMAT = "format"
    MODEL_NOT_FOUND = "model_not_found"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> FailureReason:
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.UNKNOWN


class CooldownRecord(BaseModel):
    """
    Cooldown state for a single provider.

    Serialized with camelCase keys so the document stays compatible with
    other tools reading the same agent directory.

    Attributes:
        provider: Provider identifier, unique within the store.
        until: Epoch milliseconds at which the cooldown lifts.
        reason: Reason for the most recent failure.
        attempt_count: Consecutive failures since the record was last cleared.
        last_error: Reason string of the most recent failure.
        affected_profiles: Credential profiles implicated by the failure.
    """

    model_config = ConfigDict(populate_by_name=True)

    provider: str
    until: int
    reason: FailureReason
    attempt_count: int = Field(default=1, alias="attemptCount")
    last_error: str | None = Field(default=None, alias="lastError")
    affected_profiles: list[str] | None = Field(default=None, alias="affectedProfiles")

    @field_validator("reason", mode="before")
    @classmethod
    def _coerce_reason(cls, value: Any) -> FailureReason:
        return FailureReason(value)

    def remaining_ms(self, now_ms: int) -> int:
        """Milliseconds left before expiry (0 once expired)."""
        return max(0, self.until - now_ms)

    def is_active(self, now_ms: int) -> bool:
        """Check whether the cooldown is still in effect at ``now_ms``."""
        return self.until > now_ms


class CooldownStoreDocument(BaseModel):
    """The persisted cooldown document: ``{version, cooldowns}``."""

    version: int = COOLDOWN_STORE_VERSION
    cooldowns: dict[str, CooldownRecord] = Field(default_factory=dict)

    @classmethod
    def empty(cls) -> CooldownStoreDocument:
        """Create a fresh, empty document at the current schema version."""
        return cls(version=COOLDOWN_STORE_VERSION, cooldowns={})

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


@dataclass
class CooldownStatus:
    """
    Result of checking whether a provider is cooling down.

    Attributes:
        in_cooldown: Whether the provider is currently ineligible.
        cooldown: The active record (only when in cooldown).
        remaining_ms: Milliseconds until the cooldown lifts (only when in cooldown).
    """

    in_cooldown: bool
    cooldown: CooldownRecord | None = None
    remaining_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "in_cooldown": self.in_cooldown,
            "cooldown": (
                self.cooldown.model_dump(by_alias=True, exclude_none=True, mode="json")
                if self.cooldown
                else None
            ),
            "remaining_ms": self.remaining_ms,
        }


@dataclass
class SoonestExpiry:
    """The active cooldown that lifts first."""

    provider: str
    remaining_ms: int


@dataclass
class CooldownStats:
    """
    Aggregate view of the cooldown store.

    Attributes:
        total_providers: Records in the store, expired or not.
        active_cooldowns: Records that have not yet expired.
        cooldowns_by_reason: Active records tallied per reason.
        soonest_expiry: The active record expiring first, if any.
    """

    total_providers: int = 0
    active_cooldowns: int = 0
    cooldowns_by_reason: dict[FailureReason, int] = field(default_factory=dict)
    soonest_expiry: SoonestExpiry | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_providers": self.total_providers,
            "active_cooldowns": self.active_cooldowns,
            "cooldowns_by_reason": {
                reason.value: count for reason, count in self.cooldowns_by_reason.items()
            },
            "soonest_expiry": (
                {
                    "provider": self.soonest_expiry.provider,
                    "remaining_ms": self.soonest_expiry.remaining_ms,
                }
                if self.soonest_expiry
                else None
            ),
        }
