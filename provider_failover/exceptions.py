"""
Custom exceptions for provider-failover.

This module defines the exception hierarchy for the library. Classified
provider failures are recoverable (the next candidate is tried), while
lock acquisition and storage write failures are fatal for the operation
that raised them and must be surfaced to the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from provider_failover.resilience.fallback import AttemptRecord, SkippedCandidate
    from provider_failover.types import FailureReason


class FailoverError(Exception):
    """
    Base exception for all provider-failover errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the error.

    Example:
        >>> try:
        ...     run_with_model_fallback("groq", "llama3", run)
        ... except FailoverError as e:
        ...     logger.error(f"Failover error: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(FailoverError):
    """
    Raised when a configuration value is invalid.

    Attributes:
        config_key: The configuration key that has an issue.
        expected: What was expected for this configuration.
        received: What was actually provided.

    Example:
        >>> raise ConfigurationError(
        ...     config_key="PROVIDER_FAILOVER_LOCK_RETRIES",
        ...     expected="a non-negative integer",
        ...     received="ten",
        ... )
    """

    def __init__(
        self,
        config_key: str,
        expected: str | None = None,
        received: Any = None,
    ) -> None:
        self.config_key = config_key
        self.expected = expected
        self.received = received

        message = f"Configuration error for '{config_key}'"
        if expected:
            message += f": expected {expected}"
        if received is not None:
            message += f", got {received!r}"

        details = {
            "config_key": config_key,
            "expected": expected,
            "received": str(received) if received is not None else None,
        }
        super().__init__(message, details)


class CooldownStoreError(FailoverError):
    """Base class for errors raised by the cooldown store."""

    def __init__(self, message: str, path: str, details: dict[str, Any] | None = None) -> None:
        self.path = path
        super().__init__(message, {"path": path, **(details or {})})


class StoreWriteError(CooldownStoreError):
    """
    Raised when the cooldown document cannot be persisted.

    Read failures never raise (a missing or corrupt file is empty state),
    but a write failure inside a locked update is fatal for that update.
    """

    def __init__(self, path: str, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(
            f"Failed to write cooldown store '{path}': {cause}",
            path,
            {"cause": type(cause).__name__},
        )


class LockAcquisitionError(CooldownStoreError):
    """
    Raised when the cross-process store lock cannot be acquired.

    Attributes:
        lock_path: Path of the lock file.
        attempts: Number of acquisition attempts made.

    Example:
        >>> raise LockAcquisitionError(
        ...     lock_path="/home/me/.provider-failover/agent/provider-cooldowns.json.lock",
        ...     attempts=11,
        ... )
    """

    def __init__(self, lock_path: str, attempts: int) -> None:
        self.lock_path = lock_path
        self.attempts = attempts
        super().__init__(
            f"Could not acquire lock '{lock_path}' after {attempts} attempts",
            lock_path,
            {"attempts": attempts},
        )


class ProviderCallError(FailoverError):
    """
    Raised by an executor to signal an already-classified provider failure.

    Executors that know why a call failed (for example from an HTTP status)
    raise this so the failure classifier does not have to guess.

    Attributes:
        reason: The failure reason category.
        status_code: Optional HTTP status returned by the provider.

    Example:
        >>> raise ProviderCallError(
        ...     "Groq returned 429",
        ...     reason=FailureReason.RATE_LIMIT,
        ...     status_code=429,
        ... )
    """

    def __init__(
        self,
        message: str,
        reason: FailureReason | str,
        status_code: int | None = None,
    ) -> None:
        from provider_failover.types import FailureReason

        self.reason = FailureReason(reason)
        self.status_code = status_code
        super().__init__(
            message,
            {"reason": self.reason.value, "status_code": status_code},
        )

    def __str__(self) -> str:
        return self.message


class ExecutorUsageError(FailoverError, TypeError):
    """
    Raised when an executor cannot be driven by the engine it was given to.

    This is a caller error, not a provider failure: no provider was
    contacted, so no cooldown is recorded.

    Example:
        >>> async def call_provider(provider, model): ...
        >>> async def handler():
        ...     run_with_model_fallback("groq", "llama3", call_provider)
        ExecutorUsageError: Coroutine executor called from a running event loop ...
    """


class FallbackExhaustedError(FailoverError):
    """
    Raised when no fallback candidate produced a result.

    This is a normal terminal outcome rather than a crash: it carries the
    full attempt history so the caller can decide how to escalate.

    Attributes:
        attempts: Candidates that were invoked and failed, in trial order.
        skipped: Candidates skipped because their provider was cooling down.
    """

    def __init__(
        self,
        message: str,
        attempts: list[AttemptRecord],
        skipped: list[SkippedCandidate],
    ) -> None:
        self.attempts = attempts
        self.skipped = skipped
        details = {
            "attempts": [f"{a.provider}/{a.model}: {a.error}" for a in attempts],
            "skipped": [f"{s.provider}/{s.model}" for s in skipped],
        }
        super().__init__(message, details)


class AllCandidatesFailedError(FallbackExhaustedError):
    """Raised when at least one candidate was invoked and every invocation failed."""

    def __init__(
        self,
        attempts: list[AttemptRecord],
        skipped: list[SkippedCandidate],
    ) -> None:
        summary = " | ".join(f"{a.provider}/{a.model}: {a.error}" for a in attempts)
        super().__init__(
            f"All models failed ({len(attempts)}): {summary}",
            attempts,
            skipped,
        )


class NoCandidatesAvailableError(FallbackExhaustedError):
    """Raised when every candidate was skipped and nothing was invoked."""

    def __init__(self, skipped: list[SkippedCandidate]) -> None:
        if skipped:
            message = (
                f"No candidates available: all {len(skipped)} candidates "
                "are in provider cooldown"
            )
        else:
            message = "No candidates available: candidate list is empty"
        super().__init__(message, [], skipped)
