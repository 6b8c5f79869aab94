"""
Multi-provider model fallback.

Tries a primary (provider, model) and then its fallbacks strictly one at
a time, skipping providers that are in global cooldown and putting every
provider that fails into cooldown before moving on. The first success is
returned together with the history of failed attempts.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Generic, TypeVar

from provider_failover.cooldown.tracker import ProviderCooldownTracker
from provider_failover.exceptions import (
    AllCandidatesFailedError,
    ExecutorUsageError,
    FallbackExhaustedError,
    NoCandidatesAvailableError,
)
from provider_failover.resilience.candidates import (
    CandidateLike,
    ModelCandidate,
    build_candidate_sequence,
)
from provider_failover.resilience.classifier import classify_failure
from provider_failover.types import CooldownStatus, FailureReason

logger = logging.getLogger(__name__)

T = TypeVar("T")

Classifier = Callable[[BaseException], FailureReason]


@dataclass
class AttemptRecord:
    """
    A candidate that was invoked and failed.

    Attributes:
        provider: Provider of the candidate.
        model: Model of the candidate.
        error: The failure message.
        reason: Classified failure reason.
        exception: The original exception.
    """

    provider: str
    model: str
    error: str
    reason: FailureReason = FailureReason.UNKNOWN
    exception: BaseException | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "provider": self.provider,
            "model": self.model,
            "error": self.error,
            "reason": self.reason.value,
        }


@dataclass
class SkippedCandidate:
    """A candidate that was not invoked because its provider was cooling down."""

    provider: str
    model: str
    reason: FailureReason | None = None
    remaining_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "provider": self.provider,
            "model": self.model,
            "reason": self.reason.value if self.reason else None,
            "remaining_ms": self.remaining_ms,
        }


@dataclass
class FallbackResult(Generic[T]):
    """
    Result of a successful fallback run.

    Attributes:
        provider: Provider that produced the result.
        model: Model that produced the result.
        result: The executor's return value.
        attempts: Failed attempts before the success, in trial order.
        skipped: Candidates skipped due to cooldown, in trial order.
        execution_time: Total execution time in seconds.

    Example:
        >>> result = run_with_model_fallback("groq", "llama3", run, [("openrouter", "deepseek")])
        >>> if result.used_fallback:
        ...     print(f"Served by {result.provider}/{result.model}")
    """

    provider: str
    model: str
    result: T
    attempts: list[AttemptRecord] = field(default_factory=list)
    skipped: list[SkippedCandidate] = field(default_factory=list)
    execution_time: float = 0.0
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "provider": self.provider,
            "model": self.model,
            "used_fallback": self.used_fallback,
            "attempts": [a.to_dict() for a in self.attempts],
            "skipped": [s.to_dict() for s in self.skipped],
            "execution_time": self.execution_time,
        }


class _FallbackRun:
    """Bookkeeping shared by the sync and async engines."""

    def __init__(self, classify: Classifier) -> None:
        self.classify = classify
        self.attempts: list[AttemptRecord] = []
        self.skipped: list[SkippedCandidate] = []
        self.started = time.monotonic()

    def skip(self, candidate: ModelCandidate, status: CooldownStatus) -> None:
        self.skipped.append(
            SkippedCandidate(
                provider=candidate.provider,
                model=candidate.model,
                reason=status.cooldown.reason if status.cooldown else None,
                remaining_ms=status.remaining_ms,
            )
        )
        logger.debug(
            f"Model fallback: skipping {candidate.key}, provider in cooldown "
            f"for {status.remaining_ms}ms"
        )

    def record_failure(self, candidate: ModelCandidate, exception: Exception) -> FailureReason:
        reason = self.classify(exception)
        self.attempts.append(
            AttemptRecord(
                provider=candidate.provider,
                model=candidate.model,
                error=str(exception) or type(exception).__name__,
                reason=reason,
                exception=exception,
            )
        )
        logger.warning(f"Model fallback: '{candidate.key}' failed ({reason.value}): {exception}")
        return reason

    def succeed(self, candidate: ModelCandidate, value: T, is_primary: bool) -> FallbackResult[T]:
        logger.debug(f"Model fallback: '{candidate.key}' succeeded")
        return FallbackResult(
            provider=candidate.provider,
            model=candidate.model,
            result=value,
            attempts=self.attempts,
            skipped=self.skipped,
            execution_time=time.monotonic() - self.started,
            used_fallback=not is_primary,
        )

    def exhausted(self) -> FallbackExhaustedError:
        if self.attempts:
            error: FallbackExhaustedError = AllCandidatesFailedError(self.attempts, self.skipped)
        else:
            error = NoCandidatesAvailableError(self.skipped)
        logger.error(f"Model fallback exhausted: {error.message}")
        return error


def _run_to_completion(awaitable: Awaitable[T]) -> T:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        pass
    else:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise ExecutorUsageError(
            "Coroutine executor called from a running event loop; "
            "use run_with_model_fallback_async instead"
        )

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(awaitable)
    finally:
        loop.close()


def _resolve_tracker(
    tracker: ProviderCooldownTracker | None,
    agent_dir: str | Path | None,
) -> ProviderCooldownTracker:
    if tracker is not None:
        return tracker
    return ProviderCooldownTracker(agent_dir)


def run_with_model_fallback(
    provider: str,
    model: str,
    run: Callable[[str, str], T],
    fallbacks: Iterable[CandidateLike] = (),
    *,
    agent_dir: str | Path | None = None,
    tracker: ProviderCooldownTracker | None = None,
    classify: Classifier = classify_failure,
) -> FallbackResult[T]:
    """
    Run ``run(provider, model)`` with multi-provider fallback.

    Args:
        provider: Primary provider.
        model: Primary model.
        run: Executor performing one provider call; raises on failure.
        fallbacks: Ordered fallback candidates (ModelCandidate or tuples).
        agent_dir: Agent directory of the cooldown store.
        tracker: Cooldown tracker to use instead of one for ``agent_dir``.
        classify: Maps an executor exception to a FailureReason.

    Returns:
        FallbackResult for the first candidate that succeeded.

    Raises:
        AllCandidatesFailedError: If every invoked candidate failed.
        NoCandidatesAvailableError: If every candidate was in cooldown.
        ExecutorUsageError: If ``run`` returns a coroutine while an event
            loop is already running in this thread.
        LockAcquisitionError: If a cooldown could not be recorded.
    """
    cooldowns = _resolve_tracker(tracker, agent_dir)
    state = _FallbackRun(classify)
    candidates = build_candidate_sequence((provider, model), fallbacks)

    for index, candidate in enumerate(candidates):
        status = cooldowns.check(candidate.provider)
        if status.in_cooldown:
            state.skip(candidate, status)
            continue

        try:
            value = run(candidate.provider, candidate.model)
            if inspect.isawaitable(value):
                value = _run_to_completion(value)
        except ExecutorUsageError:
            raise
        except Exception as e:
            reason = state.record_failure(candidate, e)
            cooldowns.mark(candidate.provider, reason)
            continue

        return state.succeed(candidate, value, is_primary=index == 0)

    raise state.exhausted()


async def run_with_model_fallback_async(
    provider: str,
    model: str,
    run: Callable[[str, str], Awaitable[T] | T],
    fallbacks: Iterable[CandidateLike] = (),
    *,
    agent_dir: str | Path | None = None,
    tracker: ProviderCooldownTracker | None = None,
    classify: Classifier = classify_failure,
) -> FallbackResult[T]:
    """
    Async variant of :func:`run_with_model_fallback`.

    Coroutine executors are awaited; sync executors and the file-backed
    cooldown calls run in the default thread pool so the event loop is
    never blocked on lock retries.
    """
    cooldowns = _resolve_tracker(tracker, agent_dir)
    state = _FallbackRun(classify)
    candidates = build_candidate_sequence((provider, model), fallbacks)
    loop = asyncio.get_running_loop()

    for index, candidate in enumerate(candidates):
        status = await loop.run_in_executor(None, cooldowns.check, candidate.provider)
        if status.in_cooldown:
            state.skip(candidate, status)
            continue

        try:
            if inspect.iscoroutinefunction(run):
                value = await run(candidate.provider, candidate.model)
            else:
                value = await loop.run_in_executor(
                    None, lambda c=candidate: run(c.provider, c.model)
                )
                if inspect.isawaitable(value):
                    value = await value
        except Exception as e:
            reason = state.record_failure(candidate, e)
            await loop.run_in_executor(None, cooldowns.mark, candidate.provider, reason)
            continue

        return state.succeed(candidate, value, is_primary=index == 0)

    raise state.exhausted()


class ModelFallback(Generic[T]):
    """
    A fixed primary/fallback chain of models with per-candidate statistics.

    Example:
        >>> fallback = ModelFallback(
        ...     ("groq", "llama3"),
        ...     [("github-copilot", "copilot"), ("openrouter", "deepseek")],
        ...     agent_dir="/tmp/agent",
        ... )
        >>> result = fallback.execute(call_provider)
        >>> fallback.get_model_stats()["groq/llama3"]["failures"]
        1
    """

    def __init__(
        self,
        primary: CandidateLike,
        fallbacks: Iterable[CandidateLike] = (),
        *,
        agent_dir: str | Path | None = None,
        tracker: ProviderCooldownTracker | None = None,
        classify: Classifier = classify_failure,
    ) -> None:
        self._candidates = build_candidate_sequence(primary, fallbacks)
        self._tracker = _resolve_tracker(tracker, agent_dir)
        self._classify = classify
        self._lock = threading.RLock()
        self._model_stats: dict[str, dict[str, int]] = {
            c.key: {"calls": 0, "successes": 0, "failures": 0, "skips": 0}
            for c in self._candidates
        }

    @property
    def candidates(self) -> list[ModelCandidate]:
        return list(self._candidates)

    def _fallbacks(self) -> list[ModelCandidate]:
        return self._candidates[1:]

    def execute(self, run: Callable[[str, str], T]) -> FallbackResult[T]:
        """Run the chain synchronously. See :func:`run_with_model_fallback`."""
        primary = self._candidates[0]
        try:
            result = run_with_model_fallback(
                primary.provider,
                primary.model,
                run,
                self._fallbacks(),
                tracker=self._tracker,
                classify=self._classify,
            )
        except FallbackExhaustedError as e:
            self._record(e.attempts, e.skipped, None)
            raise
        self._record(result.attempts, result.skipped, result)
        return result

    async def execute_async(
        self, run: Callable[[str, str], Awaitable[T] | T]
    ) -> FallbackResult[T]:
        """Run the chain asynchronously. See :func:`run_with_model_fallback_async`."""
        primary = self._candidates[0]
        try:
            result = await run_with_model_fallback_async(
                primary.provider,
                primary.model,
                run,
                self._fallbacks(),
                tracker=self._tracker,
                classify=self._classify,
            )
        except FallbackExhaustedError as e:
            self._record(e.attempts, e.skipped, None)
            raise
        self._record(result.attempts, result.skipped, result)
        return result

    def _record(
        self,
        attempts: list[AttemptRecord],
        skipped: list[SkippedCandidate],
        result: FallbackResult[Any] | None,
    ) -> None:
        with self._lock:
            for attempt in attempts:
                stats = self._model_stats[f"{attempt.provider}/{attempt.model}"]
                stats["calls"] += 1
                stats["failures"] += 1
            for skip in skipped:
                self._model_stats[f"{skip.provider}/{skip.model}"]["skips"] += 1
            if result is not None:
                stats = self._model_stats[f"{result.provider}/{result.model}"]
                stats["calls"] += 1
                stats["successes"] += 1

    def get_model_stats(self) -> dict[str, dict[str, int]]:
        """Get statistics for each candidate, keyed by ``provider/model``."""
        with self._lock:
            return {key: dict(stats) for key, stats in self._model_stats.items()}

    def __len__(self) -> int:
        return len(self._candidates)
