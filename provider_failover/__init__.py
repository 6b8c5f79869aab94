"""
provider-failover: survive LLM provider outages.

When a provider rejects a request (rate limit, billing, auth, timeout,
malformed response), provider-failover records a cooldown for that
provider in a file shared by every agent process, tries the configured
fallback provider/model pairs in order, and returns the first success
together with the history of failed attempts.

Basic Usage:
    >>> from provider_failover import run_with_model_fallback
    >>>
    >>> def call_provider(provider: str, model: str) -> str:
    ...     return clients[provider].complete(model=model, prompt="Hello")
    >>>
    >>> result = run_with_model_fallback(
    ...     "groq",
    ...     "llama3",
    ...     call_provider,
    ...     [("github-copilot", "copilot"), ("openrouter", "deepseek")],
    ... )
    >>> print(result.provider, result.result)
"""

__version__ = "0.1.0"

from provider_failover.config import FailoverConfig
from provider_failover.cooldown import (
    CooldownStoreFile,
    ProviderCooldownTracker,
    calculate_cooldown_ms,
    clear_expired_provider_cooldowns,
    clear_provider_cooldown,
    get_provider_cooldown_stats,
    is_provider_in_cooldown,
    mark_provider_cooldown,
)
from provider_failover.exceptions import (
    AllCandidatesFailedError,
    ConfigurationError,
    CooldownStoreError,
    ExecutorUsageError,
    FailoverError,
    FallbackExhaustedError,
    LockAcquisitionError,
    NoCandidatesAvailableError,
    ProviderCallError,
    StoreWriteError,
)
from provider_failover.locking import FileLockPolicy
from provider_failover.resilience import (
    AttemptRecord,
    FallbackProvider,
    FallbackResult,
    ModelCandidate,
    ModelFallback,
    SkippedCandidate,
    classify_failure,
    resolve_fallback_candidates,
    run_with_model_fallback,
    run_with_model_fallback_async,
)
from provider_failover.types import (
    CooldownRecord,
    CooldownStats,
    CooldownStatus,
    CooldownStoreDocument,
    FailureReason,
    SoonestExpiry,
)

__all__ = [
    "__version__",
    # Configuration
    "FailoverConfig",
    "FileLockPolicy",
    # Types
    "FailureReason",
    "CooldownRecord",
    "CooldownStoreDocument",
    "CooldownStatus",
    "CooldownStats",
    "SoonestExpiry",
    # Cooldowns
    "CooldownStoreFile",
    "ProviderCooldownTracker",
    "calculate_cooldown_ms",
    "mark_provider_cooldown",
    "is_provider_in_cooldown",
    "clear_provider_cooldown",
    "clear_expired_provider_cooldowns",
    "get_provider_cooldown_stats",
    # Fallback
    "ModelCandidate",
    "FallbackProvider",
    "AttemptRecord",
    "SkippedCandidate",
    "FallbackResult",
    "ModelFallback",
    "classify_failure",
    "resolve_fallback_candidates",
    "run_with_model_fallback",
    "run_with_model_fallback_async",
    # Exceptions
    "FailoverError",
    "ConfigurationError",
    "CooldownStoreError",
    "ExecutorUsageError",
    "StoreWriteError",
    "LockAcquisitionError",
    "ProviderCallError",
    "FallbackExhaustedError",
    "AllCandidatesFailedError",
    "NoCandidatesAvailableError",
]
