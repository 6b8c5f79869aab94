"""
Resilience components for provider-failover.

This module provides the fallback side of provider failover:
- Classification of executor failures into cooldown reasons
- Candidate ordering and deduplication
- Fallback execution that skips and cools down failing providers

Example:
    >>> from provider_failover.resilience import run_with_model_fallback
    >>>
    >>> result = run_with_model_fallback(
    ...     "groq",
    ...     "llama3",
    ...     call_provider,
    ...     [("github-copilot", "copilot"), ("openrouter", "deepseek")],
    ...     agent_dir="/tmp/agent",
    ... )
    >>> result.provider, len(result.attempts)
    ('openrouter', 2)
"""

from provider_failover.resilience.candidates import (
    FallbackProvider,
    ModelCandidate,
    build_candidate_sequence,
    parse_model_ref,
    parse_model_refs,
    resolve_fallback_candidates,
)
from provider_failover.resilience.classifier import classify_failure
from provider_failover.resilience.fallback import (
    AttemptRecord,
    FallbackResult,
    ModelFallback,
    SkippedCandidate,
    run_with_model_fallback,
    run_with_model_fallback_async,
)

__all__ = [
    # Candidates
    "ModelCandidate",
    "FallbackProvider",
    "build_candidate_sequence",
    "resolve_fallback_candidates",
    "parse_model_ref",
    "parse_model_refs",
    # Classification
    "classify_failure",
    # Fallback
    "AttemptRecord",
    "SkippedCandidate",
    "FallbackResult",
    "ModelFallback",
    "run_with_model_fallback",
    "run_with_model_fallback_async",
]
