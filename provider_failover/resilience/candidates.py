"""
Fallback candidate resolution.

The fallback engine only accepts structured (provider, model) pairs. This
module builds those sequences: deduplicating, ordering configured
fallback providers by priority, and normalizing ``"provider/model"``
strings coming from configuration.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

DEFAULT_PRIORITY = 999


@dataclass(frozen=True)
class ModelCandidate:
    """
    A (provider, model) pair eligible for a fallback attempt.

    Attributes:
        provider: Provider identifier (e.g. "groq").
        model: Model identifier within that provider.
    """

    provider: str
    model: str

    @property
    def key(self) -> str:
        return f"{self.provider}/{self.model}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class FallbackProvider:
    """
    A configured fallback provider.

    Attributes:
        provider: Provider identifier.
        model: Model to use; None means reuse the primary model.
        priority: Lower values are tried first; None sorts last.
    """

    provider: str
    model: str | None = None
    priority: int | None = None


CandidateLike = ModelCandidate | tuple[str, str]


def as_candidate(value: CandidateLike) -> ModelCandidate:
    """Coerce a (provider, model) tuple into a ModelCandidate."""
    if isinstance(value, ModelCandidate):
        return value
    provider, model = value
    return ModelCandidate(provider=provider, model=model)


def build_candidate_sequence(
    primary: CandidateLike,
    fallbacks: Iterable[CandidateLike] = (),
) -> list[ModelCandidate]:
    """
    Order candidates for a fallback run.

    The primary comes first, then fallbacks in the given order. Repeated
    (provider, model) pairs keep only their first occurrence.

    Example:
        >>> build_candidate_sequence(("groq", "llama3"), [("groq", "llama3"), ("openrouter", "deepseek")])
        [ModelCandidate(provider='groq', model='llama3'), ModelCandidate(provider='openrouter', model='deepseek')]
    """
    candidates: list[ModelCandidate] = []
    seen: set[tuple[str, str]] = set()
    for value in (primary, *fallbacks):
        candidate = as_candidate(value)
        pair = (candidate.provider, candidate.model)
        if pair in seen:
            continue
        seen.add(pair)
        candidates.append(candidate)
    return candidates


def resolve_fallback_candidates(
    primary_provider: str,
    primary_model: str,
    fallback_providers: Sequence[FallbackProvider] | None = None,
    global_fallbacks: Sequence[str | FallbackProvider] | None = None,
) -> list[ModelCandidate]:
    """
    Resolve multi-provider fallback candidates from configuration.

    Args:
        primary_provider: The primary provider.
        primary_model: The primary model, also the default model for
            fallbacks that do not name one.
        fallback_providers: Agent-specific fallbacks, sorted by priority
            (stable for equal priorities).
        global_fallbacks: Fallbacks appended after the agent-specific ones;
            plain strings are provider names.

    Returns:
        Deduplicated candidate list, primary first.
    """
    ordered = sorted(
        fallback_providers or (),
        key=lambda fb: fb.priority if fb.priority is not None else DEFAULT_PRIORITY,
    )
    fallbacks = [ModelCandidate(fb.provider, fb.model or primary_model) for fb in ordered]

    for entry in global_fallbacks or ():
        if isinstance(entry, str):
            fallbacks.append(ModelCandidate(entry, primary_model))
        else:
            fallbacks.append(ModelCandidate(entry.provider, entry.model or primary_model))

    return build_candidate_sequence(ModelCandidate(primary_provider, primary_model), fallbacks)


def normalize_provider_id(provider: str) -> str:
    return provider.strip().lower()


def parse_model_ref(raw: str, default_provider: str) -> ModelCandidate | None:
    """
    Parse a ``"provider/model"`` reference.

    Only the first slash separates provider from model, so model ids that
    themselves contain slashes are kept intact. A bare model id uses
    ``default_provider``.

    Example:
        >>> parse_model_ref("OpenRouter/anthropic/claude-sonnet", "groq")
        ModelCandidate(provider='openrouter', model='anthropic/claude-sonnet')
        >>> parse_model_ref("llama3", "groq")
        ModelCandidate(provider='groq', model='llama3')
    """
    trimmed = raw.strip()
    if not trimmed:
        return None

    provider, sep, model = trimmed.partition("/")
    if not sep:
        return ModelCandidate(normalize_provider_id(default_provider), trimmed)

    provider = provider.strip()
    model = model.strip()
    if not provider or not model:
        return None
    return ModelCandidate(normalize_provider_id(provider), model)


def parse_model_refs(raw_refs: Iterable[str], default_provider: str) -> list[ModelCandidate]:
    """Parse several references, dropping the ones that are empty or malformed."""
    parsed = (parse_model_ref(raw, default_provider) for raw in raw_refs)
    return [candidate for candidate in parsed if candidate is not None]
