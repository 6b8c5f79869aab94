"""
Failure classification for provider calls.

Maps an arbitrary exception raised by an executor to one of the fixed
FailureReason categories. Executors that already know the reason raise
ProviderCallError; everything else is classified from the exception's
type, HTTP status (if it carries one) and message.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any

from provider_failover.types import FailureReason

_STATUS_ATTRS = ("status_code", "status", "http_status")

_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "ratelimit", "too many requests")
_BILLING_MARKERS = (
    "billing",
    "insufficient credit",
    "insufficient_quota",
    "quota",
    "payment required",
)
_AUTH_MARKERS = (
    "unauthorized",
    "forbidden",
    "invalid api key",
    "invalid_api_key",
    "authentication",
    "auth error",
)
_MODEL_NOT_FOUND_MARKERS = ("model not found", "model_not_found", "unknown model")
_FORMAT_MARKERS = (
    "invalid json",
    "malformed",
    "invalid format",
    "format error",
    "unexpected response format",
)
_TIMEOUT_MARKERS = ("timeout", "timed out", "deadline exceeded")

_MODEL_DOES_NOT_EXIST = re.compile(r"model\b.*\b(does not exist|not found)")
# A bare status code in the message, not part of an id like "req-4291".
_STATUS_IN_MESSAGE = re.compile(r"(?<![\w.-])(401|402|403|429)(?![\w.-])")


def _status_code(exception: BaseException) -> int | None:
    for attr in _STATUS_ATTRS:
        value = getattr(exception, attr, None)
        if isinstance(value, int):
            return value
    response: Any = getattr(exception, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _contains(text: str, markers: tuple[str, ...]) -> bool:
    return any(marker in text for marker in markers)


def classify_failure(exception: BaseException) -> FailureReason:
    """
    Classify an executor failure.

    Args:
        exception: The exception raised by the executor.

    Returns:
        The FailureReason category (UNKNOWN when nothing matches).

    Example:
        >>> classify_failure(Exception("429 Too Many Requests"))
        <FailureReason.RATE_LIMIT: 'rate_limit'>
        >>> classify_failure(TimeoutError())
        <FailureReason.TIMEOUT: 'timeout'>
    """
    reason = getattr(exception, "reason", None)
    if isinstance(reason, FailureReason):
        return reason

    if isinstance(exception, (TimeoutError, asyncio.TimeoutError)):
        return FailureReason.TIMEOUT
    if isinstance(exception, json.JSONDecodeError):
        return FailureReason.FORMAT

    exception_type = type(exception).__name__.lower()
    exception_msg = str(exception).lower()

    if "timeout" in exception_type or _contains(exception_msg, _TIMEOUT_MARKERS):
        return FailureReason.TIMEOUT

    status = _status_code(exception)
    if status is None:
        match = _STATUS_IN_MESSAGE.search(exception_msg)
        status = int(match.group(1)) if match else None

    if status == 429 or "ratelimit" in exception_type:
        return FailureReason.RATE_LIMIT
    if status == 402:
        return FailureReason.BILLING
    if status in (401, 403) or "authentication" in exception_type:
        return FailureReason.AUTH
    if status == 404 and "model" in exception_msg:
        return FailureReason.MODEL_NOT_FOUND
    if status in (408, 504):
        return FailureReason.TIMEOUT

    if _contains(exception_msg, _RATE_LIMIT_MARKERS):
        return FailureReason.RATE_LIMIT
    if _contains(exception_msg, _BILLING_MARKERS):
        return FailureReason.BILLING
    if _contains(exception_msg, _AUTH_MARKERS):
        return FailureReason.AUTH
    if _contains(exception_msg, _MODEL_NOT_FOUND_MARKERS) or _MODEL_DOES_NOT_EXIST.search(
        exception_msg
    ):
        return FailureReason.MODEL_NOT_FOUND
    if _contains(exception_msg, _FORMAT_MARKERS):
        return FailureReason.FORMAT

    return FailureReason.UNKNOWN
