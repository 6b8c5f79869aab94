"""
Cross-process file locking for the cooldown store.

Several agent processes may share one cooldown document, so mutations are
serialized through a lock file next to it (``<path>.lock``). Acquisition
uses non-blocking attempts with exponential backoff and jitter; a lock file
older than the stale threshold is presumed abandoned by a crashed holder
and is reclaimed. Reclaimers take turns through a second guard file
(``<path>.lock.reclaim``) so two waiters never both remove a lock.
"""

from __future__ import annotations

import contextlib
import logging
import random
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

from filelock import SoftFileLock, Timeout

from provider_failover.exceptions import LockAcquisitionError

logger = logging.getLogger(__name__)
logging.getLogger("filelock").setLevel(logging.INFO)

LOCK_SUFFIX = ".lock"
RECLAIM_SUFFIX = ".reclaim"


@dataclass(frozen=True)
class FileLockPolicy:
    """
    Retry and staleness policy for acquiring the store lock.

    Attributes:
        retries: Retries after the first failed attempt.
        factor: Multiplier applied to the delay after each retry.
        min_timeout: Delay before the first retry, in seconds.
        max_timeout: Upper bound for any single delay, in seconds.
        randomize: Multiply each delay by a random factor in [1, 2).
        stale: Age in seconds after which a lock file is reclaimable.

    Example:
        >>> policy = FileLockPolicy(retries=3, min_timeout=0.01, randomize=False)
        >>> policy.calculate_delay(2)
        0.02
    """

    retries: int = 10
    factor: float = 2.0
    min_timeout: float = 0.1
    max_timeout: float = 5.0
    randomize: bool = True
    stale: float = 30.0

    def __post_init__(self) -> None:
        """Validate policy parameters."""
        if self.retries < 0:
            raise ValueError("retries must be non-negative")
        if self.factor < 1:
            raise ValueError("factor must be >= 1")
        if self.min_timeout < 0:
            raise ValueError("min_timeout must be non-negative")
        if self.max_timeout < self.min_timeout:
            raise ValueError("max_timeout must be >= min_timeout")
        if self.stale <= 0:
            raise ValueError("stale must be positive")

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate the delay before retry number ``attempt``.

        Args:
            attempt: The retry number (1-indexed).

        Returns:
            Delay in seconds, capped at ``max_timeout``.
        """
        delay = self.min_timeout * (self.factor ** (attempt - 1))
        if self.randomize:
            delay *= 1 + random.random()
        return min(delay, self.max_timeout)


DEFAULT_LOCK_POLICY = FileLockPolicy()


def lock_path_for(path: Path) -> Path:
    """Return the lock file path guarding ``path``."""
    return path.with_name(path.name + LOCK_SUFFIX)


def _lock_age(lock_path: Path) -> float | None:
    try:
        return time.time() - lock_path.stat().st_mtime
    except FileNotFoundError:
        return None


def _reclaim_stale(lock_path: Path, stale: float) -> bool:
    """
    Remove a stale lock file, serialized against other reclaimers.

    Waiters that saw the same stale lock take turns through a guard lock
    and re-check the age inside it, so a fresh lock taken by the first
    reclaimer is never removed by the second.

    Returns:
        True if the lock file is gone and acquisition should be retried
        at once. False if the lock is live or another waiter holds the
        guard.
    """
    guard_path = lock_path.with_name(lock_path.name + RECLAIM_SUFFIX)
    guard = SoftFileLock(str(guard_path))
    try:
        guard.acquire(timeout=0)
    except Timeout:
        guard_age = _lock_age(guard_path)
        if guard_age is not None and guard_age > stale:
            logger.warning(f"Removing abandoned reclaim guard {guard_path}")
            guard_path.unlink(missing_ok=True)
        return False

    try:
        age = _lock_age(lock_path)
        if age is None:
            return True
        if age <= stale:
            return False
        logger.warning(f"Reclaiming stale lock {lock_path} (age {age:.1f}s)")
        lock_path.unlink(missing_ok=True)
        return True
    finally:
        guard.release()


@contextlib.contextmanager
def locked_path(
    path: Path,
    policy: FileLockPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[Path]:
    """
    Hold the exclusive cross-process lock for ``path``.

    Args:
        path: The file being protected (the lock lives at ``<path>.lock``).
        policy: Retry policy. Defaults to DEFAULT_LOCK_POLICY.
        sleep: Sleep function used between attempts.

    Yields:
        The lock file path.

    Raises:
        LockAcquisitionError: If the lock is still held after every retry.

    Example:
        >>> with locked_path(Path("/tmp/agent/provider-cooldowns.json")):
        ...     ...  # load, mutate, save
    """
    effective_policy = policy or DEFAULT_LOCK_POLICY
    lock_path = lock_path_for(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = SoftFileLock(str(lock_path))

    attempt = 1
    while True:
        try:
            lock.acquire(timeout=0)
            break
        except Timeout:
            # Reclaiming a stale lock does not use up an attempt.
            age = _lock_age(lock_path)
            if age is not None and age > effective_policy.stale:
                if _reclaim_stale(lock_path, effective_policy.stale):
                    continue
            if attempt >= effective_policy.max_attempts:
                raise LockAcquisitionError(str(lock_path), attempt) from None
            delay = effective_policy.calculate_delay(attempt)
            logger.debug(
                f"Lock {lock_path} busy (attempt {attempt}/"
                f"{effective_policy.max_attempts}), retrying in {delay:.2f}s"
            )
            sleep(delay)
            attempt += 1

    try:
        yield lock_path
    finally:
        lock.release()
