"""
Tests for cross-process store locking.

Tests cover:
- FileLockPolicy validation and delay calculation
- Lock acquisition, retry and release
- Stale lock reclamation
"""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path

import pytest
from filelock import SoftFileLock, Timeout

from provider_failover.exceptions import LockAcquisitionError
from provider_failover.locking import (
    RECLAIM_SUFFIX,
    FileLockPolicy,
    _reclaim_stale,
    lock_path_for,
    locked_path,
)


class TestFileLockPolicy:
    """Tests for FileLockPolicy."""

    def test_default_policy(self):
        """Test default policy values."""
        policy = FileLockPolicy()
        assert policy.retries == 10
        assert policy.factor == 2.0
        assert policy.min_timeout == 0.1
        assert policy.max_timeout == 5.0
        assert policy.randomize is True
        assert policy.stale == 30.0
        assert policy.max_attempts == 11

    def test_invalid_retries(self):
        """Test validation of retries."""
        with pytest.raises(ValueError, match="retries must be non-negative"):
            FileLockPolicy(retries=-1)

    def test_invalid_factor(self):
        """Test validation of factor."""
        with pytest.raises(ValueError, match="factor must be >= 1"):
            FileLockPolicy(factor=0.5)

    def test_invalid_max_timeout(self):
        """Test validation of max_timeout."""
        with pytest.raises(ValueError, match="max_timeout must be >= min_timeout"):
            FileLockPolicy(min_timeout=2.0, max_timeout=1.0)

    def test_invalid_stale(self):
        """Test validation of stale."""
        with pytest.raises(ValueError, match="stale must be positive"):
            FileLockPolicy(stale=0)

    def test_calculate_delay_exponential(self):
        """Test exponential delay calculation without jitter."""
        policy = FileLockPolicy(min_timeout=0.1, factor=2.0, randomize=False)

        assert policy.calculate_delay(1) == pytest.approx(0.1)
        assert policy.calculate_delay(2) == pytest.approx(0.2)
        assert policy.calculate_delay(3) == pytest.approx(0.4)

    def test_calculate_delay_capped(self):
        """Test delay is capped at max_timeout."""
        policy = FileLockPolicy(min_timeout=0.1, max_timeout=5.0, randomize=False)
        assert policy.calculate_delay(10) == 5.0

    def test_calculate_delay_with_jitter(self):
        """Test jitter keeps delays within [base, 2 * base)."""
        policy = FileLockPolicy(min_timeout=0.1, max_timeout=5.0)

        delays = [policy.calculate_delay(2) for _ in range(100)]

        assert all(0.2 <= d < 0.4 for d in delays)
        assert len(set(delays)) > 1
        assert all(policy.calculate_delay(12) <= 5.0 for _ in range(20))


class TestLockedPath:
    """Tests for the locked_path context manager."""

    def test_creates_and_removes_lock_file(self, tmp_path: Path, fast_lock_policy):
        """Test the lock file exists only while held."""
        target = tmp_path / "store.json"
        with locked_path(target, fast_lock_policy) as lock_path:
            assert lock_path == lock_path_for(target)
            assert lock_path.exists()
        assert not lock_path.exists()

    def test_retries_with_backoff_then_fails(self, tmp_path: Path):
        """Test a held lock is retried with growing delays, then fails."""
        target = tmp_path / "store.json"
        lock_path_for(target).write_text("", encoding="utf-8")
        policy = FileLockPolicy(retries=3, min_timeout=0.01, max_timeout=1.0, randomize=False)
        delays: list[float] = []

        with pytest.raises(LockAcquisitionError) as exc_info:
            with locked_path(target, policy, sleep=delays.append):
                pass

        assert delays == pytest.approx([0.01, 0.02, 0.04])
        assert exc_info.value.attempts == 4
        assert exc_info.value.lock_path == str(lock_path_for(target))

    def test_acquires_once_holder_releases(self, tmp_path: Path):
        """Test a lock released during the retry window is acquired."""
        target = tmp_path / "store.json"
        lock_path = lock_path_for(target)
        lock_path.write_text("", encoding="utf-8")
        policy = FileLockPolicy(retries=5, min_timeout=0.01, randomize=False)

        def release(_delay: float) -> None:
            lock_path.unlink(missing_ok=True)

        with locked_path(target, policy, sleep=release):
            entered = True
        assert entered

    def test_reclaims_stale_lock(self, tmp_path: Path):
        """Test a lock older than the stale threshold is reclaimed."""
        target = tmp_path / "store.json"
        lock_path = lock_path_for(target)
        lock_path.write_text("", encoding="utf-8")
        old = time.time() - 120
        os.utime(lock_path, (old, old))
        policy = FileLockPolicy(retries=0, stale=30.0)

        with locked_path(target, policy):
            assert lock_path.exists()
        assert not lock_path.exists()

    def test_fresh_lock_not_reclaimed(self, tmp_path: Path):
        """Test a recent lock file is respected."""
        target = tmp_path / "store.json"
        lock_path_for(target).write_text("", encoding="utf-8")

        with pytest.raises(LockAcquisitionError):
            with locked_path(target, FileLockPolicy(retries=0, stale=30.0)):
                pass

    def test_serializes_threads(self, tmp_path: Path):
        """Test concurrent holders never overlap."""
        target = tmp_path / "store.json"
        policy = FileLockPolicy(retries=200, min_timeout=0.001, max_timeout=0.01)
        active = 0
        overlaps = 0
        guard = threading.Lock()

        def worker() -> None:
            nonlocal active, overlaps
            with locked_path(target, policy):
                with guard:
                    active += 1
                    if active > 1:
                        overlaps += 1
                time.sleep(0.002)
                with guard:
                    active -= 1

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == 0


class TestStaleReclaim:
    """Tests for reclaiming a lock abandoned by a crashed holder."""

    def _stale_lock(self, tmp_path: Path) -> Path:
        lock_path = lock_path_for(tmp_path / "store.json")
        lock_path.write_text("", encoding="utf-8")
        old = time.time() - 120
        os.utime(lock_path, (old, old))
        return lock_path

    def test_second_reclaimer_keeps_fresh_lock(self, tmp_path: Path):
        """Test two waiters that both saw a stale lock cannot both hold it."""
        lock_path = self._stale_lock(tmp_path)

        # First waiter reclaims and takes a fresh lock.
        assert _reclaim_stale(lock_path, stale=30.0) is True
        first = SoftFileLock(str(lock_path))
        first.acquire(timeout=0)
        try:
            # Second waiter decided the lock was stale before the first acted.
            assert _reclaim_stale(lock_path, stale=30.0) is False
            assert lock_path.exists()

            second = SoftFileLock(str(lock_path))
            with pytest.raises(Timeout):
                second.acquire(timeout=0)
        finally:
            first.release()

    def test_busy_guard_leaves_lock_alone(self, tmp_path: Path):
        """Test a waiter backs off while another is reclaiming."""
        lock_path = self._stale_lock(tmp_path)
        guard = SoftFileLock(str(lock_path.with_name(lock_path.name + RECLAIM_SUFFIX)))
        guard.acquire(timeout=0)
        try:
            assert _reclaim_stale(lock_path, stale=30.0) is False
            assert lock_path.exists()
        finally:
            guard.release()

    def test_vanished_lock_retries_at_once(self, tmp_path: Path):
        """Test a lock already removed by another waiter is retried immediately."""
        lock_path = lock_path_for(tmp_path / "store.json")
        assert _reclaim_stale(lock_path, stale=30.0) is True

    def test_abandoned_guard_is_removed(self, tmp_path: Path):
        """Test a guard left behind by a crashed reclaimer does not block forever."""
        lock_path = self._stale_lock(tmp_path)
        guard_path = lock_path.with_name(lock_path.name + RECLAIM_SUFFIX)
        guard_path.write_text("", encoding="utf-8")
        old = time.time() - 120
        os.utime(guard_path, (old, old))

        assert _reclaim_stale(lock_path, stale=30.0) is False
        assert not guard_path.exists()
        assert _reclaim_stale(lock_path, stale=30.0) is True
        assert not lock_path.exists()

    def test_racing_reclaimers_serialize(self, tmp_path: Path):
        """Test threads racing on a stale lock never overlap inside it."""
        target = tmp_path / "store.json"
        self._stale_lock(tmp_path)
        policy = FileLockPolicy(retries=200, min_timeout=0.001, max_timeout=0.01)
        active = 0
        overlaps = 0
        guard = threading.Lock()
        start = threading.Barrier(6)

        def worker() -> None:
            nonlocal active, overlaps
            start.wait()
            with locked_path(target, policy):
                with guard:
                    active += 1
                    if active > 1:
                        overlaps += 1
                time.sleep(0.002)
                with guard:
                    active -= 1

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == 0
