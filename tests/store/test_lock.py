"""Tests for smimeca.store.lock -- the store-wide flock."""

from __future__ import annotations

import threading
import time

import pytest

from smimeca.ca.errors import LockTimeout
from smimeca.store.lock import StoreLock


class TestStoreLock:
    def test_context_manager(self, tmp_path):
        lock = StoreLock(tmp_path / ".lock", timeout=1)
        with lock as held:
            assert held.held
        assert not lock.held

    def test_second_holder_times_out(self, tmp_path):
        path = tmp_path / ".lock"
        with StoreLock(path, timeout=1):
            with pytest.raises(LockTimeout) as exc_info:
                StoreLock(path, timeout=0.2, poll_interval=0.01).acquire()
        assert exc_info.value.retryable
        assert str(path) in exc_info.value.detail

    def test_waiter_acquires_after_release(self, tmp_path):
        path = tmp_path / ".lock"
        first = StoreLock(path, timeout=1)
        first.acquire()
        acquired = threading.Event()

        def wait_for_lock():
            with StoreLock(path, timeout=5, poll_interval=0.01):
                acquired.set()

        thread = threading.Thread(target=wait_for_lock)
        thread.start()
        time.sleep(0.1)
        assert not acquired.is_set()
        first.release()
        thread.join(timeout=5)
        assert acquired.is_set()

    def test_release_is_idempotent(self, tmp_path):
        lock = StoreLock(tmp_path / ".lock", timeout=1)
        lock.acquire()
        lock.release()
        lock.release()
        assert not lock.held

    def test_lock_released_on_exception(self, tmp_path):
        path = tmp_path / ".lock"
        with pytest.raises(RuntimeError):
            with StoreLock(path, timeout=1):
                raise RuntimeError("boom")
        with StoreLock(path, timeout=0.1):
            pass
