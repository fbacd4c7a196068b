"""Store-wide exclusive lock.

A single ``fcntl.flock`` on ``<store>/.lock`` serialises every mutation
of the serial counter and the ledger across processes (and across
threads, since each acquisition opens its own file description).
Acquisition polls with a non-blocking attempt so the wait is bounded.
"""

from __future__ import annotations

import fcntl
import logging
import os
import time
from typing import TYPE_CHECKING, Self

from smimeca.ca.errors import LockTimeout

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType

log = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05


class StoreLock:
    """Context manager holding the exclusive store lock.

    Parameters
    ----------
    path:
        Lock file path; created owner-only if missing.
    timeout:
        Seconds to wait before raising :class:`LockTimeout`.

    """

    def __init__(
        self,
        path: Path,
        timeout: float,
        poll_interval: float = _POLL_INTERVAL,
    ) -> None:
        self._path = path
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        fd = os.open(self._path, os.O_RDWR | os.O_CREAT, 0o600)
        deadline = time.monotonic() + self._timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise LockTimeout(str(self._path), self._timeout) from None
                time.sleep(self._poll_interval)
            else:
                self._fd = fd
                log.debug("Acquired store lock %s", self._path)
                return

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
            log.debug("Released store lock %s", self._path)

    def __enter__(self) -> Self:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()
