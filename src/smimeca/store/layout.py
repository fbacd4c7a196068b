"""On-disk layout of a CA store and its initialiser.

::

    <store>/
        private/        0700  root_CA.key, <SERIAL>.key, <SERIAL>.p12
        certs/                root_CA.crt, <identifier>.crt, <identifier>.p12
                              (per-user copies, published after the ledger commit)
        newcerts/             <SERIAL>.pem   (every issued certificate)
        requests/             <SERIAL>.csr
        index.jsonl           ledger
        serial                serial counter (hex)
        .lock                 store lock
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from smimeca.ca.errors import AlreadyInitialized, StoreNotInitialized
from smimeca.logging import security_events
from smimeca.store.files import PRIVATE_DIR_MODE
from smimeca.store.lock import StoreLock
from smimeca.store.serial import write_counter

log = logging.getLogger(__name__)

ROOT_KEY_NAME = "root_CA.key"
ROOT_CERT_NAME = "root_CA.crt"


@dataclass(frozen=True)
class StoreLayout:
    """Paths of every area inside a CA store rooted at :attr:`root`."""

    root: Path

    # -- areas ---------------------------------------------------------------

    @property
    def private_dir(self) -> Path:
        return self.root / "private"

    @property
    def certs_dir(self) -> Path:
        return self.root / "certs"

    @property
    def newcerts_dir(self) -> Path:
        return self.root / "newcerts"

    @property
    def requests_dir(self) -> Path:
        return self.root / "requests"

    @property
    def ledger_path(self) -> Path:
        return self.root / "index.jsonl"

    @property
    def serial_path(self) -> Path:
        return self.root / "serial"

    @property
    def lock_path(self) -> Path:
        return self.root / ".lock"

    # -- artifacts -----------------------------------------------------------

    @property
    def root_key_path(self) -> Path:
        return self.private_dir / ROOT_KEY_NAME

    @property
    def root_cert_path(self) -> Path:
        return self.certs_dir / ROOT_CERT_NAME

    def key_path(self, serial: int) -> Path:
        return self.private_dir / f"{serial:X}.key"

    def staged_cert_path(self, serial: int) -> Path:
        return self.newcerts_dir / f"{serial:X}.pem"

    def staged_bundle_path(self, serial: int) -> Path:
        return self.private_dir / f"{serial:X}.p12"

    def request_path(self, serial: int) -> Path:
        return self.requests_dir / f"{serial:X}.csr"

    def user_cert_path(self, identifier: str) -> Path:
        return self.certs_dir / f"{identifier}.crt"

    def bundle_path(self, identifier: str) -> Path:
        return self.certs_dir / f"{identifier}.p12"

    @property
    def artifact_dirs(self) -> tuple[Path, ...]:
        return (
            self.private_dir,
            self.certs_dir,
            self.newcerts_dir,
            self.requests_dir,
        )

    # -- state ---------------------------------------------------------------

    def is_initialized(self) -> bool:
        return self.ledger_path.exists() and self.serial_path.exists()

    def require_initialized(self) -> None:
        if not self.is_initialized():
            msg = f"CA store at {self.root} is not initialised; run 'init' first"
            raise StoreNotInitialized(msg)

    def relative(self, path: Path) -> str:
        """Return *path* relative to the store root, for ledger records."""
        return str(path.relative_to(self.root))


def initialize_store(
    layout: StoreLayout,
    serial_start: int,
    lock_timeout: float,
) -> None:
    """Create the directory structure, empty ledger and serial counter.

    The private area is created and restricted to ``0700`` before
    anything else is written into the store.

    Raises
    ------
    AlreadyInitialized
        If the store already holds a ledger or a serial counter.

    """
    log.info("Initializing CA directory structure at %s", layout.root)
    layout.root.mkdir(parents=True, exist_ok=True)

    # Private area first: no window in which it is readable by others.
    layout.private_dir.mkdir(mode=PRIVATE_DIR_MODE, exist_ok=True)
    os.chmod(layout.private_dir, PRIVATE_DIR_MODE)

    with StoreLock(layout.lock_path, lock_timeout):
        if layout.ledger_path.exists() or layout.serial_path.exists():
            msg = f"CA store at {layout.root} is already initialised"
            raise AlreadyInitialized(msg)

        for directory in (layout.certs_dir, layout.newcerts_dir, layout.requests_dir):
            directory.mkdir(exist_ok=True)

        try:
            fd = os.open(layout.ledger_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            msg = f"CA store at {layout.root} is already initialised"
            raise AlreadyInitialized(msg) from None
        os.close(fd)
        write_counter(layout.serial_path, serial_start)

    security_events.store_initialized(str(layout.root), serial_start)
    log.info("CA directory structure initialized")
