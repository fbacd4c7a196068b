"""Append-only certificate ledger.

One JSON object per line, one line per issued certificate.  Lines are
never rewritten or removed.  Writers hold the store lock; readers take
no lock and simply ignore a trailing line without a newline (a write
torn by a crash), which the next writer truncates before appending.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from smimeca.ca.errors import LedgerCorrupt, SerialCollision, StoreNotInitialized
from smimeca.core.types import CertificateProfile
from smimeca.models.ledger_entry import LedgerEntry

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

log = logging.getLogger(__name__)


class Ledger:
    """Read and append :class:`LedgerEntry` records at *path*."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    # -- reads ---------------------------------------------------------------

    def _read_lines(self) -> list[tuple[int, str]]:
        """Return ``(line_number, text)`` for every complete, non-blank line."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            msg = f"Ledger not found: {self._path}"
            raise StoreNotInitialized(msg) from None
        lines = raw.split("\n")
        # The final element is '' for a complete file, else a torn write.
        if lines[-1]:
            log.warning("Ignoring incomplete trailing ledger line in %s", self._path)
        return [
            (number, line)
            for number, line in enumerate(lines[:-1], start=1)
            if line.strip()
        ]

    def _parse(self, number: int, line: str) -> LedgerEntry:
        try:
            return LedgerEntry.from_record(json.loads(line))
        except (ValueError, KeyError, TypeError) as exc:
            msg = f"Ledger {self._path} is corrupt at line {number}: {exc!r}"
            raise LedgerCorrupt(msg) from exc

    def entries(self) -> list[LedgerEntry]:
        """Return every committed entry in commit order.

        Raises
        ------
        LedgerCorrupt
            If a complete line is not a valid ledger record.

        """
        return [self._parse(number, line) for number, line in self._read_lines()]

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self._read_lines())

    def contains_serial(self, serial: int) -> bool:
        return self.find_by_serial(serial) is not None

    def find_by_serial(self, serial: int) -> LedgerEntry | None:
        for entry in self.entries():
            if entry.serial_number == serial:
                return entry
        return None

    def find_root(self) -> LedgerEntry | None:
        for entry in self.entries():
            if entry.profile == CertificateProfile.ROOT:
                return entry
        return None

    def find_by_identifier(self, identifier: str) -> list[LedgerEntry]:
        return [
            e
            for e in self.entries()
            if e.profile == CertificateProfile.LEAF and e.identifier == identifier
        ]

    def latest_for_identifier(self, identifier: str) -> LedgerEntry | None:
        matches = self.find_by_identifier(identifier)
        return matches[-1] if matches else None

    # -- writes --------------------------------------------------------------

    def _repair_torn_tail(self) -> None:
        data = self._path.read_bytes()
        if not data or data.endswith(b"\n"):
            return
        keep = data.rfind(b"\n") + 1
        log.warning(
            "Truncating %d byte(s) of incomplete ledger line in %s",
            len(data) - keep,
            self._path,
        )
        with open(self._path, "r+b") as f:  # noqa: PTH123
            f.truncate(keep)
            f.flush()
            os.fsync(f.fileno())

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        """Commit *entry*.  Caller must hold the store lock.

        Raises
        ------
        SerialCollision
            If the serial is already recorded.

        """
        if not self._path.exists():
            msg = f"Ledger not found: {self._path}"
            raise StoreNotInitialized(msg)
        self._repair_torn_tail()
        if self.contains_serial(entry.serial_number):
            raise SerialCollision(entry.serial_number)

        if entry.recorded_at is None:
            entry = replace(entry, recorded_at=datetime.now(UTC))

        line = json.dumps(entry.to_record(), sort_keys=True) + "\n"
        fd = os.open(self._path, os.O_WRONLY | os.O_APPEND)
        try:
            os.write(fd, line.encode("utf-8"))
            os.fsync(fd)
        finally:
            os.close(fd)
        log.debug("Ledger entry committed: serial=%s", entry.serial_hex)
        return entry
