"""Serial number allocation.

The counter file holds the *next* serial to hand out, as upper-case hex
(the same format as an OpenSSL ``serial`` file).  Allocation is
read-increment-persist and must run under the store lock; the ledger
is consulted so an already-recorded serial surfaces as a retryable
:class:`SerialCollision` instead of a duplicate.

In ``random`` mode the counter is bypassed and a 159-bit positive serial
is drawn (RFC 5280 limits serials to 20 octets with the high bit clear).
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING

from smimeca.ca.errors import SerialCollision, StoreNotInitialized
from smimeca.core.types import SerialSource
from smimeca.store.files import atomic_write

if TYPE_CHECKING:
    from pathlib import Path

    from smimeca.store.ledger import Ledger

log = logging.getLogger(__name__)

_COUNTER_MODE = 0o644
_RANDOM_SERIAL_BYTES = 20


def read_counter(path: Path) -> int:
    try:
        text = path.read_text(encoding="ascii").strip()
    except FileNotFoundError:
        msg = f"Serial counter not found: {path}"
        raise StoreNotInitialized(msg) from None
    try:
        return int(text, 16)
    except ValueError:
        msg = f"Serial counter {path} is corrupt: {text!r}"
        raise StoreNotInitialized(msg) from None


def write_counter(path: Path, value: int) -> None:
    atomic_write(path, f"{value:X}\n".encode("ascii"), _COUNTER_MODE)


def random_serial() -> int:
    return int.from_bytes(secrets.token_bytes(_RANDOM_SERIAL_BYTES), "big") >> 1


class SerialAllocator:
    """Hand out serials that are never repeated within a store.

    Parameters
    ----------
    counter_path:
        Path of the persisted counter file.
    source:
        ``counter`` (monotonic) or ``random``.

    """

    def __init__(self, counter_path: Path, source: SerialSource) -> None:
        self._counter_path = counter_path
        self._source = source

    def next_serial(self, ledger: Ledger) -> int:
        """Allocate one serial.  Caller must hold the store lock.

        Raises
        ------
        SerialCollision
            If the serial is already recorded in *ledger*.

        """
        if self._source == SerialSource.RANDOM:
            serial = random_serial()
        else:
            serial = read_counter(self._counter_path)
            # Persist first so a collision still advances the counter.
            write_counter(self._counter_path, serial + 1)

        if ledger.contains_serial(serial):
            log.warning("Serial %X already recorded in ledger; redrawing", serial)
            raise SerialCollision(serial)

        log.debug("Allocated serial %X", serial)
        return serial
