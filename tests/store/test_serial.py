"""Tests for smimeca.store.serial -- counter persistence and collisions."""

from __future__ import annotations

import pytest

from smimeca.ca.errors import SerialCollision, StoreNotInitialized
from smimeca.core.types import SerialSource
from smimeca.store.serial import (
    SerialAllocator,
    random_serial,
    read_counter,
    write_counter,
)


class _FakeLedger:
    def __init__(self, serials=()):
        self.serials = set(serials)

    def contains_serial(self, serial: int) -> bool:
        return serial in self.serials


class TestCounterFile:
    def test_round_trip_is_hex(self, tmp_path):
        path = tmp_path / "serial"
        write_counter(path, 0x1F00)
        assert path.read_text() == "1F00\n"
        assert read_counter(path) == 0x1F00

    def test_missing_counter(self, tmp_path):
        with pytest.raises(StoreNotInitialized, match="not found"):
            read_counter(tmp_path / "serial")

    def test_corrupt_counter(self, tmp_path):
        path = tmp_path / "serial"
        path.write_text("not-hex\n")
        with pytest.raises(StoreNotInitialized, match="corrupt"):
            read_counter(path)


class TestSerialAllocator:
    def test_counter_mode_is_monotonic(self, tmp_path):
        path = tmp_path / "serial"
        write_counter(path, 0x1000)
        allocator = SerialAllocator(path, SerialSource.COUNTER)
        ledger = _FakeLedger()

        serials = [allocator.next_serial(ledger) for _ in range(3)]
        assert serials == [0x1000, 0x1001, 0x1002]
        assert read_counter(path) == 0x1003

    def test_collision_is_retryable_and_advances_counter(self, tmp_path):
        path = tmp_path / "serial"
        write_counter(path, 0x1000)
        allocator = SerialAllocator(path, SerialSource.COUNTER)

        with pytest.raises(SerialCollision) as exc_info:
            allocator.next_serial(_FakeLedger({0x1000}))
        assert exc_info.value.retryable
        assert exc_info.value.serial == 0x1000
        assert allocator.next_serial(_FakeLedger({0x1000})) == 0x1001

    def test_random_mode_leaves_counter_alone(self, tmp_path):
        path = tmp_path / "serial"
        write_counter(path, 0x1000)
        allocator = SerialAllocator(path, SerialSource.RANDOM)

        serial = allocator.next_serial(_FakeLedger())
        assert serial > 0
        assert read_counter(path) == 0x1000

    def test_random_serial_fits_in_20_octets(self):
        for _ in range(50):
            serial = random_serial()
            assert 0 <= serial < 2**159
