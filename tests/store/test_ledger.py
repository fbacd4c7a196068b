"""Tests for smimeca.store.ledger -- append-only JSON-lines ledger."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest

from smimeca.ca.errors import LedgerCorrupt, SerialCollision, StoreNotInitialized
from smimeca.core.types import CertificateProfile, CertificateStatus
from smimeca.models.ledger_entry import LedgerEntry
from smimeca.store.ledger import Ledger

_NOW = datetime(2025, 1, 1, tzinfo=UTC)


def _entry(serial: int, identifier: str = "alice", **overrides) -> LedgerEntry:
    defaults = {
        "serial_number": serial,
        "profile": CertificateProfile.LEAF,
        "subject": f"CN={identifier}@example.com",
        "issuer": "CN=Example Corp ROOT CA",
        "email": f"{identifier}@example.com",
        "identifier": identifier,
        "not_before": _NOW,
        "not_after": _NOW + timedelta(days=365),
        "fingerprint": "ab" * 32,
        "certificate_path": f"newcerts/{serial:X}.pem",
        "key_path": f"private/{serial:X}.key",
    }
    defaults.update(overrides)
    return LedgerEntry(**defaults)


@pytest.fixture()
def ledger(tmp_path) -> Ledger:
    path = tmp_path / "index.jsonl"
    path.touch()
    return Ledger(path)


class TestLedgerEntry:
    def test_record_round_trip(self):
        entry = _entry(0x1000, recorded_at=_NOW)
        record = entry.to_record()
        assert record["serial_number"] == "1000"
        assert record["profile"] == "leaf"
        assert LedgerEntry.from_record(record) == entry

    def test_status_at(self):
        entry = _entry(0x1000)
        assert entry.status_at(_NOW) == CertificateStatus.VALID
        assert entry.status_at(_NOW + timedelta(days=400)) == CertificateStatus.EXPIRED

    def test_revoked_wins_over_expiry(self):
        entry = _entry(0x1000, status=CertificateStatus.REVOKED)
        assert entry.status_at(_NOW + timedelta(days=400)) == CertificateStatus.REVOKED


class TestLedger:
    def test_append_and_read(self, ledger):
        ledger.append(_entry(0x1000))
        ledger.append(_entry(0x1001, "bob"))

        entries = ledger.entries()
        assert [e.serial_number for e in entries] == [0x1000, 0x1001]
        assert all(e.recorded_at is not None for e in entries)
        assert len(ledger) == 2

    def test_lines_are_sorted_json(self, ledger):
        ledger.append(_entry(0x1000))
        line = ledger.path.read_text().splitlines()[0]
        record = json.loads(line)
        assert list(record) == sorted(record)

    def test_duplicate_serial_rejected(self, ledger):
        ledger.append(_entry(0x1000))
        with pytest.raises(SerialCollision):
            ledger.append(_entry(0x1000, "bob"))
        assert len(ledger) == 1

    def test_missing_ledger(self, tmp_path):
        ledger = Ledger(tmp_path / "index.jsonl")
        with pytest.raises(StoreNotInitialized):
            ledger.entries()
        with pytest.raises(StoreNotInitialized):
            ledger.append(_entry(0x1000))

    def test_find_root_and_identifier(self, ledger):
        ledger.append(_entry(0x1000, "root_CA", profile=CertificateProfile.ROOT, email=None))
        ledger.append(_entry(0x1001, "alice"))
        ledger.append(_entry(0x1002, "bob"))
        ledger.append(_entry(0x1003, "alice"))

        assert ledger.find_root().serial_number == 0x1000
        assert [e.serial_number for e in ledger.find_by_identifier("alice")] == [0x1001, 0x1003]
        assert ledger.latest_for_identifier("alice").serial_number == 0x1003
        assert ledger.latest_for_identifier("carol") is None
        assert ledger.find_by_serial(0x1002).identifier == "bob"

    def test_root_is_not_a_leaf_identifier(self, ledger):
        ledger.append(_entry(0x1000, "root_CA", profile=CertificateProfile.ROOT))
        assert ledger.find_by_identifier("root_CA") == []

    def test_torn_tail_ignored_by_readers(self, ledger):
        ledger.append(_entry(0x1000))
        with open(ledger.path, "a", encoding="utf-8") as f:
            f.write('{"serial_number": "10')

        assert [e.serial_number for e in ledger.entries()] == [0x1000]

    def test_torn_tail_truncated_by_writer(self, ledger):
        ledger.append(_entry(0x1000))
        with open(ledger.path, "a", encoding="utf-8") as f:
            f.write('{"serial_number": "10')

        ledger.append(_entry(0x1001, "bob"))
        lines = ledger.path.read_text().splitlines()
        assert len(lines) == 2
        assert all(json.loads(line) for line in lines)

    def test_malformed_line_raises_ledger_corrupt(self, ledger):
        ledger.append(_entry(0x1000))
        with open(ledger.path, "a", encoding="utf-8") as f:
            f.write("{not json\n")

        with pytest.raises(LedgerCorrupt, match="line 2") as exc_info:
            ledger.entries()
        assert str(ledger.path) in exc_info.value.detail
        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)
        with pytest.raises(LedgerCorrupt):
            ledger.append(_entry(0x1001, "bob"))

    def test_record_missing_field_raises_ledger_corrupt(self, ledger):
        record = _entry(0x1000).to_record()
        del record["fingerprint"]
        ledger.path.write_text(json.dumps(record) + "\n", encoding="utf-8")

        with pytest.raises(LedgerCorrupt, match="line 1") as exc_info:
            ledger.find_root()
        assert isinstance(exc_info.value.__cause__, KeyError)
