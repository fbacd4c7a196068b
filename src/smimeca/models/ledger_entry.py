"""Ledger entry entity."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

from smimeca.core.types import CertificateProfile, CertificateStatus


@dataclass(frozen=True)
class LedgerEntry:
    serial_number: int
    profile: CertificateProfile
    subject: str
    issuer: str
    email: str | None
    identifier: str
    not_before: datetime
    not_after: datetime
    fingerprint: str
    certificate_path: str
    key_path: str
    status: CertificateStatus = CertificateStatus.VALID
    recorded_at: datetime | None = None

    @property
    def serial_hex(self) -> str:
        return format(self.serial_number, "X")

    def status_at(self, now: datetime | None = None) -> CertificateStatus:
        """Return the effective status, deriving ``expired`` from *now*."""
        if self.status == CertificateStatus.REVOKED:
            return CertificateStatus.REVOKED
        now = now or datetime.now(UTC)
        if now > self.not_after:
            return CertificateStatus.EXPIRED
        return CertificateStatus.VALID

    def to_record(self) -> dict[str, Any]:
        """Serialise to the JSON object stored on one ledger line."""
        record = asdict(self)
        record["serial_number"] = self.serial_hex
        record["profile"] = self.profile.value
        record["status"] = self.status.value
        for key in ("not_before", "not_after", "recorded_at"):
            value = record[key]
            record[key] = value.isoformat() if value is not None else None
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> LedgerEntry:
        recorded_at = record.get("recorded_at")
        return cls(
            serial_number=int(record["serial_number"], 16),
            profile=CertificateProfile(record["profile"]),
            subject=record["subject"],
            issuer=record["issuer"],
            email=record.get("email"),
            identifier=record["identifier"],
            not_before=datetime.fromisoformat(record["not_before"]),
            not_after=datetime.fromisoformat(record["not_after"]),
            fingerprint=record["fingerprint"],
            certificate_path=record["certificate_path"],
            key_path=record["key_path"],
            status=CertificateStatus(record.get("status", "valid")),
            recorded_at=(
                datetime.fromisoformat(recorded_at) if recorded_at else None
            ),
        )
