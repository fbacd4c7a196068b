"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation -- these builders
are what the application actually reads.

Access pattern::

    from smimeca.config import load_config

    settings = load_config("smimeca.yaml")
    print(settings.store.path, settings.validity.leaf_days)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from smimeca.core.types import SerialSource

# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StoreSettings:
    """Location of the CA store and serial allocation behaviour."""

    path: Path
    serial_source: SerialSource
    serial_start: int
    lock_timeout_seconds: float
    max_retries: int


def _build_store(data: dict | None) -> StoreSettings:
    d = data or {}
    return StoreSettings(
        path=Path(d["path"]).expanduser(),
        serial_source=SerialSource(d.get("serial_source", "counter")),
        serial_start=d.get("serial_start", 0x1000),
        lock_timeout_seconds=float(d.get("lock_timeout_seconds", 30)),
        max_retries=d.get("max_retries", 3),
    )


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IdentitySettings:
    """Distinguished-name attributes of the root CA."""

    organization: str
    organizational_unit: str | None
    country: str
    state: str
    city: str | None
    email: str | None


def _build_identity(data: dict | None) -> IdentitySettings:
    d = data or {}
    return IdentitySettings(
        organization=d["organization"],
        organizational_unit=d.get("organizational_unit"),
        country=d["country"],
        state=d["state"],
        city=d.get("city"),
        email=d.get("email"),
    )


# ---------------------------------------------------------------------------
# Validity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValiditySettings:
    """Root and leaf lifetimes -- two independent values."""

    root_days: int
    leaf_days: int


def _build_validity(data: dict | None) -> ValiditySettings:
    d = data or {}
    return ValiditySettings(
        root_days=d.get("root_days", 3650),
        leaf_days=d.get("leaf_days", 365),
    )


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeySettings:
    """RSA key sizes and the signature hash."""

    root_key_size: int
    leaf_key_size: int
    hash_algorithm: str


def _build_keys(data: dict | None) -> KeySettings:
    d = data or {}
    return KeySettings(
        root_key_size=d.get("root_key_size", 4096),
        leaf_key_size=d.get("leaf_key_size", 2048),
        hash_algorithm=d.get("hash_algorithm", "sha256"),
    )


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BundleSettings:
    """PKCS#12 export options."""

    password: str | None


def _build_bundle(data: dict | None) -> BundleSettings:
    d = data or {}
    return BundleSettings(password=d.get("password") or None)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """Operator log configuration (level, format, file rotation, audit)."""

    level: str
    format: str
    file: Path | None
    max_file_size_bytes: int
    backup_count: int
    audit: bool


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    log_file = d.get("file")
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "text"),
        file=Path(log_file).expanduser() if log_file else None,
        max_file_size_bytes=d.get("max_file_size_bytes", 10485760),
        backup_count=d.get("backup_count", 5),
        audit=d.get("audit", True),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SmimecaSettings:
    """Complete settings tree passed explicitly into every core operation."""

    store: StoreSettings
    identity: IdentitySettings
    validity: ValiditySettings
    keys: KeySettings
    bundle: BundleSettings
    logging: LoggingSettings

    @property
    def log_file(self) -> Path:
        return self.logging.file or self.store.path / "ca.log"


def build_settings(data: dict) -> SmimecaSettings:
    """Build the full settings tree from a validated config dict."""
    return SmimecaSettings(
        store=_build_store(data.get("store")),
        identity=_build_identity(data.get("identity")),
        validity=_build_validity(data.get("validity")),
        keys=_build_keys(data.get("keys")),
        bundle=_build_bundle(data.get("bundle")),
        logging=_build_logging(data.get("logging")),
    )
