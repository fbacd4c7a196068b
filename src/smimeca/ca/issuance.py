"""Issuance pipeline -- root and leaf certificates.

Orchestrates: policy check -> key generation -> serial allocation ->
signing -> permission hardening -> PKCS#12 bundle -> ledger commit ->
publication of the per-user copies under ``certs/``.

Key generation runs outside the store lock.  Everything from serial
allocation to the ledger append runs inside it, so ledger entries are
committed in the order their serials were allocated.  The ledger append
is the commit point: a failure at any earlier step leaves no ledger
entry, and the artifacts written for the burned serial are removed.
The per-user ``certs/<identifier>`` copies are replaced only after the
commit, so they always hold a certificate the ledger records.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, TypeVar

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from smimeca.ca.bundle import build_bundle, check_password
from smimeca.ca.cert_utils import fingerprint, hash_algorithm
from smimeca.ca.errors import (
    AlreadyInitialized,
    CAError,
    RootNotFound,
    SigningFailure,
    UsageError,
)
from smimeca.ca.keys import build_csr, generate_private_key, load_private_key, private_key_pem
from smimeca.ca.policy import SigningPolicy, SigningProfile
from smimeca.core.types import CertificateProfile
from smimeca.logging import security_events
from smimeca.models.identity import CAIdentity
from smimeca.models.ledger_entry import LedgerEntry
from smimeca.store.files import (
    BUNDLE_MODE,
    CERTIFICATE_MODE,
    PRIVATE_KEY_MODE,
    REQUEST_MODE,
    atomic_write,
    harden_private_area,
    is_loose,
    remove_artifacts,
    sweep_stale_temp_files,
)
from smimeca.store.layout import StoreLayout
from smimeca.store.ledger import Ledger
from smimeca.store.lock import StoreLock
from smimeca.store.serial import SerialAllocator

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from cryptography.hazmat.primitives.asymmetric import rsa

    from smimeca.config.settings import SmimecaSettings
    from smimeca.models.identity import SubjectCandidate

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class IssuedCertificate:
    """Result of a committed issuance."""

    certificate: x509.Certificate
    entry: LedgerEntry
    certificate_path: Path
    key_path: Path
    bundle_path: Path | None = None

    @property
    def serial_number(self) -> int:
        return self.entry.serial_number

    @property
    def pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)


class IssuancePipeline:
    """Issue the root and leaf certificates of one CA store.

    Parameters
    ----------
    settings:
        Complete settings tree; nothing is read from the environment.

    """

    def __init__(self, settings: SmimecaSettings) -> None:
        self._settings = settings
        self._layout = StoreLayout(settings.store.path)
        self._ledger = Ledger(self._layout.ledger_path)
        self._allocator = SerialAllocator(
            self._layout.serial_path,
            settings.store.serial_source,
        )
        self._identity = CAIdentity.from_settings(
            settings.identity,
            settings.validity.root_days,
        )
        self._policy = SigningPolicy(self._identity)
        self._hash = hash_algorithm(settings.keys.hash_algorithm)

    @property
    def layout(self) -> StoreLayout:
        return self._layout

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def policy(self) -> SigningPolicy:
        return self._policy

    # -- public API ----------------------------------------------------------

    def issue_root(self, validity_days: int | None = None) -> IssuedCertificate:
        """Create the self-signed root certificate.

        Raises
        ------
        AlreadyInitialized
            If the ledger already records a root.

        """
        days = self._check_days(
            self._identity.root_validity_days if validity_days is None else validity_days,
        )
        self._layout.require_initialized()
        if self._ledger.find_root() is not None:
            msg = "Root CA already exists"
            raise AlreadyInitialized(msg)

        log.info("Generating Root CA")
        signing = self._policy.validate_subject(None, CertificateProfile.ROOT)
        key = self._generate_key(self._settings.keys.root_key_size, signing)
        issued = self._with_retries(lambda: self._commit_root(signing, key, days))

        security_events.root_issued(
            issued.entry.serial_hex,
            issued.entry.subject,
            issued.entry.not_after.isoformat(),
        )
        log.info("Root CA generated successfully (serial %s)", issued.entry.serial_hex)
        return issued

    def issue_leaf(
        self,
        candidate: SubjectCandidate,
        validity_days: int | None = None,
        password: bytes | str | None = None,
    ) -> IssuedCertificate:
        """Issue an S/MIME certificate for *candidate* signed by the root.

        *password* protects the PKCS#12 bundle; it defaults to the
        configured ``bundle.password``.

        Raises
        ------
        RootNotFound
            If no root has been committed yet.
        InvalidEmail, PolicyMismatch, UsageError
            Before any filesystem mutation.

        """
        log.info("Generating certificate for %s", candidate.email)
        days = self._check_days(
            self._settings.validity.leaf_days if validity_days is None else validity_days,
        )
        self._layout.require_initialized()
        root_entry = self._ledger.find_root()
        if root_entry is None:
            msg = "Root CA not found; run 'create-root-ca' first"
            raise RootNotFound(msg)

        signing = self._policy.validate_subject(candidate, CertificateProfile.LEAF)
        bundle_password = check_password(
            password if password is not None else self._settings.bundle.password,
        )
        root_cert, root_key = self._load_root(root_entry)

        key = self._generate_key(self._settings.keys.leaf_key_size, signing)
        csr = build_csr(key, signing.subject, signing.extensions, self._hash)

        issued = self._with_retries(
            lambda: self._commit_leaf(
                signing,
                key,
                csr,
                root_cert,
                root_key,
                days,
                bundle_password,
            ),
        )

        security_events.certificate_issued(
            issued.entry.serial_hex,
            candidate.email,
            issued.entry.not_after.isoformat(),
        )
        log.info("Certificate generated for %s (serial %s)", candidate.email, issued.entry.serial_hex)
        return issued

    def load_root_certificate(self) -> x509.Certificate:
        """Return the committed root certificate."""
        self._layout.require_initialized()
        root_entry = self._ledger.find_root()
        if root_entry is None:
            msg = "Root CA not found; run 'create-root-ca' first"
            raise RootNotFound(msg)
        return self._read_root_cert(root_entry)

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _check_days(days: int) -> int:
        if days < 1:
            msg = f"Validity must be at least one day (got {days})"
            raise UsageError(msg)
        return days

    def _generate_key(self, key_size: int, signing: SigningProfile) -> rsa.RSAPrivateKey:
        try:
            return generate_private_key(key_size)
        except Exception as exc:
            security_events.issuance_failed(signing.identifier, "generate-key", str(exc))
            raise SigningFailure("generate-key", str(exc)) from exc

    def _with_retries(self, operation: Callable[[], T]) -> T:
        attempts = self._settings.store.max_retries + 1
        attempt = 1
        while True:
            try:
                return operation()
            except CAError as exc:
                if not exc.retryable or attempt >= attempts:
                    raise
                log.warning(
                    "Retrying issuance after transient failure (attempt %d/%d): %s",
                    attempt,
                    attempts,
                    exc.detail,
                )
                attempt += 1

    @contextmanager
    def _store_lock(self) -> Iterator[None]:
        with StoreLock(self._layout.lock_path, self._settings.store.lock_timeout_seconds):
            sweep_stale_temp_files((self._layout.root, *self._layout.artifact_dirs))
            harden_private_area(self._layout.private_dir)
            yield

    def _read_root_cert(self, root_entry: LedgerEntry) -> x509.Certificate:
        path = self._layout.root_cert_path
        try:
            cert = x509.load_pem_x509_certificate(path.read_bytes())
        except FileNotFoundError:
            msg = f"Root certificate not found: {path}"
            raise RootNotFound(msg) from None
        except ValueError as exc:
            msg = f"Failed to load root certificate from {path}: {exc}"
            raise RootNotFound(msg) from exc
        if (
            cert.serial_number != root_entry.serial_number
            or fingerprint(cert) != root_entry.fingerprint
        ):
            msg = (
                f"Root certificate {path} (serial {cert.serial_number:X}) does not "
                f"match the root recorded in the ledger (serial {root_entry.serial_hex})"
            )
            raise RootNotFound(msg)
        return cert

    def _load_root(
        self,
        root_entry: LedgerEntry,
    ) -> tuple[x509.Certificate, rsa.RSAPrivateKey]:
        cert = self._read_root_cert(root_entry)
        key_path = self._layout.root_key_path
        try:
            if is_loose(key_path):
                log.warning("Root key %s had loose permissions; restricting", key_path)
                key_path.chmod(PRIVATE_KEY_MODE)
            key = load_private_key(key_path.read_bytes())
        except FileNotFoundError:
            msg = f"Root private key not found: {key_path}"
            raise RootNotFound(msg) from None
        except (ValueError, TypeError) as exc:
            msg = f"Failed to load root private key from {key_path}: {exc}"
            raise RootNotFound(msg) from exc
        if key.public_key().public_numbers() != cert.public_key().public_numbers():
            msg = f"Root private key {key_path} does not match the root certificate"
            raise RootNotFound(msg)
        return cert, key

    def _builder(
        self,
        signing: SigningProfile,
        subject: x509.Name,
        issuer: x509.Name,
        public_key: rsa.RSAPublicKey,
        issuer_public_key: rsa.RSAPublicKey,
        serial: int,
        days: int,
    ) -> x509.CertificateBuilder:
        now = datetime.now(UTC)
        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(public_key)
            .serial_number(serial)
            .not_valid_before(now)
            .not_valid_after(now + timedelta(days=days))
        )
        for ext, critical in signing.extensions:
            builder = builder.add_extension(ext, critical=critical)
        builder = builder.add_extension(
            x509.SubjectKeyIdentifier.from_public_key(public_key),
            critical=False,
        )
        return builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_public_key),
            critical=False,
        )

    def _entry(
        self,
        signing: SigningProfile,
        cert: x509.Certificate,
        cert_path: Path,
        key_path: Path,
    ) -> LedgerEntry:
        return LedgerEntry(
            serial_number=cert.serial_number,
            profile=signing.profile,
            subject=cert.subject.rfc4514_string(),
            issuer=cert.issuer.rfc4514_string(),
            email=signing.email,
            identifier=signing.identifier,
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            fingerprint=fingerprint(cert),
            certificate_path=self._layout.relative(cert_path),
            key_path=self._layout.relative(key_path),
        )

    # -- commits (run under the store lock) ----------------------------------

    def _commit_root(
        self,
        signing: SigningProfile,
        key: rsa.RSAPrivateKey,
        days: int,
    ) -> IssuedCertificate:
        layout = self._layout
        with self._store_lock():
            if self._ledger.find_root() is not None:
                msg = "Root CA already exists"
                raise AlreadyInitialized(msg)

            serial = self._allocator.next_serial(self._ledger)
            staged = layout.staged_cert_path(serial)
            written: list[Path] = []
            step = "sign"
            try:
                cert = self._builder(
                    signing,
                    signing.subject,
                    signing.subject,
                    key.public_key(),
                    key.public_key(),
                    serial,
                    days,
                ).sign(key, self._hash)
                pem = cert.public_bytes(serialization.Encoding.PEM)

                step = "write-key"
                written.append(atomic_write(layout.root_key_path, private_key_pem(key), PRIVATE_KEY_MODE))
                step = "write-certificate"
                written.append(atomic_write(staged, pem, CERTIFICATE_MODE))
                written.append(atomic_write(layout.root_cert_path, pem, CERTIFICATE_MODE))

                step = "commit"
                entry = self._ledger.append(
                    self._entry(signing, cert, layout.root_cert_path, layout.root_key_path),
                )
            except CAError as exc:
                self._abort(signing, step, exc, written)
                raise
            except Exception as exc:
                self._abort(signing, step, exc, written)
                raise SigningFailure(step, str(exc)) from exc

        return IssuedCertificate(
            certificate=cert,
            entry=entry,
            certificate_path=layout.root_cert_path,
            key_path=layout.root_key_path,
        )

    def _commit_leaf(  # noqa: PLR0913
        self,
        signing: SigningProfile,
        key: rsa.RSAPrivateKey,
        csr: x509.CertificateSigningRequest,
        root_cert: x509.Certificate,
        root_key: rsa.RSAPrivateKey,
        days: int,
        password: bytes,
    ) -> IssuedCertificate:
        layout = self._layout
        identifier = signing.identifier
        with self._store_lock():
            serial = self._allocator.next_serial(self._ledger)
            key_path = layout.key_path(serial)
            staged = layout.staged_cert_path(serial)
            written: list[Path] = []
            step = "sign"
            try:
                if not csr.is_signature_valid:
                    msg = "CSR signature is invalid"
                    raise ValueError(msg)
                cert = self._builder(
                    signing,
                    csr.subject,
                    root_cert.subject,
                    csr.public_key(),
                    root_cert.public_key(),
                    serial,
                    days,
                ).sign(root_key, self._hash)
                pem = cert.public_bytes(serialization.Encoding.PEM)

                step = "write-key"
                written.append(atomic_write(key_path, private_key_pem(key), PRIVATE_KEY_MODE))
                step = "write-certificate"
                written.append(
                    atomic_write(
                        layout.request_path(serial),
                        csr.public_bytes(serialization.Encoding.PEM),
                        REQUEST_MODE,
                    ),
                )
                written.append(atomic_write(staged, pem, CERTIFICATE_MODE))

                step = "bundle"
                p12 = build_bundle(identifier, key, cert, root_cert, password)
                written.append(atomic_write(layout.staged_bundle_path(serial), p12, BUNDLE_MODE))

                step = "commit"
                entry = self._ledger.append(self._entry(signing, cert, staged, key_path))
            except CAError as exc:
                self._abort(signing, step, exc, written)
                raise
            except Exception as exc:
                self._abort(signing, step, exc, written)
                raise SigningFailure(step, str(exc)) from exc

            # Committed: only now replace the per-user copies.
            try:
                bundle_path = atomic_write(layout.bundle_path(identifier), p12, BUNDLE_MODE)
                cert_path = atomic_write(layout.user_cert_path(identifier), pem, CERTIFICATE_MODE)
            except OSError as exc:
                log.error(
                    "Certificate %s committed but per-user copies for %s were not updated: %s",
                    entry.serial_hex,
                    identifier,
                    exc,
                )
                raise SigningFailure("publish", str(exc)) from exc

        return IssuedCertificate(
            certificate=cert,
            entry=entry,
            certificate_path=cert_path,
            key_path=key_path,
            bundle_path=bundle_path,
        )

    @staticmethod
    def _abort(
        signing: SigningProfile,
        step: str,
        exc: Exception,
        written: list[Path],
    ) -> None:
        log.error("Issuance for %s aborted at step '%s': %s", signing.identifier, step, exc)
        security_events.issuance_failed(signing.identifier, step, str(exc))
        remove_artifacts(written)
