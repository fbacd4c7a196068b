"""Certificate verification against the stored root.

Readers take no lock: ledger entries are append-only and immutable,
and issued certificate files are written by atomic rename.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.exceptions import InvalidSignature

from smimeca.ca.cert_utils import fingerprint
from smimeca.ca.errors import VerificationError
from smimeca.ca.policy import validate_email
from smimeca.core.types import CertificateStatus
from smimeca.logging import security_events
from smimeca.models.identity import SubjectCandidate

if TYPE_CHECKING:
    from smimeca.models.ledger_entry import LedgerEntry
    from smimeca.store.layout import StoreLayout
    from smimeca.store.ledger import Ledger

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of :meth:`Verifier.verify`."""

    valid: bool
    chain_ok: bool
    not_expired: bool
    subject: str
    serial_number: int
    status: CertificateStatus
    reason: str | None = None


def check_chain(cert: x509.Certificate, root: x509.Certificate) -> str | None:
    """Return ``None`` if *root* directly issued *cert*, else the reason."""
    try:
        constraints = root.extensions.get_extension_for_class(x509.BasicConstraints)
    except x509.ExtensionNotFound:
        return "root certificate has no basicConstraints extension"
    if not constraints.value.ca:
        return "root certificate is not a certificate authority"
    try:
        cert.verify_directly_issued_by(root)
    except ValueError as exc:
        return f"issuer mismatch: {exc}"
    except InvalidSignature:
        return "signature does not verify against the root public key"
    except TypeError as exc:
        return f"unsupported signature: {exc}"
    return None


class Verifier:
    """Verify issued certificates against the root recorded in the store.

    Parameters
    ----------
    layout:
        The CA store layout.
    ledger:
        The store's ledger (read-only use).
    root:
        Trust anchor; when omitted it is loaded from the store.

    """

    def __init__(
        self,
        layout: StoreLayout,
        ledger: Ledger,
        root: x509.Certificate | None = None,
    ) -> None:
        self._layout = layout
        self._ledger = ledger
        self._root = root

    @property
    def root(self) -> x509.Certificate:
        if self._root is None:
            path = self._layout.root_cert_path
            try:
                self._root = x509.load_pem_x509_certificate(path.read_bytes())
            except FileNotFoundError:
                msg = f"Root certificate not found: {path}"
                raise VerificationError(msg) from None
            except ValueError as exc:
                msg = f"Failed to load root certificate from {path}: {exc}"
                raise VerificationError(msg) from exc
        return self._root

    def verify(
        self,
        cert: x509.Certificate,
        root: x509.Certificate | None = None,
        at: datetime | None = None,
    ) -> VerificationResult:
        """Check *cert*'s chain against *root* and its validity at *at*.

        Raises
        ------
        VerificationError
            If the certificate's serial is not recorded in the ledger.

        """
        entry = self._ledger.find_by_serial(cert.serial_number)
        if entry is None or entry.fingerprint != fingerprint(cert):
            msg = f"Certificate with serial {cert.serial_number:X} is not recorded in the ledger"
            raise VerificationError(msg)

        now = at or datetime.now(UTC)
        reason = check_chain(cert, root or self.root)
        chain_ok = reason is None
        not_expired = cert.not_valid_before_utc <= now <= cert.not_valid_after_utc
        if chain_ok and not not_expired:
            reason = (
                "certificate is not yet valid"
                if now < cert.not_valid_before_utc
                else f"certificate expired at {cert.not_valid_after_utc.isoformat()}"
            )
        status = entry.status_at(now)
        if chain_ok and not_expired and status == CertificateStatus.REVOKED:
            reason = "certificate is recorded as revoked"

        valid = chain_ok and not_expired and status != CertificateStatus.REVOKED
        subject = cert.subject.rfc4514_string()
        if not valid:
            security_events.verification_failed(entry.serial_hex, subject, reason or "")
        return VerificationResult(
            valid=valid,
            chain_ok=chain_ok,
            not_expired=not_expired,
            subject=subject,
            serial_number=cert.serial_number,
            status=status,
            reason=reason,
        )

    def certificate_for(self, entry: LedgerEntry) -> x509.Certificate:
        path = self._layout.root / entry.certificate_path
        try:
            return x509.load_pem_x509_certificate(path.read_bytes())
        except FileNotFoundError:
            msg = f"Certificate file not found: {path}"
            raise VerificationError(msg) from None
        except ValueError as exc:
            msg = f"Failed to load certificate from {path}: {exc}"
            raise VerificationError(msg) from exc

    def verify_email(
        self,
        email: str,
        at: datetime | None = None,
    ) -> tuple[x509.Certificate, VerificationResult]:
        """Verify the latest certificate issued for *email*'s identifier."""
        validate_email(email)
        identifier = SubjectCandidate(email=email).identifier
        log.info("Verifying certificate for %s", email)
        entry = self._ledger.latest_for_identifier(identifier)
        if entry is None:
            msg = f"No certificate recorded for {email}"
            raise VerificationError(msg)
        cert = self.certificate_for(entry)
        return cert, self.verify(cert, at=at)

