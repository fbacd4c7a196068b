"""Structured audit events for the CA lifecycle.

All events are logged to the ``smimeca.audit`` logger with a consistent
``event_id`` field for filtering.  Private key material is never passed
to these helpers; callers hand over serials, subjects and paths only.
"""

from __future__ import annotations

import logging
from typing import Any

audit_log = logging.getLogger("smimeca.audit")


def _emit(
    event_id: str,
    message: str,
    *args: Any,  # noqa: ANN401
    severity: str = "INFO",
    **extra: Any,  # noqa: ANN401
) -> None:
    """Emit a structured audit event."""
    data: dict[str, object] = {
        "event_id": event_id,
        "severity": severity,
    }
    data.update(extra)
    level = getattr(logging, severity.upper(), logging.INFO)
    audit_log.log(level, message, *args, extra=data)


def store_initialized(store_path: str, serial_start: int) -> None:
    """Log creation of a new CA store."""
    _emit(
        "smimeca.audit.store_initialized",
        "CA store initialised at %s",
        store_path,
        serial_start=format(serial_start, "X"),
    )


def root_issued(serial: str, subject: str, not_after: str) -> None:
    """Log issuance of the self-signed root certificate."""
    _emit(
        "smimeca.audit.root_issued",
        "Root CA issued: serial=%s subject=%s",
        serial,
        subject,
        not_after=not_after,
    )


def certificate_issued(serial: str, email: str, not_after: str) -> None:
    """Log issuance of a leaf certificate."""
    _emit(
        "smimeca.audit.certificate_issued",
        "Certificate issued: serial=%s email=%s",
        serial,
        email,
        not_after=not_after,
    )


def issuance_failed(subject: str, step: str, reason: str) -> None:
    """Log an aborted issuance."""
    _emit(
        "smimeca.audit.issuance_failed",
        "Issuance failed for %s at step %s: %s",
        subject,
        step,
        reason,
        severity="WARNING",
    )


def verification_failed(serial: str, subject: str, reason: str) -> None:
    """Log a certificate that did not verify."""
    _emit(
        "smimeca.audit.verification_failed",
        "Verification failed: serial=%s subject=%s reason=%s",
        serial,
        subject,
        reason,
        severity="WARNING",
    )
