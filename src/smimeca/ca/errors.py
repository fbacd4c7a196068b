"""Error taxonomy for the CA core.

Every failure raised by the store, the policy engine, the issuance
pipeline and the verifier is a :class:`CAError`.  The CLI is the only
layer that turns these into log lines and exit codes.

Errors flagged ``retryable`` (:class:`SerialCollision`,
:class:`LockTimeout`) are retried a bounded number of times by the
issuance pipeline before they surface.
"""

from __future__ import annotations


class CAError(Exception):
    """Base class for every CA core failure.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the operation may be retried.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


class AlreadyInitialized(CAError):
    """The store (or its root certificate) already exists."""


class StoreNotInitialized(CAError):
    """The store has no ledger or serial counter yet."""


class LedgerCorrupt(CAError):
    """A committed ledger line cannot be parsed into an entry."""


class RootNotFound(CAError):
    """A leaf was requested before a root certificate was committed."""


class PolicyMismatch(CAError):
    """A candidate subject field differs from the CA identity."""

    def __init__(self, field: str, expected: str | None, actual: str | None) -> None:
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Subject field '{field}' must match the CA "
            f"(expected {expected!r}, got {actual!r})",
        )


class InvalidEmail(CAError):
    """An email address failed the ``local@domain.tld`` format check."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Invalid email format: {email}")


class SerialCollision(CAError):
    """An allocated serial is already recorded in the ledger."""

    def __init__(self, serial: int) -> None:
        self.serial = serial
        super().__init__(
            f"Serial {serial:X} is already recorded in the ledger",
            retryable=True,
        )


class LockTimeout(CAError):
    """The store lock could not be acquired within the configured wait."""

    def __init__(self, path: str, timeout: float) -> None:
        self.path = path
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s waiting for store lock {path}",
            retryable=True,
        )


class SigningFailure(CAError):
    """A cryptographic or write step of the issuance pipeline failed."""

    def __init__(self, step: str, detail: str) -> None:
        self.step = step
        super().__init__(f"Issuance failed during '{step}': {detail}")


class VerificationError(CAError):
    """A certificate could not be located, loaded or matched to the ledger."""


class UsageError(CAError):
    """Malformed invocation (wrong argument count, empty password, ...)."""
