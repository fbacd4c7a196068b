"""CA core: key material, signing policy, issuance and verification.

Only the error taxonomy is re-exported here; import the pipeline and
verifier from their modules (``smimeca.ca.issuance``,
``smimeca.ca.verify``) so the store package can depend on the errors
without a circular import.
"""

from smimeca.ca.errors import (
    AlreadyInitialized,
    CAError,
    InvalidEmail,
    LedgerCorrupt,
    LockTimeout,
    PolicyMismatch,
    RootNotFound,
    SerialCollision,
    SigningFailure,
    StoreNotInitialized,
    UsageError,
    VerificationError,
)

__all__ = [
    "AlreadyInitialized",
    "CAError",
    "InvalidEmail",
    "LedgerCorrupt",
    "LockTimeout",
    "PolicyMismatch",
    "RootNotFound",
    "SerialCollision",
    "SigningFailure",
    "StoreNotInitialized",
    "UsageError",
    "VerificationError",
]
