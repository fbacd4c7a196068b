"""Enumerated types shared by the store and the CA core.

All enums inherit from :class:`enum.StrEnum` so their ``.value`` is a
plain string that round-trips through the JSON-lines ledger unchanged.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Certificate
# ---------------------------------------------------------------------------


class CertificateProfile(StrEnum):
    ROOT = "root"
    LEAF = "leaf"


class CertificateStatus(StrEnum):
    VALID = "valid"
    EXPIRED = "expired"
    REVOKED = "revoked"


# ---------------------------------------------------------------------------
# Serial allocation
# ---------------------------------------------------------------------------


class SerialSource(StrEnum):
    COUNTER = "counter"
    RANDOM = "random"
