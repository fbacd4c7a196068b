"""Domain entities -- frozen dataclasses with no I/O."""

from smimeca.models.identity import CAIdentity, SubjectCandidate
from smimeca.models.ledger_entry import LedgerEntry

__all__ = [
    "CAIdentity",
    "LedgerEntry",
    "SubjectCandidate",
]
