"""CA identity and leaf subject candidates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from smimeca.config.settings import IdentitySettings


@dataclass(frozen=True)
class CAIdentity:
    """Identity attributes of the root CA, fixed once the root exists."""

    organization: str
    organizational_unit: str | None
    country: str
    state: str
    city: str | None
    email: str | None
    root_validity_days: int

    @property
    def root_common_name(self) -> str:
        return f"{self.organization} ROOT CA"

    @classmethod
    def from_settings(
        cls,
        identity: IdentitySettings,
        root_validity_days: int,
    ) -> CAIdentity:
        return cls(
            organization=identity.organization,
            organizational_unit=identity.organizational_unit,
            country=identity.country,
            state=identity.state,
            city=identity.city,
            email=identity.email,
            root_validity_days=root_validity_days,
        )


@dataclass(frozen=True)
class SubjectCandidate:
    """Subject requested for a leaf certificate.

    ``organization``, ``organizational_unit``, ``country`` and ``state``
    default to ``None``, which means "inherit from the CA identity".
    ``common_name`` defaults to the email address.
    """

    email: str
    common_name: str | None = None
    organization: str | None = None
    organizational_unit: str | None = None
    country: str | None = None
    state: str | None = None

    @property
    def identifier(self) -> str:
        """Local part of the email, used to name per-user artifacts."""
        return self.email.rpartition("@")[0] or self.email
