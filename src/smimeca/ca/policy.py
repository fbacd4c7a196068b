"""Signing policy engine.

Decides the subject name and the key-independent X.509 extensions of a
certificate from the CA identity and the requested profile:

* **root** -- subject taken verbatim from the CA identity, marked as a
  certificate authority.
* **leaf** -- organization, organizational unit, country and state must
  match the CA identity; common name and email come from the candidate.
  The certificate is restricted to S/MIME use and carries the email as
  an ``rfc822Name`` subject alternative name.

Subject and authority key identifiers depend on key material and are
added by the issuance pipeline at signing time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.x509.oid import NameOID

from smimeca.ca.cert_utils import build_eku, build_key_usage
from smimeca.ca.errors import InvalidEmail, PolicyMismatch
from smimeca.core.email import is_valid_email
from smimeca.core.types import CertificateProfile

if TYPE_CHECKING:
    from smimeca.models.identity import CAIdentity, SubjectCandidate

ROOT_KEY_USAGES = ("digital_signature", "key_cert_sign", "crl_sign")
LEAF_KEY_USAGES = ("content_commitment", "digital_signature", "key_encipherment")
LEAF_EXTENDED_KEY_USAGES = ("email_protection",)

# candidate attribute -> CA identity attribute that it must equal
_MATCH_FIELDS = (
    "organization",
    "organizational_unit",
    "country",
    "state",
)


@dataclass(frozen=True)
class SigningProfile:
    """Outcome of a successful policy check."""

    profile: CertificateProfile
    subject: x509.Name
    extensions: tuple[tuple[x509.ExtensionType, bool], ...]
    email: str | None
    identifier: str

    @property
    def is_ca(self) -> bool:
        return self.profile == CertificateProfile.ROOT


def validate_email(email: str) -> str:
    """Return *email* unchanged, or raise :class:`InvalidEmail`."""
    if not is_valid_email(email):
        raise InvalidEmail(email)
    return email


def _name(*attrs: tuple[x509.ObjectIdentifier, str | None]) -> x509.Name:
    return x509.Name(
        [x509.NameAttribute(oid, value) for oid, value in attrs if value],
    )


class SigningPolicy:
    """Validate subjects against a fixed :class:`CAIdentity`."""

    def __init__(self, identity: CAIdentity) -> None:
        self._identity = identity

    @property
    def identity(self) -> CAIdentity:
        return self._identity

    def validate_subject(
        self,
        candidate: SubjectCandidate | None,
        profile: CertificateProfile,
    ) -> SigningProfile:
        """Check *candidate* for *profile* and return the signing profile.

        Raises
        ------
        PolicyMismatch
            If a leaf candidate's matched field differs from the CA.
        InvalidEmail
            If the leaf candidate's email is malformed.

        """
        if profile == CertificateProfile.ROOT:
            return self._root_profile()
        if candidate is None:
            msg = "A subject candidate is required for leaf certificates"
            raise ValueError(msg)
        return self._leaf_profile(candidate)

    def _root_profile(self) -> SigningProfile:
        ident = self._identity
        subject = _name(
            (NameOID.COMMON_NAME, ident.root_common_name),
            (NameOID.ORGANIZATIONAL_UNIT_NAME, ident.organizational_unit),
            (NameOID.ORGANIZATION_NAME, ident.organization),
            (NameOID.COUNTRY_NAME, ident.country),
            (NameOID.STATE_OR_PROVINCE_NAME, ident.state),
            (NameOID.LOCALITY_NAME, ident.city),
            (NameOID.EMAIL_ADDRESS, ident.email),
        )
        extensions = (
            (x509.BasicConstraints(ca=True, path_length=None), True),
            (build_key_usage(ROOT_KEY_USAGES), True),
        )
        return SigningProfile(
            profile=CertificateProfile.ROOT,
            subject=subject,
            extensions=extensions,
            email=ident.email,
            identifier="root_CA",
        )

    def _leaf_profile(self, candidate: SubjectCandidate) -> SigningProfile:
        email = validate_email(candidate.email)

        ident = self._identity
        resolved: dict[str, str | None] = {}
        for field in _MATCH_FIELDS:
            expected = getattr(ident, field)
            actual = getattr(candidate, field)
            if actual is None:
                actual = expected
            if actual != expected:
                raise PolicyMismatch(field, expected, actual)
            resolved[field] = actual

        subject = _name(
            (NameOID.COMMON_NAME, candidate.common_name or email),
            (NameOID.ORGANIZATIONAL_UNIT_NAME, resolved["organizational_unit"]),
            (NameOID.ORGANIZATION_NAME, resolved["organization"]),
            (NameOID.COUNTRY_NAME, resolved["country"]),
            (NameOID.STATE_OR_PROVINCE_NAME, resolved["state"]),
            (NameOID.EMAIL_ADDRESS, email),
        )
        extensions = (
            (x509.BasicConstraints(ca=False, path_length=None), True),
            (build_key_usage(LEAF_KEY_USAGES), True),
            (build_eku(LEAF_EXTENDED_KEY_USAGES), False),
            (x509.SubjectAlternativeName([x509.RFC822Name(email)]), False),
        )
        return SigningProfile(
            profile=CertificateProfile.LEAF,
            subject=subject,
            extensions=extensions,
            email=email,
            identifier=candidate.identifier,
        )
