"""Shared certificate helpers.

Key-usage and extended-key-usage mappings used by the signing policy,
hash selection, fingerprints, and the human-readable certificate
summary printed by the CLI.
"""

from __future__ import annotations

import hashlib

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import ExtendedKeyUsageOID

from smimeca.ca.errors import CAError

# ---------------------------------------------------------------------------
# Key usage / EKU mappings
# ---------------------------------------------------------------------------

_KEY_USAGE_FIELDS = (
    "digital_signature",
    "content_commitment",
    "key_encipherment",
    "data_encipherment",
    "key_agreement",
    "key_cert_sign",
    "crl_sign",
    "encipher_only",
    "decipher_only",
)

_EKU_OIDS = {
    "email_protection": ExtendedKeyUsageOID.EMAIL_PROTECTION,
}

HASH_ALGORITHMS = {
    "sha256": hashes.SHA256(),
    "sha384": hashes.SHA384(),
    "sha512": hashes.SHA512(),
}


def build_key_usage(usages: tuple[str, ...]) -> x509.KeyUsage:
    """Build an :class:`x509.KeyUsage` extension from usage names."""
    usage_set = set(usages)
    unknown = usage_set.difference(_KEY_USAGE_FIELDS)
    if unknown:
        msg = f"Unknown key usage(s) {sorted(unknown)}; supported: {list(_KEY_USAGE_FIELDS)}"
        raise CAError(msg)
    ka = "key_agreement" in usage_set
    return x509.KeyUsage(
        digital_signature="digital_signature" in usage_set,
        content_commitment="content_commitment" in usage_set,
        key_encipherment="key_encipherment" in usage_set,
        data_encipherment="data_encipherment" in usage_set,
        key_agreement=ka,
        key_cert_sign="key_cert_sign" in usage_set,
        crl_sign="crl_sign" in usage_set,
        encipher_only="encipher_only" in usage_set if ka else False,
        decipher_only="decipher_only" in usage_set if ka else False,
    )


def build_eku(ekus: tuple[str, ...]) -> x509.ExtendedKeyUsage:
    """Build an :class:`x509.ExtendedKeyUsage` extension from EKU names."""
    oids = []
    for name in ekus:
        oid = _EKU_OIDS.get(name)
        if oid is None:
            msg = f"Unknown extended key usage '{name}'; supported: {sorted(_EKU_OIDS)}"
            raise CAError(msg)
        oids.append(oid)
    return x509.ExtendedKeyUsage(oids)


def hash_algorithm(name: str) -> hashes.HashAlgorithm:
    return HASH_ALGORITHMS.get(name, hashes.SHA256())


def fingerprint(cert: x509.Certificate) -> str:
    """SHA-256 hex digest of the certificate's DER encoding."""
    return hashlib.sha256(cert.public_bytes(serialization.Encoding.DER)).hexdigest()


# ---------------------------------------------------------------------------
# Human-readable summary
# ---------------------------------------------------------------------------


def _describe_key_usage(ku: x509.KeyUsage) -> str:
    names = []
    for field in _KEY_USAGE_FIELDS:
        if field in ("encipher_only", "decipher_only") and not ku.key_agreement:
            continue
        if getattr(ku, field):
            names.append(field)
    return ", ".join(names)


def _describe_extension(ext: x509.Extension) -> str:
    value = ext.value
    if isinstance(value, x509.BasicConstraints):
        text = f"CA:{str(value.ca).upper()}"
    elif isinstance(value, x509.KeyUsage):
        text = _describe_key_usage(value)
    elif isinstance(value, x509.ExtendedKeyUsage):
        text = ", ".join(oid._name for oid in value)  # noqa: SLF001
    elif isinstance(value, x509.SubjectAlternativeName):
        text = ", ".join(f"email:{v}" for v in value.get_values_for_type(x509.RFC822Name))
    elif isinstance(value, x509.SubjectKeyIdentifier):
        text = value.digest.hex(":").upper()
    elif isinstance(value, x509.AuthorityKeyIdentifier):
        text = (value.key_identifier or b"").hex(":").upper()
    else:
        text = ext.oid.dotted_string
    critical = " (critical)" if ext.critical else ""
    return f"{ext.oid._name}{critical}: {text}"  # noqa: SLF001


def describe_certificate(cert: x509.Certificate) -> str:
    """Render a multi-line summary of *cert* for operator output."""
    public_key = cert.public_key()
    key_size = getattr(public_key, "key_size", None)
    lines = [
        f"Serial:      {cert.serial_number:X}",
        f"Subject:     {cert.subject.rfc4514_string()}",
        f"Issuer:      {cert.issuer.rfc4514_string()}",
        f"Not before:  {cert.not_valid_before_utc.isoformat()}",
        f"Not after:   {cert.not_valid_after_utc.isoformat()}",
        f"Public key:  {type(public_key).__name__.lstrip('_')}"
        + (f" ({key_size} bit)" if key_size else ""),
        f"SHA-256:     {fingerprint(cert)}",
        "Extensions:",
    ]
    lines.extend(f"  {_describe_extension(ext)}" for ext in cert.extensions)
    return "\n".join(lines)
