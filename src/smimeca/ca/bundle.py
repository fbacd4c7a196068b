"""PKCS#12 export bundles for import into mail clients."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    pkcs12,
)

from smimeca.ca.errors import UsageError

if TYPE_CHECKING:
    from cryptography import x509
    from cryptography.hazmat.primitives.asymmetric import rsa


def friendly_name(identifier: str) -> bytes:
    return f"{identifier} Email Certificate".encode()


def check_password(password: bytes | str | None) -> bytes:
    """Normalise a bundle password, rejecting empty ones."""
    if isinstance(password, str):
        password = password.encode("utf-8")
    if not password:
        msg = "A non-empty bundle password is required"
        raise UsageError(msg)
    return password


def build_bundle(
    identifier: str,
    key: rsa.RSAPrivateKey,
    cert: x509.Certificate,
    root_cert: x509.Certificate,
    password: bytes,
) -> bytes:
    """Serialise key, certificate and root into a password-protected PKCS#12."""
    return pkcs12.serialize_key_and_certificates(
        name=friendly_name(identifier),
        key=key,
        cert=cert,
        cas=[root_cert],
        encryption_algorithm=BestAvailableEncryption(password),
    )
