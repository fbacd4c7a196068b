"""Key material generation: RSA key pairs and CSRs."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

if TYPE_CHECKING:
    from cryptography.hazmat.primitives import hashes

log = logging.getLogger(__name__)

MIN_KEY_SIZE = 2048
_PUBLIC_EXPONENT = 65537


def generate_private_key(key_size: int) -> rsa.RSAPrivateKey:
    """Generate an RSA key of *key_size* bits (at least 2048)."""
    if key_size < MIN_KEY_SIZE:
        msg = f"RSA key size {key_size} is below the minimum of {MIN_KEY_SIZE}"
        raise ValueError(msg)
    log.debug("Generating %d-bit RSA key", key_size)
    return rsa.generate_private_key(public_exponent=_PUBLIC_EXPONENT, key_size=key_size)


def build_csr(
    key: rsa.RSAPrivateKey,
    subject: x509.Name,
    extensions: tuple[tuple[x509.ExtensionType, bool], ...],
    algorithm: hashes.HashAlgorithm,
) -> x509.CertificateSigningRequest:
    """Build and self-sign a CSR carrying *subject* and *extensions*."""
    builder = x509.CertificateSigningRequestBuilder().subject_name(subject)
    for ext, critical in extensions:
        builder = builder.add_extension(ext, critical=critical)
    return builder.sign(key, algorithm)


def private_key_pem(key: rsa.RSAPrivateKey) -> bytes:
    """Unencrypted PKCS#8 PEM; only ever written owner-only into ``private/``."""
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def load_private_key(data: bytes) -> rsa.RSAPrivateKey:
    key = serialization.load_pem_private_key(data, password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        msg = f"Expected an RSA private key, got {type(key).__name__}"
        raise TypeError(msg)
    return key
