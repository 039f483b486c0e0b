"""Certificate utility functions for key generation, serialization and chain checks."""

import hashlib
import os
import secrets
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    PublicKeyTypes,
)

SUPPORTED_CIPHERS = {"aes256", "aes-256-cbc"}


def generate_private_key(
    key_type: str = "rsa", key_size: int = 2048
) -> CertificateIssuerPrivateKeyTypes:
    """Generate a private key of the given type ("rsa" or "ec")."""
    if key_type == "rsa":
        return rsa.generate_private_key(
            public_exponent=65537,
            key_size=key_size,
        )
    if key_type == "ec":
        return ec.generate_private_key(ec.SECP256R1())
    raise ValueError(f"unsupported key type: {key_type}")


def serialize_private_key(
    key: CertificateIssuerPrivateKeyTypes,
    password: str | None = None,
    cipher: str = "aes256",
) -> bytes:
    """Serialize private key to PEM (PKCS8), encrypted when a password is given.

    Only AES-256 is accepted as ``cipher``; that is what
    ``BestAvailableEncryption`` uses for PKCS8 (PBES2, AES-256-CBC). Other
    ciphers are available through the openssl engine only.

    Raises:
        ValueError: If ``cipher`` is not AES-256
    """
    if password is None:
        encryption: serialization.KeySerializationEncryption = serialization.NoEncryption()
    else:
        if cipher.lower() not in SUPPORTED_CIPHERS:
            raise ValueError(f"unsupported key cipher: {cipher}")
        encryption = serialization.BestAvailableEncryption(password.encode())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def deserialize_private_key(
    pem_data: bytes, password: str | None = None
) -> CertificateIssuerPrivateKeyTypes:
    """Deserialize a signing-capable private key from PEM bytes."""
    key = serialization.load_pem_private_key(
        pem_data, password=password.encode() if password else None
    )
    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise ValueError("expected RSA or EC private key")
    return key


def serialize_certificate(cert: x509.Certificate) -> bytes:
    """Serialize certificate to PEM format."""
    return cert.public_bytes(serialization.Encoding.PEM)


def deserialize_certificate(pem_data: bytes) -> x509.Certificate:
    """Deserialize certificate from PEM bytes."""
    return x509.load_pem_x509_certificate(pem_data)


def serialize_csr(csr: x509.CertificateSigningRequest) -> bytes:
    """Serialize CSR to PEM format."""
    return csr.public_bytes(serialization.Encoding.PEM)


def deserialize_csr(pem_data: bytes) -> x509.CertificateSigningRequest:
    """Deserialize CSR from PEM bytes."""
    return x509.load_pem_x509_csr(pem_data)


def generate_serial_number() -> int:
    """Generate a 128-bit random serial number from UUID4."""
    return uuid.uuid4().int


def next_serial_number(serial_path: Path) -> int:
    """Read, increment and store the CA serial counter.

    Behaves like ``openssl x509 -CAserial file -CAcreateserial``: the file
    holds the last serial in hex and is created with a random value when
    missing.
    """
    if serial_path.exists():
        serial = int(serial_path.read_text().strip(), 16) + 1
    else:
        serial = secrets.randbits(159) | 1
    serial_path.write_text(f"{serial:X}\n")
    return serial


def public_key_fingerprint(public_key: PublicKeyTypes) -> str:
    """SHA-256 of the DER SubjectPublicKeyInfo, as hex."""
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(der).hexdigest()


def write_file_atomic(path: Path, data: bytes, mode: int = 0o644) -> None:
    """Write ``data`` to a temporary sibling and rename it over ``path``."""
    tmp_path = path.with_name(f".{path.name}.tmp")
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def create_truststore_bundle(intermediate_cert_pem: bytes, root_cert_pem: bytes) -> bytes:
    """Create truststore bundle by concatenating Intermediate + Root certs in PEM format."""
    return intermediate_cert_pem + b"\n" + root_cert_pem


def is_currently_valid(cert: x509.Certificate, now: datetime | None = None) -> bool:
    """True if ``now`` falls inside the certificate's validity window."""
    now = now or datetime.now(UTC)
    return cert.not_valid_before_utc <= now < cert.not_valid_after_utc


def is_ca(cert: x509.Certificate) -> bool:
    """True if the certificate carries ``basicConstraints CA:TRUE``."""
    try:
        bc = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return False
    return bc.ca


def get_dns_names(cert: x509.Certificate) -> list[str]:
    """Every DNS entry of the SubjectAlternativeName extension."""
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return []
    return san.get_values_for_type(x509.DNSName)


def dns_name_matches(name: str, constraint: str) -> bool:
    """Match a DNS name against a name-constraint subtree.

    A leading dot matches subdomains only; otherwise the constraint matches
    itself and its subdomains.
    """
    name = name.lower().rstrip(".")
    constraint = constraint.lower()
    if constraint.startswith("."):
        return name.endswith(constraint)
    return name == constraint or name.endswith("." + constraint)


def name_constraint_violations(
    dns_names: Sequence[str], constraints: x509.NameConstraints
) -> list[str]:
    """DNS names not allowed by ``constraints``."""
    permitted = [
        subtree.value
        for subtree in constraints.permitted_subtrees or []
        if isinstance(subtree, x509.DNSName)
    ]
    excluded = [
        subtree.value
        for subtree in constraints.excluded_subtrees or []
        if isinstance(subtree, x509.DNSName)
    ]
    violations = []
    for name in dns_names:
        if permitted and not any(dns_name_matches(name, c) for c in permitted):
            violations.append(name)
        elif any(dns_name_matches(name, c) for c in excluded):
            violations.append(name)
    return violations
