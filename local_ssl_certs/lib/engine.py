"""Certificate-authority engine interface."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from .config import AuthorityPolicy, DistinguishedName
from .descriptor import CertificateDescriptor
from .models import CertificateFields

SSL_SERVER_PURPOSE = "sslserver"


class CertificateEngine(ABC):
    """Performs the cryptographic work for the hierarchy builder and validator.

    Every operation blocks until it is done. Failures surface as
    EngineInvocationError; implementations never print secrets or pass them
    where other processes could read them.
    """

    name: str = ""

    @abstractmethod
    def check_available(self) -> None:
        """Raise EngineUnavailable if the engine cannot be used."""

    @abstractmethod
    def generate_self_signed_cert(
        self,
        policy: AuthorityPolicy,
        key_path: Path,
        cert_path: Path,
        conf_path: Path,
        extensions_section: str,
        days: int,
        password: str,
    ) -> None:
        """Create a new key pair and a self-signed certificate.

        The subject is the config's ``req`` distinguished name; the key is
        written encrypted with ``password``.
        """

    @abstractmethod
    def generate_csr(
        self,
        policy: AuthorityPolicy,
        subject: DistinguishedName,
        key_path: Path,
        csr_path: Path,
        conf_path: Path,
    ) -> None:
        """Create a new unencrypted key pair and a CSR for ``subject``."""

    @abstractmethod
    def sign_csr(
        self,
        csr_path: Path,
        issuer: CertificateDescriptor,
        cert_path: Path,
        ext_path: Path,
        extensions_section: str,
        serial_path: Path,
        days: int,
    ) -> None:
        """Sign a CSR with the issuer's certificate and key."""

    @abstractmethod
    def dump_certificate_text(
        self, cert_path: Path, extensions: Sequence[str] | None = None
    ) -> str:
        """Human-readable dump of the certificate, headers suppressed."""

    @abstractmethod
    def check_not_expired(self, cert_path: Path) -> None:
        """Raise EngineInvocationError if the certificate has expired."""

    @abstractmethod
    def check_private_key(self, key_path: Path, password: str | None = None) -> None:
        """Raise EngineInvocationError if the key does not parse."""

    @abstractmethod
    def verify_chain(
        self,
        cert_path: Path,
        purpose: str = SSL_SERVER_PURPOSE,
        ca_file: Path | None = None,
        untrusted: Path | None = None,
    ) -> None:
        """Raise EngineInvocationError unless the certificate chains to a trusted root."""

    @abstractmethod
    def read_certificate_fields(self, cert_path: Path) -> CertificateFields:
        """Extract not-after, common name and SAN DNS entries."""

    @abstractmethod
    def public_key_fingerprint(
        self, path: Path, is_private_key: bool = False, password: str | None = None
    ) -> str:
        """Comparable representation of the public key of a certificate or key."""


def get_engine(name: str) -> CertificateEngine:
    """Return an engine instance by name ("openssl" or "native")."""
    # Imported here to keep the two engines independent of each other.
    if name == "openssl":
        from .openssl_engine import OpenSSLEngine

        return OpenSSLEngine()
    if name == "native":
        from .native_engine import NativeEngine

        return NativeEngine()
    raise ValueError(f"unknown engine: {name}")
