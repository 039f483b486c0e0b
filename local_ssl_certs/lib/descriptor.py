"""Reference to a certificate/key pair on disk."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .engine import CertificateEngine


@dataclass(eq=False)
class CertificateDescriptor:
    """A certificate and private key pair, identified by their paths.

    The password is only ever held in memory and is kept out of ``repr``.
    """

    cert_path: Path
    key_path: Path | None
    password: str | None = field(default=None, repr=False)
    _details: str | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.cert_path = Path(self.cert_path)
        if self.key_path is not None:
            self.key_path = Path(self.key_path)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CertificateDescriptor):
            return NotImplemented
        return (self.cert_path, self.key_path) == (other.cert_path, other.key_path)

    def __hash__(self) -> int:
        return hash((self.cert_path, self.key_path))

    def get_details(self, engine: "CertificateEngine") -> str:
        """Return the human-readable certificate dump, fetched once.

        Raises:
            EngineInvocationError: If the engine cannot read the certificate
        """
        if self._details is None:
            self._details = engine.dump_certificate_text(
                self.cert_path, extensions=("subjectAltName",)
            )
        return self._details

    @classmethod
    def load(
        cls, cert_path: Path, key_path: Path, password: str | None = None
    ) -> "CertificateDescriptor | None":
        """Return a descriptor if both files exist and are readable.

        Returns:
            The descriptor, or None when either file is missing

        Raises:
            OSError: On any other error reading the files
        """
        try:
            Path(key_path).read_bytes()
            Path(cert_path).read_bytes()
        except FileNotFoundError:
            return None
        return cls(cert_path=Path(cert_path), key_path=Path(key_path), password=password)
