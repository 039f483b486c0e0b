"""Result models for certificate inspection and validation."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class CertificateFields:
    """Fields of a certificate the validator needs.

    Extracted from engine text output (openssl) or straight from the
    certificate object (native engine).
    """

    not_after: datetime
    common_name: str
    dns_names: list[str] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        """Common name followed by every SAN DNS entry."""
        return [self.common_name, *self.dns_names]


@dataclass
class ValidationReport:
    """Outcome of a successful validation run.

    Contains the expiry date, the names the certificate covers and any
    non-fatal warnings raised along the way.
    """

    cert_path: str
    not_after: datetime | None = None
    names: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
