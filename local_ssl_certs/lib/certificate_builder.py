"""Certificate builder for X.509 certificate construction."""

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes

from .cert_utils import generate_serial_number
from .extensions import ExtensionSpec


class CertificateBuilder:
    """Builds X.509 certificates for the CA hierarchy and leaf certificates."""

    @staticmethod
    def _with_extensions(
        builder: x509.CertificateBuilder, extensions: Sequence[ExtensionSpec]
    ) -> x509.CertificateBuilder:
        for spec in extensions:
            builder = builder.add_extension(spec.value, critical=spec.critical)
        return builder

    @staticmethod
    def build_self_signed(
        subject: x509.Name,
        private_key: CertificateIssuerPrivateKeyTypes,
        extensions: Sequence[ExtensionSpec],
        validity_days: int,
    ) -> x509.Certificate:
        """Build a self-signed Root CA certificate.

        Args:
            subject: Subject (and issuer) name
            private_key: Key that signs its own certificate
            extensions: Extensions to add, in order
            validity_days: Certificate validity period in days

        Returns:
            Self-signed X.509 certificate
        """
        not_before = datetime.now(UTC)
        not_after = not_before + timedelta(days=validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(private_key.public_key())
            .serial_number(generate_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
        )
        builder = CertificateBuilder._with_extensions(builder, extensions)

        return builder.sign(private_key, hashes.SHA256())

    @staticmethod
    def build_from_csr(
        csr: x509.CertificateSigningRequest,
        issuer_cert: x509.Certificate,
        issuer_key: CertificateIssuerPrivateKeyTypes,
        extensions: Sequence[ExtensionSpec],
        validity_days: int,
        serial_number: int,
    ) -> x509.Certificate:
        """Build a certificate from a CSR, signed by the issuing CA.

        The CSR supplies subject DN and public key; extensions come from the
        issuer's policy, never from the request.

        Args:
            csr: Certificate signing request
            issuer_cert: Issuing CA certificate
            issuer_key: Issuing CA private key
            extensions: Extensions to add, in order
            validity_days: Certificate validity period in days
            serial_number: Serial from the CA serial counter

        Returns:
            X.509 certificate signed by the issuer

        Raises:
            ValueError: If CSR signature is invalid
        """
        if not csr.is_signature_valid:
            raise ValueError("CSR signature validation failed")

        not_before = datetime.now(UTC)
        not_after = not_before + timedelta(days=validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(issuer_cert.subject)
            .public_key(csr.public_key())
            .serial_number(serial_number)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
        )
        builder = CertificateBuilder._with_extensions(builder, extensions)

        return builder.sign(issuer_key, hashes.SHA256())
