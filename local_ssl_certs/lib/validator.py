"""Post-issuance validation of an SSL certificate/key pair."""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

from .descriptor import CertificateDescriptor
from .engine import SSL_SERVER_PURPOSE, CertificateEngine
from .errors import (
    EngineInvocationError,
    ExpiredCertificateError,
    InvalidPrivateKeyError,
    KeyMismatchError,
    MissingHostnamesError,
    UntrustedCertificateError,
    ValidationErrors,
    ValidationFailure,
)
from .logging_config import LOGGER
from .models import CertificateFields, ValidationReport

EXPIRY_WARNING_WINDOW = timedelta(days=14)


def check_expiry(not_after: datetime, now: datetime) -> str | None:
    """Fail if expired; return a warning if expiry is less than 14 days away.

    Raises:
        ExpiredCertificateError: If ``now`` is at or past ``not_after``
    """
    if now >= not_after:
        raise ExpiredCertificateError(f"Certificate expired on {not_after.isoformat()}")
    if not_after - now < EXPIRY_WARNING_WINDOW:
        return f"Certificate expires on {not_after.isoformat()}"
    return None


def check_names(fields: CertificateFields, hostnames: Sequence[str]) -> list[str]:
    """Return the certificate's names, failing if any hostname is not among them.

    Raises:
        MissingHostnamesError: Listing every hostname the certificate lacks
    """
    names = fields.names
    missing = [hostname for hostname in hostnames if hostname not in names]
    if missing:
        raise MissingHostnamesError(missing)
    return names


def validate_ssl_cert(
    descriptor: CertificateDescriptor,
    hostnames: Sequence[str],
    engine: CertificateEngine,
    *,
    ca_file: Path | None = None,
    untrusted: Path | None = None,
    now: datetime | None = None,
    fail_fast: bool = True,
) -> ValidationReport:
    """Check that a certificate/key pair is usable for ``hostnames``.

    Checks, in order: the certificate is not expired, the key parses, the
    certificate chains to a trusted root for TLS servers, the not-after date
    (warning within 14 days of expiry), hostname coverage by CN and SAN, and
    that key and certificate share the same public key.

    Args:
        descriptor: Certificate and key to validate
        hostnames: Names the certificate must cover
        engine: Certificate-authority engine used for every check
        ca_file: Trusted CA bundle; the system trust store when None
        untrusted: Extra intermediate certificates for chain building
        now: Reference time for the expiry window, defaults to the current time
        fail_fast: Stop at the first failure. When False every independent
            check runs and all failures are raised together.

    Returns:
        ValidationReport with the expiry date, covered names and warnings

    Raises:
        ValidationFailure: The first failure (fail_fast) or ValidationErrors
            with all of them
        ParseError: If engine output lacks an expected field
    """
    now = now or datetime.now(UTC)
    cert_path = descriptor.cert_path
    key_path = descriptor.key_path
    if key_path is None:
        raise ValueError(f"no private key given for {cert_path}")

    LOGGER.debug("Validating SSL cert %s for hostnames: %s", cert_path, list(hostnames))
    report = ValidationReport(cert_path=str(cert_path))
    failures: list[ValidationFailure] = []

    def run(check: Callable[[], None]) -> bool:
        try:
            check()
        except ValidationFailure as failure:
            if fail_fast:
                raise
            failures.append(failure)
            return False
        return True

    def not_expired() -> None:
        try:
            engine.check_not_expired(cert_path)
        except EngineInvocationError as e:
            raise ExpiredCertificateError(f"Certificate {cert_path} has expired") from e

    def key_parses() -> None:
        try:
            engine.check_private_key(key_path, descriptor.password)
        except EngineInvocationError as e:
            raise InvalidPrivateKeyError(f"Private key {key_path} is not valid") from e

    def chain_trusted() -> None:
        try:
            engine.verify_chain(cert_path, SSL_SERVER_PURPOSE, ca_file, untrusted)
        except EngineInvocationError as e:
            raise UntrustedCertificateError(
                f"Certificate {cert_path} is not trusted for {SSL_SERVER_PURPOSE}"
            ) from e

    cert_ok = run(not_expired)
    key_ok = run(key_parses)
    run(chain_trusted)

    try:
        fields = engine.read_certificate_fields(cert_path)
    except EngineInvocationError as e:
        if failures:
            raise ValidationErrors(failures) from e
        raise
    report.not_after = fields.not_after

    def expiry_window() -> None:
        warning = check_expiry(fields.not_after, now)
        if warning:
            LOGGER.warning("Warning: %s", warning)
            report.warnings.append(warning)
        else:
            LOGGER.debug("Certificate valid until %s", fields.not_after.isoformat())

    def names_covered() -> None:
        report.names = check_names(fields, hostnames)
        LOGGER.debug("Common name and subject alt names: %s", report.names)

    def key_matches() -> None:
        cert_key = engine.public_key_fingerprint(cert_path)
        private_key = engine.public_key_fingerprint(
            key_path, is_private_key=True, password=descriptor.password
        )
        if cert_key != private_key:
            raise KeyMismatchError("Certificate and private key do not match.")

    if cert_ok:
        run(expiry_window)
    run(names_covered)
    if key_ok:
        run(key_matches)

    if failures:
        raise ValidationErrors(failures)
    return report
