"""Exception hierarchy for certificate issuance and validation."""

from collections.abc import Sequence


class CertError(Exception):
    """Base class for every error raised by local_ssl_certs."""


class EngineUnavailable(CertError):
    """The certificate-authority engine cannot be used (e.g. openssl missing)."""


class EngineInvocationError(CertError):
    """An engine invocation exited with a non-zero status.

    Attributes:
        cmd: Full argument vector of the failed invocation (never contains secrets)
        returncode: Exit status of the process
        stderr: Captured standard error, possibly empty
    """

    def __init__(self, cmd: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        quoted = " ".join(f'"{arg}"' for arg in self.cmd)
        message = f"Command:\n  {quoted}\nfailed with exit code {returncode}"
        if stderr:
            message += f"\n{stderr.rstrip()}"
        super().__init__(message)


class OverwriteDeclined(CertError):
    """The operator declined a confirmation prompt."""


class ParseError(CertError):
    """An expected pattern was absent from engine output."""


class WorkspaceCleanupFailure(CertError):
    """The ephemeral workspace holding a temporary root CA key could not be removed."""


class ValidationFailure(CertError):
    """Base class for a certificate that failed validation."""


class ExpiredCertificateError(ValidationFailure):
    """The certificate is past its not-after date."""


class InvalidPrivateKeyError(ValidationFailure):
    """The private key file does not parse as a valid key."""


class UntrustedCertificateError(ValidationFailure):
    """The certificate does not chain to a trusted root for the requested purpose."""


class MissingHostnamesError(ValidationFailure):
    """Some requested hostnames are covered neither by the CN nor by the SAN."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            f"Some hostnames not found in certificate: {', '.join(self.missing)}"
        )


class KeyMismatchError(ValidationFailure):
    """The private key does not belong to the certificate."""


class ValidationErrors(ValidationFailure):
    """Several validation failures collected in one pass."""

    def __init__(self, failures: Sequence[ValidationFailure]) -> None:
        self.failures = list(failures)
        super().__init__("; ".join(str(failure) for failure in self.failures))
