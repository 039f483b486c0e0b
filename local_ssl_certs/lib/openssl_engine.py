"""Certificate-authority engine backed by the openssl command line tool."""

import shutil
from collections.abc import Sequence
from pathlib import Path

from .config import AuthorityPolicy, DistinguishedName
from .descriptor import CertificateDescriptor
from .engine import SSL_SERVER_PURPOSE, CertificateEngine
from .errors import EngineInvocationError, EngineUnavailable
from .models import CertificateFields
from .openssl_text import parse_common_name, parse_dns_names, parse_not_after
from .process_util import run_command

# Header fields left out of certificate dumps.
CERTOPT_NO_HEADERS = "no_header,no_version,no_serial,no_validity,no_pubkey,no_sigdump"

EC_CURVE = "P-256"


class OpenSSLEngine(CertificateEngine):
    """Runs each operation as an ``openssl`` subprocess.

    Passwords are piped to the child's stdin (``-pass*/-passin stdin``)
    rather than placed on the command line, where other processes could
    read them.
    """

    name = "openssl"

    def __init__(self, openssl_path: str = "openssl") -> None:
        self.openssl_path = openssl_path

    def _run(self, args: Sequence[str], secret: str | None = None) -> str:
        return run_command([self.openssl_path, *args], secret=secret).stdout

    def check_available(self) -> None:
        if shutil.which(self.openssl_path) is None:
            raise EngineUnavailable("openssl command not available.")
        try:
            self._run(["version"])
        except EngineInvocationError as e:
            raise EngineUnavailable("openssl command not available.") from e

    def _generate_key(
        self, policy: AuthorityPolicy, key_path: Path, password: str | None = None
    ) -> None:
        args = ["genpkey", "-out", str(key_path)]
        if policy.key_algorithm == "rsa":
            args += ["-algorithm", "RSA", "-pkeyopt", f"rsa_keygen_bits:{policy.key_size}"]
        elif policy.key_algorithm == "ec":
            args += ["-algorithm", "EC", "-pkeyopt", f"ec_paramgen_curve:{EC_CURVE}"]
        else:
            raise ValueError(f"unsupported key type: {policy.key_algorithm}")
        if password is not None:
            args += [f"-{policy.key_cipher}", "-pass", "stdin"]
        self._run(args, secret=password)

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
        self._generate_key(policy, key_path, password)
        self._run(
            [
                "req",
                "-x509",
                "-new",
                "-key",
                str(key_path),
                "-passin",
                "stdin",
                "-out",
                str(cert_path),
                "-days",
                str(days),
                "-config",
                str(conf_path),
                "-extensions",
                extensions_section,
            ],
            secret=password,
        )

    def generate_csr(
        self,
        policy: AuthorityPolicy,
        subject: DistinguishedName,
        key_path: Path,
        csr_path: Path,
        conf_path: Path,
    ) -> None:
        self._generate_key(policy, key_path)
        self._run(
            [
                "req",
                "-batch",
                "-new",
                "-key",
                str(key_path),
                "-out",
                str(csr_path),
                "-config",
                str(conf_path),
                "-subj",
                subject.to_subject(),
            ]
        )

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
        if issuer.key_path is None:
            raise ValueError(f"issuer {issuer.cert_path} has no private key")
        args = [
            "x509",
            "-req",
            "-in",
            str(csr_path),
            "-CA",
            str(issuer.cert_path),
            "-CAkey",
            str(issuer.key_path),
            "-CAserial",
            str(serial_path),
            "-CAcreateserial",
            "-extfile",
            str(ext_path),
            "-extensions",
            extensions_section,
            "-sha256",
            "-days",
            str(days),
            "-out",
            str(cert_path),
        ]
        if issuer.password:
            args += ["-passin", "stdin"]
        self._run(args, secret=issuer.password or None)

    def dump_certificate_text(
        self, cert_path: Path, extensions: Sequence[str] | None = None
    ) -> str:
        args = ["x509", "-in", str(cert_path), "-noout", "-text", "-certopt", CERTOPT_NO_HEADERS]
        if extensions:
            args += ["-ext", ",".join(extensions)]
        return self._run(args)

    def check_not_expired(self, cert_path: Path) -> None:
        self._run(["x509", "-in", str(cert_path), "-noout", "-checkend", "0"])

    def check_private_key(self, key_path: Path, password: str | None = None) -> None:
        args = ["pkey", "-in", str(key_path), "-noout", "-check"]
        if password:
            args += ["-passin", "stdin"]
        self._run(args, secret=password or None)

    def verify_chain(
        self,
        cert_path: Path,
        purpose: str = SSL_SERVER_PURPOSE,
        ca_file: Path | None = None,
        untrusted: Path | None = None,
    ) -> None:
        args = ["verify", "-purpose", purpose]
        if ca_file is not None:
            args += ["-CAfile", str(ca_file)]
        if untrusted is not None:
            args += ["-untrusted", str(untrusted)]
        args.append(str(cert_path))
        self._run(args)

    def read_certificate_fields(self, cert_path: Path) -> CertificateFields:
        end_date = self._run(["x509", "-enddate", "-noout", "-in", str(cert_path)])
        subject = self._run(["x509", "-noout", "-subject", "-in", str(cert_path)])
        alt_names = self._run(["x509", "-noout", "-ext", "subjectAltName", "-in", str(cert_path)])
        return CertificateFields(
            not_after=parse_not_after(end_date),
            common_name=parse_common_name(subject),
            dns_names=parse_dns_names(alt_names),
        )

    def public_key_fingerprint(
        self, path: Path, is_private_key: bool = False, password: str | None = None
    ) -> str:
        if not is_private_key:
            return self._run(["x509", "-noout", "-pubkey", "-in", str(path)]).strip()
        args = ["pkey", "-pubout", "-in", str(path)]
        if password:
            args += ["-passin", "stdin"]
        return self._run(args, secret=password or None).strip()
