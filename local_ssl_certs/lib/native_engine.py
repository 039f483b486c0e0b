"""Certificate-authority engine running in-process on the cryptography library."""

import configparser
import ssl
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.x509 import oid

from .cert_utils import (
    deserialize_certificate,
    deserialize_csr,
    deserialize_private_key,
    generate_private_key,
    get_dns_names,
    is_ca,
    is_currently_valid,
    name_constraint_violations,
    next_serial_number,
    public_key_fingerprint,
    serialize_certificate,
    serialize_csr,
    serialize_private_key,
    write_file_atomic,
)
from .certificate_builder import CertificateBuilder
from .conf_writer import read_conf_file
from .config import AuthorityPolicy, DistinguishedName
from .descriptor import CertificateDescriptor
from .engine import SSL_SERVER_PURPOSE, CertificateEngine
from .errors import EngineInvocationError, ParseError
from .extensions import EXTENDED_KEY_USAGES, build_extensions, name_from_section
from .logging_config import LOGGER
from .models import CertificateFields

T = TypeVar("T")

EXTENSION_NAMES = {
    "basicConstraints": oid.ExtensionOID.BASIC_CONSTRAINTS,
    "keyUsage": oid.ExtensionOID.KEY_USAGE,
    "extendedKeyUsage": oid.ExtensionOID.EXTENDED_KEY_USAGE,
    "subjectKeyIdentifier": oid.ExtensionOID.SUBJECT_KEY_IDENTIFIER,
    "authorityKeyIdentifier": oid.ExtensionOID.AUTHORITY_KEY_IDENTIFIER,
    "subjectAltName": oid.ExtensionOID.SUBJECT_ALTERNATIVE_NAME,
    "nameConstraints": oid.ExtensionOID.NAME_CONSTRAINTS,
}
EXTENSION_LABELS = {ext_oid: name for name, ext_oid in EXTENSION_NAMES.items()}
USAGE_LABELS = {usage_oid: name for name, usage_oid in EXTENDED_KEY_USAGES.items()}

MAX_CHAIN_DEPTH = 10

PRIVATE_KEY_MODE = 0o600
CERT_MODE = 0o644


def _format_general_name(name: x509.GeneralName) -> str:
    if isinstance(name, x509.DNSName):
        return f"DNS:{name.value}"
    if isinstance(name, x509.IPAddress):
        return f"IP Address:{name.value}"
    if isinstance(name, x509.RFC822Name):
        return f"email:{name.value}"
    if isinstance(name, x509.UniformResourceIdentifier):
        return f"URI:{name.value}"
    if isinstance(name, x509.DirectoryName):
        return f"DirName:{name.value.rfc4514_string()}"
    return str(name.value)


def _format_extension(ext: x509.Extension) -> str:
    value = ext.value
    if isinstance(value, x509.SubjectAlternativeName):
        return ", ".join(_format_general_name(name) for name in value)
    if isinstance(value, x509.BasicConstraints):
        text = f"CA:{'TRUE' if value.ca else 'FALSE'}"
        if value.path_length is not None:
            text += f", pathlen:{value.path_length}"
        return text
    if isinstance(value, x509.NameConstraints):
        permitted = [_format_general_name(n) for n in value.permitted_subtrees or []]
        excluded = [_format_general_name(n) for n in value.excluded_subtrees or []]
        lines = []
        if permitted:
            lines.append("Permitted: " + ", ".join(permitted))
        if excluded:
            lines.append("Excluded: " + ", ".join(excluded))
        return "\n                ".join(lines)
    if isinstance(value, x509.ExtendedKeyUsage):
        return ", ".join(USAGE_LABELS.get(usage, usage.dotted_string) for usage in value)
    if isinstance(value, x509.SubjectKeyIdentifier):
        return value.digest.hex(":").upper()
    if isinstance(value, x509.AuthorityKeyIdentifier) and value.key_identifier:
        return value.key_identifier.hex(":").upper()
    return repr(value)


def describe_certificate(cert: x509.Certificate, extensions: Sequence[str] | None = None) -> str:
    """Human-readable dump of subject, issuer and extensions."""
    lines = [
        f"        Issuer: {cert.issuer.rfc4514_string()}",
        f"        Subject: {cert.subject.rfc4514_string()}",
    ]
    wanted = None
    if extensions:
        wanted = {EXTENSION_NAMES[name] for name in extensions if name in EXTENSION_NAMES}
    selected = [ext for ext in cert.extensions if wanted is None or ext.oid in wanted]
    if selected:
        lines.append("        X509v3 extensions:")
        for ext in selected:
            critical = " critical" if ext.critical else ""
            lines.append(f"            {EXTENSION_LABELS.get(ext.oid, ext.oid.dotted_string)}:{critical}")
            lines.append(f"                {_format_extension(ext)}")
    return "\n".join(lines) + "\n"


class NativeEngine(CertificateEngine):
    """Performs every operation in-process with ``cryptography``.

    Reads the same rendered config the openssl engine consumes, keeps the
    CA serial counter in the workspace serial file and writes files
    atomically, private keys with mode 0600.
    """

    name = "native"

    def _call(self, operation: Sequence[str], func: Callable[[], T]) -> T:
        """Run ``func``, reporting failures like a failed engine process."""
        try:
            return func()
        except (OSError, ValueError, TypeError, KeyError, InvalidSignature, configparser.Error) as e:
            LOGGER.debug("native %s failed: %s", " ".join(operation), e)
            raise EngineInvocationError(["native", *operation], 1, str(e)) from e

    def check_available(self) -> None:
        # cryptography is imported with this module; nothing else to check.
        return None

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
        def run() -> None:
            conf = read_conf_file(conf_path)
            subject = name_from_section(conf[conf["req"]["distinguished_name"]])
            key = generate_private_key(policy.key_algorithm, policy.key_size)
            extensions = build_extensions(conf[extensions_section], conf, key.public_key())
            cert = CertificateBuilder.build_self_signed(subject, key, extensions, days)
            write_file_atomic(
                key_path,
                serialize_private_key(key, password=password, cipher=policy.key_cipher),
                PRIVATE_KEY_MODE,
            )
            write_file_atomic(cert_path, serialize_certificate(cert), CERT_MODE)

        self._call(["req", "-x509", "-new", "-out", str(cert_path)], run)

    def generate_csr(
        self,
        policy: AuthorityPolicy,
        subject: DistinguishedName,
        key_path: Path,
        csr_path: Path,
        conf_path: Path,
    ) -> None:
        def run() -> None:
            key = generate_private_key(policy.key_algorithm, policy.key_size)
            csr = (
                x509.CertificateSigningRequestBuilder()
                .subject_name(subject.to_x509_name())
                .sign(key, hashes.SHA256())
            )
            write_file_atomic(key_path, serialize_private_key(key), PRIVATE_KEY_MODE)
            write_file_atomic(csr_path, serialize_csr(csr), CERT_MODE)

        self._call(["req", "-new", "-subj", subject.to_subject(), "-out", str(csr_path)], run)

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
        def run() -> None:
            if issuer.key_path is None:
                raise ValueError(f"issuer {issuer.cert_path} has no private key")
            csr = deserialize_csr(csr_path.read_bytes())
            issuer_cert = deserialize_certificate(issuer.cert_path.read_bytes())
            issuer_key = deserialize_private_key(issuer.key_path.read_bytes(), issuer.password)
            conf = read_conf_file(ext_path)
            extensions = build_extensions(
                conf[extensions_section], conf, csr.public_key(), issuer_cert
            )
            cert = CertificateBuilder.build_from_csr(
                csr=csr,
                issuer_cert=issuer_cert,
                issuer_key=issuer_key,
                extensions=extensions,
                validity_days=days,
                serial_number=next_serial_number(serial_path),
            )
            write_file_atomic(cert_path, serialize_certificate(cert), CERT_MODE)

        self._call(
            ["x509", "-req", "-in", str(csr_path), "-CA", str(issuer.cert_path), "-out", str(cert_path)],
            run,
        )

    def _load_cert(self, cert_path: Path) -> x509.Certificate:
        return self._call(
            ["x509", "-in", str(cert_path)],
            lambda: deserialize_certificate(Path(cert_path).read_bytes()),
        )

    def dump_certificate_text(
        self, cert_path: Path, extensions: Sequence[str] | None = None
    ) -> str:
        return describe_certificate(self._load_cert(cert_path), extensions)

    def check_not_expired(self, cert_path: Path) -> None:
        cert = self._load_cert(cert_path)
        if datetime.now(UTC) >= cert.not_valid_after_utc:
            raise EngineInvocationError(
                ["native", "x509", "-in", str(cert_path), "-checkend", "0"],
                1,
                "Certificate will expire",
            )

    def check_private_key(self, key_path: Path, password: str | None = None) -> None:
        self._call(
            ["pkey", "-in", str(key_path), "-check"],
            lambda: deserialize_private_key(Path(key_path).read_bytes(), password),
        )

    def _load_bundle(self, path: Path) -> list[x509.Certificate]:
        return self._call(
            ["verify", "-CAfile", str(path)],
            lambda: x509.load_pem_x509_certificates(Path(path).read_bytes()),
        )

    def _default_trust_anchors(self) -> list[x509.Certificate]:
        cafile = ssl.get_default_verify_paths().cafile
        if cafile is None or not Path(cafile).exists():
            raise EngineInvocationError(["native", "verify"], 2, "no system trust store found")
        return self._load_bundle(Path(cafile))

    def verify_chain(
        self,
        cert_path: Path,
        purpose: str = SSL_SERVER_PURPOSE,
        ca_file: Path | None = None,
        untrusted: Path | None = None,
    ) -> None:
        cmd = ["native", "verify", "-purpose", purpose, str(cert_path)]
        if purpose != SSL_SERVER_PURPOSE:
            raise ValueError(f"unsupported purpose: {purpose}")

        leaf = self._load_cert(cert_path)
        anchors = self._load_bundle(ca_file) if ca_file else self._default_trust_anchors()
        intermediates = self._load_bundle(untrusted) if untrusted else []

        def fail(reason: str) -> EngineInvocationError:
            return EngineInvocationError(cmd, 2, f"{cert_path}: verification failed: {reason}")

        if not is_currently_valid(leaf):
            raise fail("certificate is not within its validity period")
        try:
            eku = leaf.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        except x509.ExtensionNotFound:
            pass
        else:
            if oid.ExtendedKeyUsageOID.SERVER_AUTH not in eku:
                raise fail("unsupported certificate purpose")

        leaf_names = get_dns_names(leaf)
        current = leaf
        for _ in range(MAX_CHAIN_DEPTH):
            if current in anchors:
                return
            issuer = self._find_issuer(current, [*intermediates, *anchors])
            if issuer is None:
                raise fail("unable to get local issuer certificate")
            if not is_ca(issuer):
                raise fail("invalid CA certificate")
            if not is_currently_valid(issuer):
                raise fail(f"issuer {issuer.subject.rfc4514_string()} is not within its validity period")
            try:
                constraints = issuer.extensions.get_extension_for_class(x509.NameConstraints).value
            except x509.ExtensionNotFound:
                pass
            else:
                violations = name_constraint_violations(leaf_names, constraints)
                if violations:
                    raise fail(f"permitted subtree violation: {', '.join(violations)}")
            if issuer in anchors:
                return
            current = issuer
        raise fail("certificate chain too long")

    @staticmethod
    def _find_issuer(
        cert: x509.Certificate, candidates: Sequence[x509.Certificate]
    ) -> x509.Certificate | None:
        for candidate in candidates:
            if candidate.subject != cert.issuer or candidate == cert:
                continue
            try:
                cert.verify_directly_issued_by(candidate)
            except (ValueError, TypeError, InvalidSignature):
                continue
            return candidate
        return None

    def read_certificate_fields(self, cert_path: Path) -> CertificateFields:
        cert = self._load_cert(cert_path)
        common_names = cert.subject.get_attributes_for_oid(oid.NameOID.COMMON_NAME)
        if not common_names:
            raise ParseError("Could not find common name (CN) in certificate.")
        return CertificateFields(
            not_after=cert.not_valid_after_utc,
            common_name=str(common_names[0].value),
            dns_names=get_dns_names(cert),
        )

    def public_key_fingerprint(
        self, path: Path, is_private_key: bool = False, password: str | None = None
    ) -> str:
        if is_private_key:
            key = self._call(
                ["pkey", "-pubout", "-in", str(path)],
                lambda: deserialize_private_key(Path(path).read_bytes(), password),
            )
            return public_key_fingerprint(key.public_key())
        return public_key_fingerprint(self._load_cert(path).public_key())
