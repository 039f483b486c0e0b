"""Test fixtures for local_ssl_certs tests."""

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509 import oid

from local_ssl_certs.lib.builder import CertBuilder
from local_ssl_certs.lib.cert_utils import (
    generate_private_key,
    generate_serial_number,
    serialize_certificate,
    serialize_private_key,
)
from local_ssl_certs.lib.config import CertOptions, DistinguishedName
from local_ssl_certs.lib.descriptor import CertificateDescriptor
from local_ssl_certs.lib.errors import EngineInvocationError
from local_ssl_certs.lib.native_engine import NativeEngine


@dataclass
class FakePrompts:
    """Scripted confirmation and password collaborators.

    ``answers`` is consumed in order; when it runs out ``default`` is used.
    """

    answers: list[bool] = field(default_factory=list)
    default: bool = True
    password: str = "correct horse battery staple"
    messages: list[str] = field(default_factory=list)
    password_prompts: list[str] = field(default_factory=list)

    def confirm(self, message: str, default_yes: bool = False) -> bool:
        self.messages.append(message)
        if self.answers:
            return self.answers.pop(0)
        return self.default

    def prompt_password(self, prompt: str, confirm_prompt: str | None = None) -> str:
        self.password_prompts.append(prompt)
        return self.password


class FailingSignEngine(NativeEngine):
    """Native engine whose CSR signing always fails like a broken openssl run."""

    def sign_csr(self, csr_path: Path, issuer: CertificateDescriptor, *args: object) -> None:
        raise EngineInvocationError(
            ["openssl", "x509", "-req", "-in", str(csr_path), "-CA", str(issuer.cert_path)],
            1,
            "unable to load CA private key",
        )


@dataclass
class ChainFiles:
    """A root -> intermediate -> leaf chain written to disk."""

    root_cert: Path
    intermediate_cert: Path
    bundle: Path
    leaf: CertificateDescriptor


@pytest.fixture
def engine() -> NativeEngine:
    """Return the in-process engine."""
    return NativeEngine()


@pytest.fixture
def prompts() -> FakePrompts:
    """Return prompts that answer yes to everything."""
    return FakePrompts()


@pytest.fixture
def cert_options() -> CertOptions:
    """Return test certificate options."""
    return CertOptions(org="Test Org", country_name="GB", key_size=2048)


@pytest.fixture
def cert_dir(tmp_path: Path) -> Path:
    """Return the certificate store directory (not yet created)."""
    return tmp_path / "certs"


@pytest.fixture
def builder(
    cert_dir: Path,
    cert_options: CertOptions,
    engine: NativeEngine,
    prompts: FakePrompts,
) -> Iterator[CertBuilder]:
    """Yield a builder with a temporary root key."""
    with CertBuilder.create(
        cert_dir,
        options=cert_options,
        engine=engine,
        confirm_fn=prompts.confirm,
        password_fn=prompts.prompt_password,
    ) as builder:
        yield builder


def _sign(
    subject: x509.Name,
    public_key_owner: RSAPrivateKey,
    issuer_name: x509.Name,
    issuer_key: RSAPrivateKey,
    not_before: datetime,
    not_after: datetime,
    extensions: list[tuple[x509.ExtensionType, bool]],
) -> x509.Certificate:
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(public_key_owner.public_key())
        .serial_number(generate_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
    )
    for extension, critical in extensions:
        builder = builder.add_extension(extension, critical=critical)
    return builder.sign(issuer_key, hashes.SHA256())


def _dn(common_name: str) -> x509.Name:
    return DistinguishedName(country="GB", organization="Test Org", common_name=common_name).to_x509_name()


@pytest.fixture
def make_chain(tmp_path: Path) -> Callable[..., ChainFiles]:
    """Return a factory writing a CA chain plus a leaf valid for ``leaf_lifetime``."""

    def factory(
        hostnames: list[str],
        leaf_lifetime: timedelta = timedelta(days=365),
        common_name: str | None = None,
        directory: str = "chain",
    ) -> ChainFiles:
        out = tmp_path / directory
        out.mkdir(parents=True, exist_ok=True)
        now = datetime.now(UTC)
        ca_usage = x509.KeyUsage(
            digital_signature=False,
            content_commitment=False,
            key_encipherment=False,
            data_encipherment=False,
            key_agreement=False,
            key_cert_sign=True,
            crl_sign=True,
            encipher_only=False,
            decipher_only=False,
        )

        root_key = generate_private_key("rsa", 2048)
        root_name = _dn("Fixture Root CA")
        root_cert = _sign(
            root_name,
            root_key,
            root_name,
            root_key,
            now - timedelta(days=1),
            now + timedelta(days=3650),
            [(x509.BasicConstraints(ca=True, path_length=None), True), (ca_usage, True)],
        )

        intermediate_key = generate_private_key("rsa", 2048)
        intermediate_name = _dn("Fixture Intermediate CA")
        intermediate_cert = _sign(
            intermediate_name,
            intermediate_key,
            root_name,
            root_key,
            now - timedelta(days=1),
            now + timedelta(days=3650),
            [
                (x509.BasicConstraints(ca=True, path_length=0), True),
                (ca_usage, True),
                (x509.NameConstraints(permitted_subtrees=[x509.DNSName(".test")], excluded_subtrees=None), True),
            ],
        )

        leaf_key = generate_private_key("rsa", 2048)
        leaf_not_after = now + leaf_lifetime
        leaf_cert = _sign(
            _dn(common_name or hostnames[0]),
            leaf_key,
            intermediate_name,
            intermediate_key,
            min(now - timedelta(days=30), leaf_not_after - timedelta(days=1)),
            leaf_not_after,
            [
                (x509.BasicConstraints(ca=False, path_length=None), True),
                (x509.ExtendedKeyUsage([oid.ExtendedKeyUsageOID.SERVER_AUTH]), False),
                (x509.SubjectAlternativeName([x509.DNSName(h) for h in hostnames]), False),
            ],
        )

        root_path = out / "root.crt"
        intermediate_path = out / "intermediate.crt"
        bundle_path = out / "bundle.pem"
        leaf_cert_path = out / "leaf.crt"
        leaf_key_path = out / "leaf.key"
        root_path.write_bytes(serialize_certificate(root_cert))
        intermediate_path.write_bytes(serialize_certificate(intermediate_cert))
        bundle_path.write_bytes(
            serialize_certificate(intermediate_cert) + serialize_certificate(root_cert)
        )
        leaf_cert_path.write_bytes(serialize_certificate(leaf_cert))
        leaf_key_path.write_bytes(serialize_private_key(leaf_key))

        return ChainFiles(
            root_cert=root_path,
            intermediate_cert=intermediate_path,
            bundle=bundle_path,
            leaf=CertificateDescriptor(cert_path=leaf_cert_path, key_path=leaf_key_path),
        )

    return factory
