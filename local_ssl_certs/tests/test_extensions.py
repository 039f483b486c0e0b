"""Tests for translating config extension values into x509 extensions."""

from datetime import UTC, datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509 import oid

from local_ssl_certs.lib.cert_utils import generate_private_key
from local_ssl_certs.lib.config import (
    CA_EXTENSIONS_SECTION,
    ROOT_EXTENSIONS_SECTION,
    AuthorityPolicy,
    CertOptions,
)
from local_ssl_certs.lib.extensions import ExtensionSpec, build_extensions, name_from_section


@pytest.fixture
def shared_config() -> dict[str, dict[str, str]]:
    """Return the shared config of the default policy."""
    return AuthorityPolicy.from_options(CertOptions()).shared_config()


def _by_type(specs: list[ExtensionSpec], ext_type: type) -> ExtensionSpec:
    return next(spec for spec in specs if isinstance(spec.value, ext_type))


class TestBuildExtensions:
    """Tests for build_extensions()."""

    def test_root_extensions(self, shared_config: dict[str, dict[str, str]]) -> None:
        """Root section yields a critical CA:TRUE and keyCertSign usage."""
        key = generate_private_key("ec")

        specs = build_extensions(shared_config[ROOT_EXTENSIONS_SECTION], shared_config, key.public_key())

        basic = _by_type(specs, x509.BasicConstraints)
        assert basic.critical is True
        assert basic.value.ca is True
        usage = _by_type(specs, x509.KeyUsage)
        assert usage.critical is True
        assert usage.value.key_cert_sign is True
        assert usage.value.digital_signature is False
        ski = _by_type(specs, x509.SubjectKeyIdentifier)
        assert ski.value == x509.SubjectKeyIdentifier.from_public_key(key.public_key())

    def test_dir_name_resolves_section(self, shared_config: dict[str, dict[str, str]]) -> None:
        """dirName:<section> becomes a DirectoryName built from that section."""
        key = generate_private_key("ec")

        specs = build_extensions(shared_config[ROOT_EXTENSIONS_SECTION], shared_config, key.public_key())

        san = _by_type(specs, x509.SubjectAlternativeName)
        (directory,) = san.value.get_values_for_type(x509.DirectoryName)
        cn = directory.get_attributes_for_oid(oid.NameOID.COMMON_NAME)[0].value
        assert cn == "Acme Root Dev CA"

    def test_intermediate_name_constraint(self, shared_config: dict[str, dict[str, str]]) -> None:
        """The intermediate section permits only the configured DNS subtree."""
        key = generate_private_key("ec")

        specs = build_extensions(shared_config[CA_EXTENSIONS_SECTION], shared_config, key.public_key())

        constraints = _by_type(specs, x509.NameConstraints)
        assert constraints.critical is True
        assert constraints.value.permitted_subtrees == [x509.DNSName(".test")]
        assert constraints.value.excluded_subtrees is None

    def test_authority_key_identifier_uses_issuer_ski(self, shared_config: dict[str, dict[str, str]]) -> None:
        """AKI is taken from the issuer's subject key identifier when present."""
        issuer_key = generate_private_key("ec")
        issuer_ski = x509.SubjectKeyIdentifier.from_public_key(issuer_key.public_key())
        issuer_cert = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([x509.NameAttribute(oid.NameOID.COMMON_NAME, "issuer")]))
            .issuer_name(x509.Name([x509.NameAttribute(oid.NameOID.COMMON_NAME, "issuer")]))
            .public_key(issuer_key.public_key())
            .serial_number(1)
            .not_valid_before(datetime(2024, 1, 1, tzinfo=UTC))
            .not_valid_after(datetime(2034, 1, 1, tzinfo=UTC))
            .add_extension(issuer_ski, critical=False)
            .sign(issuer_key, hashes.SHA256())
        )
        subject_key = generate_private_key("ec")

        specs = build_extensions(
            {"authorityKeyIdentifier": "keyid:always"},
            shared_config,
            subject_key.public_key(),
            issuer_cert,
        )

        assert specs[0].value.key_identifier == issuer_ski.digest

    def test_leaf_san_dns_entries(self, shared_config: dict[str, dict[str, str]]) -> None:
        """Leaf SANs become DNS names in order."""
        key = generate_private_key("ec")

        specs = build_extensions(
            {"subjectAltName": "DNS:a.test,DNS:b.test", "extendedKeyUsage": "serverAuth,clientAuth"},
            shared_config,
            key.public_key(),
        )

        assert specs[0].value.get_values_for_type(x509.DNSName) == ["a.test", "b.test"]
        assert list(specs[1].value) == [
            oid.ExtendedKeyUsageOID.SERVER_AUTH,
            oid.ExtendedKeyUsageOID.CLIENT_AUTH,
        ]

    @pytest.mark.parametrize(
        "entries",
        [
            {"certificatePolicies": "1.2.3.4"},
            {"keyUsage": "critical,flyToMoon"},
            {"extendedKeyUsage": "teleport"},
            {"subjectAltName": "dirName:no_such_section"},
            {"nameConstraints": "allowed;DNS:.test"},
        ],
    )
    def test_unknown_values_rejected(
        self, shared_config: dict[str, dict[str, str]], entries: dict[str, str]
    ) -> None:
        """Anything the translator does not know is a ValueError."""
        key = generate_private_key("ec")

        with pytest.raises(ValueError):
            build_extensions(entries, shared_config, key.public_key())


class TestNameFromSection:
    """Tests for name_from_section()."""

    def test_builds_name(self) -> None:
        """Long attribute names map to their OIDs."""
        name = name_from_section({"organizationName": "Acme", "commonName": "x", "countryName": "US"})

        assert name.get_attributes_for_oid(oid.NameOID.ORGANIZATION_NAME)[0].value == "Acme"
        assert name.get_attributes_for_oid(oid.NameOID.COUNTRY_NAME)[0].value == "US"

    def test_unknown_field_rejected(self) -> None:
        """Unknown DN fields raise ValueError."""
        with pytest.raises(ValueError, match="favouriteColour"):
            name_from_section({"favouriteColour": "blue"})
