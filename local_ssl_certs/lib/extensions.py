"""Translation of openssl-style extension config values into x509 extensions.

Only the syntax the shared config emits is understood, e.g.::

    basicConstraints = critical,CA:TRUE
    nameConstraints = critical,permitted;DNS:.test
    subjectAltName = dirName:root_distinguished_name
    authorityKeyIdentifier = keyid:always
"""

import ipaddress
from collections.abc import Mapping
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import CertificatePublicKeyTypes
from cryptography.x509 import oid

KEY_USAGE_FLAGS = {
    "digitalSignature": "digital_signature",
    "nonRepudiation": "content_commitment",
    "contentCommitment": "content_commitment",
    "keyEncipherment": "key_encipherment",
    "dataEncipherment": "data_encipherment",
    "keyAgreement": "key_agreement",
    "keyCertSign": "key_cert_sign",
    "cRLSign": "crl_sign",
    "encipherOnly": "encipher_only",
    "decipherOnly": "decipher_only",
}

EXTENDED_KEY_USAGES = {
    "serverAuth": oid.ExtendedKeyUsageOID.SERVER_AUTH,
    "clientAuth": oid.ExtendedKeyUsageOID.CLIENT_AUTH,
    "codeSigning": oid.ExtendedKeyUsageOID.CODE_SIGNING,
    "emailProtection": oid.ExtendedKeyUsageOID.EMAIL_PROTECTION,
    "timeStamping": oid.ExtendedKeyUsageOID.TIME_STAMPING,
    "OCSPSigning": oid.ExtendedKeyUsageOID.OCSP_SIGNING,
}

NAME_ATTRIBUTES = {
    "countryName": oid.NameOID.COUNTRY_NAME,
    "C": oid.NameOID.COUNTRY_NAME,
    "stateOrProvinceName": oid.NameOID.STATE_OR_PROVINCE_NAME,
    "ST": oid.NameOID.STATE_OR_PROVINCE_NAME,
    "localityName": oid.NameOID.LOCALITY_NAME,
    "L": oid.NameOID.LOCALITY_NAME,
    "organizationName": oid.NameOID.ORGANIZATION_NAME,
    "O": oid.NameOID.ORGANIZATION_NAME,
    "organizationalUnitName": oid.NameOID.ORGANIZATIONAL_UNIT_NAME,
    "OU": oid.NameOID.ORGANIZATIONAL_UNIT_NAME,
    "commonName": oid.NameOID.COMMON_NAME,
    "CN": oid.NameOID.COMMON_NAME,
    "emailAddress": oid.NameOID.EMAIL_ADDRESS,
}


@dataclass
class ExtensionSpec:
    """An extension value plus its criticality."""

    value: x509.ExtensionType
    critical: bool


def _split(value: str) -> tuple[bool, list[str]]:
    parts = [part.strip() for part in value.split(",") if part.strip()]
    critical = bool(parts) and parts[0] == "critical"
    return critical, parts[1:] if critical else parts


def name_from_section(section: Mapping[str, str]) -> x509.Name:
    """Build an x509.Name from a distinguished-name config section."""
    attributes = []
    for key, value in section.items():
        if key not in NAME_ATTRIBUTES:
            raise ValueError(f"unknown distinguished name field: {key}")
        attributes.append(x509.NameAttribute(NAME_ATTRIBUTES[key], value))
    return x509.Name(attributes)


def _general_name(entry: str, conf: Mapping[str, Mapping[str, str]]) -> x509.GeneralName:
    kind, _, value = entry.partition(":")
    if kind == "DNS":
        return x509.DNSName(value)
    if kind == "IP":
        return x509.IPAddress(ipaddress.ip_address(value))
    if kind == "email":
        return x509.RFC822Name(value)
    if kind == "URI":
        return x509.UniformResourceIdentifier(value)
    if kind == "dirName":
        if value not in conf:
            raise ValueError(f"dirName section not found: {value}")
        return x509.DirectoryName(name_from_section(conf[value]))
    raise ValueError(f"unsupported general name: {entry}")


def _basic_constraints(items: list[str]) -> x509.BasicConstraints:
    ca = False
    path_length = None
    for item in items:
        key, _, value = item.partition(":")
        if key == "CA":
            ca = value.upper() == "TRUE"
        elif key == "pathlen":
            path_length = int(value)
        else:
            raise ValueError(f"unsupported basicConstraints value: {item}")
    return x509.BasicConstraints(ca=ca, path_length=path_length if ca else None)


def _key_usage(items: list[str]) -> x509.KeyUsage:
    flags = dict.fromkeys(KEY_USAGE_FLAGS.values(), False)
    for item in items:
        if item not in KEY_USAGE_FLAGS:
            raise ValueError(f"unsupported keyUsage value: {item}")
        flags[KEY_USAGE_FLAGS[item]] = True
    return x509.KeyUsage(**flags)


def _extended_key_usage(items: list[str]) -> x509.ExtendedKeyUsage:
    try:
        return x509.ExtendedKeyUsage([EXTENDED_KEY_USAGES[item] for item in items])
    except KeyError as e:
        raise ValueError(f"unsupported extendedKeyUsage value: {e.args[0]}") from e


def _name_constraints(
    items: list[str], conf: Mapping[str, Mapping[str, str]]
) -> x509.NameConstraints:
    permitted: list[x509.GeneralName] = []
    excluded: list[x509.GeneralName] = []
    for item in items:
        kind, _, name = item.partition(";")
        if kind == "permitted":
            permitted.append(_general_name(name, conf))
        elif kind == "excluded":
            excluded.append(_general_name(name, conf))
        else:
            raise ValueError(f"unsupported nameConstraints value: {item}")
    return x509.NameConstraints(
        permitted_subtrees=permitted or None,
        excluded_subtrees=excluded or None,
    )


def _authority_key_identifier(
    items: list[str], issuer_public_key: CertificatePublicKeyTypes,
    issuer_cert: x509.Certificate | None,
) -> x509.AuthorityKeyIdentifier:
    if not any(item.startswith("keyid") for item in items):
        raise ValueError(f"unsupported authorityKeyIdentifier value: {','.join(items)}")
    if issuer_cert is not None:
        try:
            ski = issuer_cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
        except x509.ExtensionNotFound:
            pass
        else:
            return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski.value)
    return x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_public_key)


def build_extensions(
    entries: Mapping[str, str],
    conf: Mapping[str, Mapping[str, str]],
    subject_public_key: CertificatePublicKeyTypes,
    issuer_cert: x509.Certificate | None = None,
) -> list[ExtensionSpec]:
    """Translate one extensions section into extension objects.

    Args:
        entries: The extensions section (``basicConstraints = ...`` etc.)
        conf: Whole config, used to resolve ``dirName:`` section references
        subject_public_key: Public key of the certificate being issued
        issuer_cert: Issuing CA certificate; None for self-signed certificates

    Returns:
        Extensions in config order

    Raises:
        ValueError: On an extension or value this translator does not know
    """
    issuer_public_key = (
        issuer_cert.public_key() if issuer_cert is not None else subject_public_key
    )
    specs: list[ExtensionSpec] = []
    for name, value in entries.items():
        critical, items = _split(value)
        extension: x509.ExtensionType
        if name == "basicConstraints":
            extension = _basic_constraints(items)
        elif name == "keyUsage":
            extension = _key_usage(items)
        elif name == "extendedKeyUsage":
            extension = _extended_key_usage(items)
        elif name == "subjectKeyIdentifier":
            extension = x509.SubjectKeyIdentifier.from_public_key(subject_public_key)
        elif name == "authorityKeyIdentifier":
            extension = _authority_key_identifier(items, issuer_public_key, issuer_cert)
        elif name == "subjectAltName":
            extension = x509.SubjectAlternativeName([_general_name(i, conf) for i in items])
        elif name == "nameConstraints":
            extension = _name_constraints(items, conf)
        else:
            raise ValueError(f"unsupported extension: {name}")
        specs.append(ExtensionSpec(value=extension, critical=critical))
    return specs
