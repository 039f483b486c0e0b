"""Certificate options and the authority policy derived from them."""

from dataclasses import dataclass

from cryptography import x509
from cryptography.x509 import oid

ROOT_DN_SECTION = "root_distinguished_name"
INTERMEDIATE_DN_SECTION = "req_distinguished_name"
ROOT_EXTENSIONS_SECTION = "root_cert_extensions"
CA_EXTENSIONS_SECTION = "cert_extensions"
SSL_EXTENSIONS_SECTION = "ssl_cert_extensions"


@dataclass
class CertOptions:
    """User-facing options for a certificate store.

    ``key_cipher`` is passed to ``openssl genpkey``; the native engine
    accepts only AES-256.
    """

    org: str = "Acme"
    country_name: str = "US"
    key_type: str = "rsa"
    key_cipher: str = "aes256"
    safe_mode: bool = True
    domain_suffix: str = ".test"
    ca_days: int = 9999
    leaf_days: int = 9999
    key_size: int = 2048


@dataclass(frozen=True)
class DistinguishedName:
    """X.509 Subject Distinguished Name."""

    country: str
    organization: str
    common_name: str

    def to_x509_name(self) -> x509.Name:
        """Convert to cryptography x509.Name for certificate generation."""
        return x509.Name(
            [
                x509.NameAttribute(oid.NameOID.COUNTRY_NAME, self.country),
                x509.NameAttribute(oid.NameOID.ORGANIZATION_NAME, self.organization),
                x509.NameAttribute(oid.NameOID.COMMON_NAME, self.common_name),
            ]
        )

    def to_subject(self) -> str:
        """Render as an openssl ``-subj`` argument (``/C=US/O=Acme/CN=name``)."""
        return f"/C={self.country}/O={self.organization}/CN={self.common_name}"

    def to_conf_section(self) -> dict[str, str]:
        """Render as a distinguished-name section of the shared config."""
        return {
            "countryName": self.country,
            "organizationName": self.organization,
            "commonName": self.common_name,
        }


@dataclass(frozen=True)
class AuthorityPolicy:
    """Immutable naming and extension policy for the CA hierarchy.

    The name constraint applies to the intermediate CA only; the root stays
    unconstrained.
    """

    organization_name: str
    country_code: str
    key_algorithm: str
    key_cipher: str
    key_size: int
    root_common_name: str
    intermediate_common_name: str
    domain_constraint: str

    @classmethod
    def from_options(cls, options: CertOptions) -> "AuthorityPolicy":
        """Derive the policy from user-supplied options."""
        return cls(
            organization_name=options.org,
            country_code=options.country_name,
            key_algorithm=options.key_type,
            key_cipher=options.key_cipher,
            key_size=options.key_size,
            root_common_name=f"{options.org} Root Dev CA",
            intermediate_common_name=f"{options.org} Intermediate Dev CA",
            domain_constraint=options.domain_suffix,
        )

    def subject_for(self, common_name: str) -> DistinguishedName:
        """Build the DN used for any certificate issued under this policy."""
        return DistinguishedName(
            country=self.country_code,
            organization=self.organization_name,
            common_name=common_name,
        )

    @property
    def root_dn(self) -> DistinguishedName:
        return self.subject_for(self.root_common_name)

    @property
    def intermediate_dn(self) -> DistinguishedName:
        return self.subject_for(self.intermediate_common_name)

    def ssl_extensions(self, hostnames: list[str]) -> dict[str, str]:
        """Leaf extensions with the SAN filled in for ``hostnames``."""
        extensions = dict(self.shared_config()[SSL_EXTENSIONS_SECTION])
        extensions["subjectAltName"] = ",".join(f"DNS:{hostname}" for hostname in hostnames)
        return extensions

    def shared_config(self) -> dict[str, dict[str, str]]:
        """Sections of the shared engine config, in rendering order."""
        return {
            # Take DN fields from this file instead of prompting for them.
            "req": {
                "prompt": "no",
                "distinguished_name": ROOT_DN_SECTION,
            },
            ROOT_DN_SECTION: self.root_dn.to_conf_section(),
            INTERMEDIATE_DN_SECTION: self.intermediate_dn.to_conf_section(),
            ROOT_EXTENSIONS_SECTION: {
                "basicConstraints": "critical,CA:TRUE",
                "keyUsage": "critical,keyCertSign",
                "extendedKeyUsage": "serverAuth,clientAuth",
                "subjectKeyIdentifier": "hash",
                "subjectAltName": f"dirName:{ROOT_DN_SECTION}",
            },
            CA_EXTENSIONS_SECTION: {
                "basicConstraints": "critical,CA:TRUE",
                "nameConstraints": f"critical,permitted;DNS:{self.domain_constraint}",
                "keyUsage": "critical,keyCertSign",
                "extendedKeyUsage": "serverAuth,clientAuth",
                "subjectKeyIdentifier": "hash",
                "subjectAltName": f"dirName:{INTERMEDIATE_DN_SECTION}",
                "authorityKeyIdentifier": "keyid:always",
            },
            SSL_EXTENSIONS_SECTION: {
                "basicConstraints": "critical,CA:FALSE",
                "keyUsage": "critical,digitalSignature,keyEncipherment",
                "extendedKeyUsage": "serverAuth,clientAuth",
                "subjectKeyIdentifier": "hash",
                "subjectAltName": f"dirName:{INTERMEDIATE_DN_SECTION}",
                "authorityKeyIdentifier": "keyid:always",
            },
        }
