"""PKI hierarchy builder: root CA, intermediate CA and leaf SSL certificates."""

import enum
import os
import re
import secrets
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from .cert_utils import create_truststore_bundle
from .conf_writer import write_conf_file
from .config import (
    CA_EXTENSIONS_SECTION,
    ROOT_EXTENSIONS_SECTION,
    AuthorityPolicy,
    CertOptions,
)
from .descriptor import CertificateDescriptor
from .engine import CertificateEngine, get_engine
from .errors import EngineInvocationError, OverwriteDeclined
from .logging_config import LOGGER
from .prompts import ConfirmFn, PasswordFn, confirm, prompt_password
from .workspace import EphemeralWorkspace

T = TypeVar("T")

DEFAULT_ENGINE = "openssl"
STORE_DIR_MODE = 0o700
PRIVATE_KEY_MODE = 0o600

HOSTNAME_PATTERN = re.compile(r"(\*\.)?[A-Za-z0-9-]{1,63}(\.[A-Za-z0-9-]{1,63})*")
MAX_HOSTNAME_LENGTH = 253

# Guards the constructor; only CertBuilder.create() holds it.
_CREATE_TOKEN = object()


def check_hostnames(hostnames: Sequence[str]) -> None:
    """Reject anything that is not a plain DNS name (``*.`` prefix allowed).

    Hostnames are written unescaped into config values and file names.

    Raises:
        ValueError: Naming the first invalid hostname
    """
    for hostname in hostnames:
        if len(hostname) > MAX_HOSTNAME_LENGTH or not HOSTNAME_PATTERN.fullmatch(hostname):
            raise ValueError(f"invalid hostname: {hostname!r}")


class HierarchyState(enum.Enum):
    """Where a store stands on the way to a leaf certificate.

    Read from the files present in the store, never from memory, so a later
    run picks up where an earlier one stopped. ROOT_READY marks a root CA
    created during this run; ``probe_state()`` never returns it.
    """

    NO_ROOT = "NoRoot"
    ROOT_READY = "RootReady"
    NO_INTERMEDIATE = "NoIntermediate"
    INTERMEDIATE_READY = "IntermediateReady"
    LEAF_ISSUED = "LeafIssued"


class CertBuilder:
    """Creates and loads the CA hierarchy of a certificate store.

    Instances come from ``CertBuilder.create()``, which checks the engine,
    prepares the store directory and owns the ephemeral workspace.
    """

    def __init__(
        self,
        token: object,
        cert_dir: Path,
        options: CertOptions,
        engine: CertificateEngine,
        workspace: EphemeralWorkspace,
        root_key_path: Path | None,
        confirm_fn: ConfirmFn,
        password_fn: PasswordFn,
    ) -> None:
        if token is not _CREATE_TOKEN:
            raise TypeError("Use CertBuilder.create() to create an instance")
        self.cert_dir = cert_dir
        self.options = options
        self.policy = AuthorityPolicy.from_options(options)
        self.engine = engine
        self.workspace = workspace
        self.persistent_root_key_path = root_key_path
        self._confirm = confirm_fn
        self._prompt_password = password_fn
        self.root_ca: CertificateDescriptor | None = None

    @classmethod
    @contextmanager
    def create(
        cls,
        cert_dir: Path | str,
        root_key_path: Path | str | None = None,
        options: CertOptions | None = None,
        engine: CertificateEngine | None = None,
        confirm_fn: ConfirmFn = confirm,
        password_fn: PasswordFn = prompt_password,
    ) -> Iterator["CertBuilder"]:
        """Yield a ready builder and remove its workspace when the block exits.

        Args:
            cert_dir: Directory to read certificates from and write them to
            root_key_path: Where the root CA key is loaded from and saved to.
                Leave None for a temporary root key that is deleted with the
                workspace (most secure).
            options: Certificate options, defaults to ``CertOptions()``
            engine: Certificate-authority engine, defaults to openssl
            confirm_fn: Yes/no prompt collaborator
            password_fn: Password prompt collaborator

        Raises:
            EngineUnavailable: If the engine cannot be used
            WorkspaceCleanupFailure: If a temporary root CA key could not be
                deleted
        """
        options = options or CertOptions()
        engine = engine or get_engine(DEFAULT_ENGINE)
        engine.check_available()

        cert_dir = Path(cert_dir)
        cert_dir.mkdir(parents=True, exist_ok=True, mode=STORE_DIR_MODE)

        workspace = EphemeralWorkspace()
        try:
            builder = cls(
                _CREATE_TOKEN,
                cert_dir,
                options,
                engine,
                workspace,
                Path(root_key_path) if root_key_path is not None else None,
                confirm_fn,
                password_fn,
            )
            write_conf_file(workspace.get_shared_config_path(), builder.policy.shared_config())
            yield builder
        finally:
            report = workspace.report_new_cas()
            if report:
                print(report)
            workspace.cleanup()

    @property
    def root_cert_path(self) -> Path:
        return self.cert_dir / f"{self.policy.root_common_name}.crt"

    @property
    def intermediate_cert_path(self) -> Path:
        return self.cert_dir / f"{self.policy.intermediate_common_name}.crt"

    @property
    def intermediate_key_path(self) -> Path:
        return self.cert_dir / f"{self.policy.intermediate_common_name}.key"

    def _root_key_path(self) -> Path:
        if self.persistent_root_key_path is not None:
            return self.persistent_root_key_path
        return self.workspace.path_for(f"{self.policy.root_common_name}.key")

    def _confirm_overwrite(self, paths: Sequence[Path]) -> None:
        """Raise OverwriteDeclined if safe mode is on and the operator says no."""
        if not self.options.safe_mode:
            return
        existing = [str(path) for path in paths if path.exists()]
        if not existing:
            return
        files = "\n  ".join(existing)
        if not self._confirm(f"Files exist:\n  {files}\nOverwrite existing files?"):
            raise OverwriteDeclined(f"overwrite declined: {', '.join(existing)}")

    def _invoke(self, description: str, func: Callable[..., T], *args: object) -> T:
        try:
            return func(*args)
        except EngineInvocationError as e:
            LOGGER.error("%s: %s", description, e)
            raise

    def create_root_ca(self) -> CertificateDescriptor | None:
        """Create the root CA key pair and its self-signed certificate.

        Returns:
            The root CA descriptor, or None if the operator declined to
            overwrite existing files

        Raises:
            EngineInvocationError: If the engine fails
        """
        try:
            return self._create_root_ca()
        except OverwriteDeclined:
            LOGGER.warning("Aborting.")
            return None

    def _create_root_ca(self) -> CertificateDescriptor:
        key_path = self._root_key_path()
        descriptor = CertificateDescriptor(cert_path=self.root_cert_path, key_path=key_path)
        self._confirm_overwrite([key_path, descriptor.cert_path])

        if self.persistent_root_key_path is not None:
            descriptor.password = self._prompt_password(
                "Create a password for the root CA: ", "Confirm password: "
            )
            key_path.parent.mkdir(parents=True, exist_ok=True, mode=STORE_DIR_MODE)
        else:
            # Used for this run's signatures only; the key dies with the workspace.
            descriptor.password = secrets.token_hex(32)
            self.workspace.hold_root_key(key_path)

        LOGGER.info("Creating self-signed root CA cert")
        self._invoke(
            "Error creating root CA cert",
            self.engine.generate_self_signed_cert,
            self.policy,
            key_path,
            descriptor.cert_path,
            self.workspace.get_shared_config_path(),
            ROOT_EXTENSIONS_SECTION,
            self.options.ca_days,
            descriptor.password,
        )
        os.chmod(key_path, PRIVATE_KEY_MODE)
        self.root_ca = descriptor
        self.workspace.register_new_ca(descriptor.cert_path)
        LOGGER.debug("Hierarchy state: %s", HierarchyState.ROOT_READY.value)
        return descriptor

    def issue_signed_cert(
        self,
        name: str,
        issuer: CertificateDescriptor,
        hostnames: Sequence[str] | str | None = None,
    ) -> CertificateDescriptor | None:
        """Issue a certificate signed by ``issuer``.

        Args:
            name: Common name, also the base name of the .crt/.key files
            issuer: Issuing CA; its certificate and key must be loadable
            hostnames: DNS names for an SSL certificate. Leave None to issue
                an intermediate CA certificate.

        Returns:
            The new descriptor, or None if the operator declined to overwrite
            existing files

        Raises:
            FileNotFoundError: If the issuer's certificate or key is missing
            EngineInvocationError: If the engine fails
        """
        try:
            return self._issue_signed_cert(name, issuer, hostnames)
        except OverwriteDeclined:
            LOGGER.warning("Aborting.")
            return None

    def _issue_signed_cert(
        self,
        name: str,
        issuer: CertificateDescriptor,
        hostnames: Sequence[str] | str | None = None,
    ) -> CertificateDescriptor:
        if not name or os.sep in name or name in (".", ".."):
            raise ValueError(f"invalid certificate name: {name!r}")
        if issuer.key_path is None or CertificateDescriptor.load(
            issuer.cert_path, issuer.key_path
        ) is None:
            raise FileNotFoundError(f"issuer certificate or key not found: {issuer.cert_path}")
        if isinstance(hostnames, str):
            hostnames = [hostnames]
        if hostnames:
            check_hostnames(hostnames)

        key_path = self.cert_dir / f"{name}.key"
        descriptor = CertificateDescriptor(cert_path=self.cert_dir / f"{name}.crt", key_path=key_path)
        self._confirm_overwrite([key_path, descriptor.cert_path])

        shared_conf = self.workspace.get_shared_config_path()
        csr_path = self.workspace.path_for(f"{name}.csr")
        self._invoke(
            "Error creating cert request",
            self.engine.generate_csr,
            self.policy,
            self.policy.subject_for(name),
            key_path,
            csr_path,
            shared_conf,
        )
        os.chmod(key_path, PRIVATE_KEY_MODE)

        if hostnames:
            # Request-specific file so SANs never leak into the shared config.
            ext_path = write_conf_file(
                self.workspace.path_for(f"{name}.ext.conf"),
                {CA_EXTENSIONS_SECTION: self.policy.ssl_extensions(list(hostnames))},
            )
            days = self.options.leaf_days
        else:
            ext_path = shared_conf
            days = self.options.ca_days

        LOGGER.info("Signing requested cert using issuer %s", issuer.cert_path)
        self._invoke(
            "Error signing cert",
            self.engine.sign_csr,
            csr_path,
            issuer,
            descriptor.cert_path,
            ext_path,
            CA_EXTENSIONS_SECTION,
            self.workspace.get_serial_path(),
            days,
        )
        if not hostnames:
            self.workspace.register_new_ca(descriptor.cert_path)
        return descriptor

    def issue_ssl_cert(
        self,
        hostnames: Sequence[str] | str,
        issuer: CertificateDescriptor | None = None,
    ) -> CertificateDescriptor | None:
        """Issue an SSL certificate, creating missing CA levels on the way.

        Without an explicit issuer the intermediate CA of the store is used.
        If it is missing, the root CA is loaded or created and a new
        intermediate is signed with it; the operator confirms each level
        that gets created.

        Args:
            hostnames: DNS names; the files are named after the first one
            issuer: Issuing CA, defaults to the store's intermediate CA

        Returns:
            The leaf descriptor, or None if the operator declined any prompt
        """
        if isinstance(hostnames, str):
            hostnames = [hostnames]
        if not hostnames:
            raise ValueError("at least one hostname is required")
        check_hostnames(hostnames)

        try:
            if issuer is None:
                issuer = self._resolve_intermediate_ca()
            LOGGER.info("Requesting SSL cert")
            return self._issue_signed_cert(hostnames[0], issuer, hostnames)
        except OverwriteDeclined:
            LOGGER.warning("Aborting.")
            return None

    def _resolve_intermediate_ca(self) -> CertificateDescriptor:
        intermediate = self.load_intermediate_ca()
        if intermediate is not None:
            return intermediate

        root = self.root_ca or self.load_root_ca()
        if root is None:
            LOGGER.info("Root CA not found at %s", self.root_cert_path)
            if not self._confirm("Create one now?", True):
                raise OverwriteDeclined("root CA creation declined")
            root = self._create_root_ca()

        LOGGER.info("Intermediate CA not found at %s", self.intermediate_cert_path)
        if not self._confirm("Intermediate CA not found. Create one now?", True):
            raise OverwriteDeclined("intermediate CA creation declined")
        return self._issue_signed_cert(self.policy.intermediate_common_name, root)

    def load_intermediate_ca(self) -> CertificateDescriptor | None:
        """Load the store's intermediate CA if both of its files exist."""
        return CertificateDescriptor.load(self.intermediate_cert_path, self.intermediate_key_path)

    def load_root_ca(self) -> CertificateDescriptor | None:
        """Load a persistent root CA, asking for its key password.

        A temporary root key never outlives its run, so without a persistent
        key path there is nothing to load.
        """
        if self.persistent_root_key_path is None:
            return None
        descriptor = CertificateDescriptor.load(self.root_cert_path, self.persistent_root_key_path)
        if descriptor is None:
            return None
        descriptor.password = self._prompt_password(
            f"Enter password for {self.policy.root_common_name}: "
        )
        self.root_ca = descriptor
        return descriptor

    def probe_state(self, hostname: str | None = None) -> HierarchyState:
        """Read the hierarchy state from the files in the store.

        Without a persistent root key path a root certificate on its own is
        never ready: its temporary key was deleted with the run that made
        it, so such a store reports NO_ROOT until the intermediate exists.
        """
        if hostname is not None and CertificateDescriptor.load(
            self.cert_dir / f"{hostname}.crt", self.cert_dir / f"{hostname}.key"
        ):
            return HierarchyState.LEAF_ISSUED
        if self.load_intermediate_ca() is not None:
            return HierarchyState.INTERMEDIATE_READY
        root_key = self._root_key_path()
        if self.root_cert_path.exists() and root_key.exists():
            return HierarchyState.NO_INTERMEDIATE
        return HierarchyState.NO_ROOT

    def create_truststore(self, truststore_path: Path) -> Path:
        """Write the intermediate + root CA bundle, e.g. for ``validate --ca-file``.

        Raises:
            FileNotFoundError: If either CA certificate is missing
        """
        if not self.intermediate_cert_path.exists():
            raise FileNotFoundError(f"intermediate CA cert not found: {self.intermediate_cert_path}")
        if not self.root_cert_path.exists():
            raise FileNotFoundError(f"root CA cert not found: {self.root_cert_path}")

        bundle = create_truststore_bundle(
            self.intermediate_cert_path.read_bytes(), self.root_cert_path.read_bytes()
        )
        truststore_path.parent.mkdir(parents=True, exist_ok=True)
        truststore_path.write_bytes(bundle)
        return truststore_path
