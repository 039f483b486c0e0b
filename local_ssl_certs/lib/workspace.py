"""Process-lifetime temporary directory for CSRs, serials and config."""

import shutil
import tempfile
from pathlib import Path
from types import TracebackType

from .errors import WorkspaceCleanupFailure
from .logging_config import LOGGER

WORKSPACE_PREFIX = "local-ssl-certs-"
SHARED_CONF_NAME = "shared.conf"
SERIAL_FILE_NAME = "ca.srl"


class EphemeralWorkspace:
    """Scoped temporary directory, removed when the scope exits.

    The directory is created lazily on first use. If a root CA key that was
    never persisted lives inside it, a failed removal is fatal: the key must
    not survive the run.

    Usage:
        with EphemeralWorkspace() as workspace:
            conf = workspace.get_shared_config_path()
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir
        self._dir: Path | None = None
        self._ephemeral_root_key: Path | None = None
        self.new_cas: list[Path] = []

    def __enter__(self) -> "EphemeralWorkspace":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()

    @property
    def exists(self) -> bool:
        return self._dir is not None and self._dir.exists()

    def get_workspace_dir(self) -> Path:
        """Create the directory on first call and return the same path afterwards."""
        if self._dir is None:
            self._dir = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=self._base_dir))
            LOGGER.debug("Created temp dir: %s", self._dir)
        return self._dir

    def get_shared_config_path(self) -> Path:
        return self.get_workspace_dir() / SHARED_CONF_NAME

    def get_serial_path(self) -> Path:
        return self.get_workspace_dir() / SERIAL_FILE_NAME

    def path_for(self, filename: str) -> Path:
        """Path of a request-specific file inside the workspace."""
        return self.get_workspace_dir() / filename

    def hold_root_key(self, key_path: Path) -> None:
        """Record that a non-persisted root CA key was written here."""
        self._ephemeral_root_key = key_path

    def register_new_ca(self, cert_path: Path) -> None:
        """Remember a CA certificate the operator must install in a trust store."""
        self.new_cas.append(cert_path)

    def cleanup(self) -> None:
        """Remove the directory tree.

        Raises:
            WorkspaceCleanupFailure: If removal fails while it holds a
                temporary root CA key
        """
        if self._dir is None:
            return
        workspace_dir = self._dir
        LOGGER.debug("Cleaning up temp dir: %s", workspace_dir)
        try:
            shutil.rmtree(workspace_dir)
        except OSError as e:
            LOGGER.error("Error cleaning up temp dir %s: %s", workspace_dir, e)
            if self._ephemeral_root_key is not None:
                LOGGER.error(
                    "Could not delete root CA key file: %s", self._ephemeral_root_key
                )
                raise WorkspaceCleanupFailure(
                    f"Could not delete root CA key file {self._ephemeral_root_key}. "
                    "Delete it manually before trusting the root CA."
                ) from e
            return
        self._dir = None

    def report_new_cas(self) -> str | None:
        """Format the list of CA certificates created during this run."""
        if not self.new_cas:
            return None
        return "Install new CA certs:\n" + "\n".join(f"  + {path}" for path in self.new_cas)
