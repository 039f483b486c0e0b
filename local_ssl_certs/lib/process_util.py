"""Blocking invocation of external programs."""

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from .errors import EngineInvocationError
from .logging_config import LOGGER


@dataclass
class CommandResult:
    """Captured output of a finished process."""

    returncode: int
    stdout: str
    stderr: str


def run_command(argv: Sequence[str], secret: str | None = None) -> CommandResult:
    """Run ``argv`` to completion and capture its output.

    Args:
        argv: Executable followed by its arguments
        secret: Written to the child's stdin when given; stdin is closed
            otherwise. Never logged.

    Returns:
        CommandResult with stdout and stderr as text

    Raises:
        EngineInvocationError: If the process exits with a non-zero status
            or cannot be started
    """
    LOGGER.debug("%% %s", " ".join(argv))
    try:
        proc = subprocess.run(
            list(argv),
            input=secret,
            stdin=None if secret is not None else subprocess.DEVNULL,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise EngineInvocationError(argv, 127, str(e)) from e

    if proc.returncode != 0:
        raise EngineInvocationError(argv, proc.returncode, proc.stderr)
    return CommandResult(returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
