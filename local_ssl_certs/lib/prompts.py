"""Interactive confirmation and password prompts."""

import getpass
import sys
from collections.abc import Callable

from .logging_config import LOGGER

ConfirmFn = Callable[..., bool]
PasswordFn = Callable[..., str]


def confirm(message: str, default_yes: bool = False) -> bool:
    """Ask a yes/no question on the terminal.

    An empty answer returns ``default_yes``; only "y" and "yes" count as yes.
    """
    suffix = "(Y/n)" if default_yes else "(y/N)"
    try:
        answer = input(f"{message} {suffix} ")
    except EOFError:
        return False
    if answer == "":
        return default_yes
    return answer.strip().lower() in ("y", "yes")


def prompt_password(prompt: str, confirm_prompt: str | None = None) -> str:
    """Read a password without echo, asking again until both entries match.

    When stdin is not a terminal the first line of stdin is used as is.

    Raises:
        EOFError: If stdin closes before a password is entered
    """
    if not sys.stdin.isatty():
        line = sys.stdin.readline()
        if not line:
            raise EOFError("Process exited before password was entered")
        return line.rstrip("\r\n")

    while True:
        password = getpass.getpass(prompt)
        if confirm_prompt is None:
            return password
        if getpass.getpass(confirm_prompt) == password:
            return password
        LOGGER.error("Passwords do not match")
