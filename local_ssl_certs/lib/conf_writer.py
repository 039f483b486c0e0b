"""Reading and writing the ``[section]`` / ``key = value`` engine config format."""

import configparser
from collections.abc import Mapping
from pathlib import Path

from .logging_config import LOGGER

ConfSections = Mapping[str, Mapping[str, str]]


def render_conf(sections: ConfSections) -> str:
    """Render sections as config text, preserving section and key order."""
    lines: list[str] = []
    for section, entries in sections.items():
        lines.append(f"[{section}]")
        lines.extend(f"{key} = {value}" for key, value in entries.items())
    return "\n".join(lines) + "\n"


def write_conf_file(path: Path, sections: ConfSections) -> Path:
    """Write a config file for the engine, replacing any previous content.

    Args:
        path: Destination file
        sections: Mapping of section name to ordered key/value pairs

    Returns:
        The path written
    """
    LOGGER.debug("Writing config file to %s", path)
    path.write_text(render_conf(sections))
    return path


def read_conf_file(path: Path) -> dict[str, dict[str, str]]:
    """Parse a config file written by ``write_conf_file``.

    Keys keep their case and values are taken verbatim (no interpolation,
    ``;`` is not treated as a comment).
    """
    parser = configparser.ConfigParser(
        interpolation=None,
        delimiters=("=",),
        comment_prefixes=("#",),
        inline_comment_prefixes=None,
    )
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    parser.read_string(path.read_text(), source=str(path))
    return {section: dict(parser.items(section)) for section in parser.sections()}
