"""Parsers for the text openssl prints about certificates."""

import re
from datetime import UTC, datetime

from .errors import ParseError

NOT_AFTER = re.compile(r"notAfter=(.+)")
SUBJECT_CN = re.compile(r"subject=.*CN\s*=\s*([^/,\n]+)")
SAN_DNS = re.compile(r"DNS:([^,\n]+)")

# openssl prints e.g. "Jun  3 12:00:00 2052 GMT"
OPENSSL_DATE_FORMAT = "%b %d %H:%M:%S %Y %Z"


def parse_not_after(text: str) -> datetime:
    """Parse ``openssl x509 -enddate`` output into an aware UTC datetime.

    Raises:
        ParseError: If the line is missing or the date is unreadable
    """
    match = NOT_AFTER.search(text)
    if not match:
        raise ParseError("Could not parse certificate expiration date.")
    raw = " ".join(match.group(1).split())
    try:
        parsed = datetime.strptime(raw, OPENSSL_DATE_FORMAT)
    except ValueError as e:
        raise ParseError(f"Unrecognised certificate expiration date: {raw}") from e
    return parsed.replace(tzinfo=UTC)


def parse_common_name(text: str) -> str:
    """Parse the CN out of ``openssl x509 -subject`` output.

    Raises:
        ParseError: If no CN is present
    """
    match = SUBJECT_CN.search(text)
    if not match:
        raise ParseError("Could not find common name (CN) in certificate.")
    return match.group(1).strip()


def parse_dns_names(text: str) -> list[str]:
    """Parse every ``DNS:`` entry from a subjectAltName dump."""
    return [match.strip() for match in SAN_DNS.findall(text)]
