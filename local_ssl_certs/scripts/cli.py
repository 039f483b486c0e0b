#!/usr/bin/env python3
"""Issue, validate and print local development SSL certificates."""

import argparse
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from local_ssl_certs.lib.builder import DEFAULT_ENGINE, CertBuilder
from local_ssl_certs.lib.config import CertOptions
from local_ssl_certs.lib.descriptor import CertificateDescriptor
from local_ssl_certs.lib.engine import CertificateEngine, get_engine
from local_ssl_certs.lib.errors import CertError, ValidationErrors, ValidationFailure
from local_ssl_certs.lib.logging_config import LOGGER, set_verbose
from local_ssl_certs.lib.validator import validate_ssl_cert

ENGINE_ENV = "LOCAL_SSL_CERTS_ENGINE"
ORG_ENV = "LOCAL_SSL_CERTS_ORG"


def _engine(args: argparse.Namespace) -> CertificateEngine:
    engine = get_engine(args.engine)
    engine.check_available()
    return engine


def cmd_print(args: argparse.Namespace) -> int:
    """Print details of each certificate, fetched concurrently, in argument order."""
    engine = _engine(args)
    descriptors = [CertificateDescriptor(cert_path=Path(cert), key_path=None) for cert in args.certs]
    with ThreadPoolExecutor() as pool:
        futures = [pool.submit(descriptor.get_details, engine) for descriptor in descriptors]
        for cert, future in zip(args.certs, futures):
            details = future.result()
            print(f"Certificate: {cert}")
            print(details)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    engine = _engine(args)
    descriptor = CertificateDescriptor(cert_path=Path(args.crt), key_path=Path(args.key))
    try:
        validate_ssl_cert(
            descriptor,
            args.hostnames,
            engine,
            ca_file=args.ca_file,
            untrusted=args.untrusted,
            fail_fast=not args.all,
        )
    except ValidationErrors as e:
        for failure in e.failures:
            LOGGER.error("Validation failed: %s", failure)
        return 1
    except ValidationFailure as e:
        LOGGER.error("Validation failed: %s", e)
        return 1
    print("Certificate validation successful.")
    return 0


def cmd_issue(args: argparse.Namespace) -> int:
    options = CertOptions(
        org=args.name,
        safe_mode=not args.yes,
        domain_suffix=args.domain_suffix,
    )
    with CertBuilder.create(
        args.directory,
        args.root,
        options=options,
        engine=_engine(args),
    ) as builder:
        leaf = builder.issue_ssl_cert(args.hostnames)
    if leaf is None:
        return 1
    LOGGER.info("Issued %s", leaf.cert_path)
    return 0


def cmd_truststore(args: argparse.Namespace) -> int:
    with CertBuilder.create(
        args.directory,
        options=CertOptions(org=args.name),
        engine=_engine(args),
    ) as builder:
        path = builder.create_truststore(args.output)
    LOGGER.info("Truststore written to %s", path)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="local-ssl-certs",
        description="Issue and validate local development SSL certificate chains",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    common.add_argument(
        "--engine",
        choices=["openssl", "native"],
        default=os.environ.get(ENGINE_ENV, DEFAULT_ENGINE),
        help=f"Certificate-authority engine (default: ${ENGINE_ENV} or {DEFAULT_ENGINE})",
    )
    org_default = os.environ.get(ORG_ENV, "Acme")
    subparsers = parser.add_subparsers(dest="command", required=True)

    print_parser = subparsers.add_parser(
        "print", parents=[common], help="Prints information about the given certificates"
    )
    print_parser.add_argument("certs", nargs="+", help="Certificates to display information about")
    print_parser.set_defaults(func=cmd_print)

    validate_parser = subparsers.add_parser(
        "validate", parents=[common], help="Validates the given certificate and key pair"
    )
    validate_parser.add_argument("crt", help="Certificate file")
    validate_parser.add_argument("key", help="Private key file")
    validate_parser.add_argument(
        "hostnames", nargs="*", help="Hostnames to verify exist in the SSL certificate"
    )
    validate_parser.add_argument(
        "--ca-file", type=Path, help="Trusted CA bundle (default: system trust store)"
    )
    validate_parser.add_argument(
        "--untrusted", type=Path, help="Intermediate certificates used to build the chain"
    )
    validate_parser.add_argument(
        "--all", action="store_true", help="Report every failure instead of stopping at the first"
    )
    validate_parser.set_defaults(func=cmd_validate)

    issue_parser = subparsers.add_parser(
        "issue", parents=[common], help="Issue SSL certificates for the given hostnames"
    )
    issue_parser.add_argument("directory", type=Path, help="Directory to load/save SSL certificates")
    issue_parser.add_argument(
        "hostnames", nargs="+", help="Hostnames to include in the SSL certificate"
    )
    issue_parser.add_argument(
        "-n", "--name", default=org_default, help=f"Organization name [{org_default}]"
    )
    issue_parser.add_argument(
        "-r",
        "--root",
        type=Path,
        help="Path to load/save CA private key (by default, one will be auto-generated and deleted)",
    )
    issue_parser.add_argument(
        "-y", "--yes", action="store_true", help="Assume yes for prompts to overwrite existing files"
    )
    issue_parser.add_argument(
        "--domain-suffix", default=".test", help="Domain suffix the intermediate CA may issue for"
    )
    issue_parser.set_defaults(func=cmd_issue)

    truststore_parser = subparsers.add_parser(
        "truststore", parents=[common], help="Write the intermediate + root CA bundle of a store"
    )
    truststore_parser.add_argument("directory", type=Path, help="Certificate store directory")
    truststore_parser.add_argument("output", type=Path, help="Bundle file to write")
    truststore_parser.add_argument(
        "-n", "--name", default=org_default, help=f"Organization name [{org_default}]"
    )
    truststore_parser.set_defaults(func=cmd_truststore)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the command line interface.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = build_parser().parse_args(argv)
    set_verbose(args.verbose)
    try:
        return args.func(args)
    except (CertError, FileNotFoundError, ValueError) as e:
        LOGGER.error("%s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
