# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""s3signer CLI: multi-command entry point.

Subcommands:

* ``presign``: print a presigned URL for an object
* ``headers``: print the signed headers for a request

Both read the signer configuration from the YAML config file (see
``s3signer.config``).  Role-based configurations fetch credentials once,
synchronously, instead of starting the background refresher.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from s3signer.config import ConfigError, SignerConfig, get_config_path
from s3signer.credentials import CredentialStore
from s3signer.errors import SignerError
from s3signer.logging import configure_logging
from s3signer.payload import Payload
from s3signer.signer import Expiration, S3Signer


logger = logging.getLogger(__name__)

_USAGE = """\
usage: s3signer <command> [args]

commands:
  presign   Print a presigned URL
  headers   Print signed request headers

Run 's3signer <command> --help' for command-specific help.\
"""


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "url", help="Absolute object URL or path-style /bucket/key"
    )
    parser.add_argument(
        "--method", default="GET", help="HTTP method (default: GET)"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Config file (default: {get_config_path()})",
    )
    parser.add_argument(
        "--region", default=None, help="Override the configured region"
    )
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="NAME:VALUE",
        help="Extra header to sign (repeatable)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )


def _parse_headers(values: list[str]) -> dict[str, str]:
    """Parse ``NAME:VALUE`` arguments.

    Raises:
        ValueError: If an argument has no colon or an empty name.
    """
    headers: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Invalid header {item!r}, expected NAME:VALUE")
        headers[name.strip()] = value.strip()
    return headers


def _build_signer(args: argparse.Namespace) -> S3Signer:
    """Load configuration and build a signer with credentials in place.

    Raises:
        ConfigError: If the configuration is invalid.
        SignerError: If role credentials cannot be fetched.
    """
    config = SignerConfig.from_yaml(args.config)
    region = config.region
    if args.region:
        region = region.with_name(args.region)

    if config.uses_role:
        assert config.role_name
        store = CredentialStore.from_role(
            config.role_name,
            start=False,
            metadata_url=config.metadata_url,
        )
        assert store.refresher is not None
        store.refresher.refresh()
    else:
        assert config.access_key and config.secret_key
        store = CredentialStore.static(
            config.access_key, config.secret_key, config.session_token
        )
    return S3Signer(store, region)


def _run(args: argparse.Namespace, action: str) -> int:
    configure_logging(level=logging.DEBUG if args.debug else logging.WARNING)
    try:
        headers = _parse_headers(args.header)
        signer = _build_signer(args)
        if action == "presign":
            print(
                signer.presigned_url(
                    args.method, args.url, args.expires, headers=headers
                )
            )
        else:
            payload = Payload.empty()
            if args.data is not None:
                payload = Payload.from_bytes(args.data.read_bytes())
            signed = signer.headers(
                args.method, args.url, headers=headers, payload=payload
            )
            for name, value in signed.items():
                print(f"{name}: {value}")
    except (ConfigError, SignerError, ValueError, OSError) as e:
        logger.error("%s", e)
        return 1
    return 0


def cmd_presign(argv: list[str]) -> int:
    """Print a presigned URL.

    Args:
        argv: Command arguments.

    Returns:
        Exit code (0 on success, 1 on error).
    """
    parser = argparse.ArgumentParser(
        prog="s3signer presign", description="Print a presigned URL."
    )
    _add_common_arguments(parser)
    parser.add_argument(
        "--expires",
        type=int,
        default=int(Expiration.HOUR),
        help="Lifetime in seconds (default: 3600, max: 604800)",
    )
    return _run(parser.parse_args(argv), "presign")


def cmd_headers(argv: list[str]) -> int:
    """Print signed headers for a request.

    Args:
        argv: Command arguments.

    Returns:
        Exit code (0 on success, 1 on error).
    """
    parser = argparse.ArgumentParser(
        prog="s3signer headers", description="Print signed request headers."
    )
    _add_common_arguments(parser)
    parser.add_argument(
        "--data",
        type=Path,
        default=None,
        help="File whose contents are the request body",
    )
    return _run(parser.parse_args(argv), "headers")


_DISPATCH: dict[str, str] = {
    "presign": "cmd_presign",
    "headers": "cmd_headers",
}


def cli() -> None:
    """Entry point for ``s3signer``."""
    argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        print(_USAGE)
        sys.exit(0)

    if argv[0] not in _DISPATCH:
        print(f"s3signer: unknown command '{argv[0]}'", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        sys.exit(2)

    # Look up handler by name so tests can mock individual commands.
    import s3signer.cli as _self

    handler = getattr(_self, _DISPATCH[argv[0]])
    sys.exit(handler(argv[1:]))
