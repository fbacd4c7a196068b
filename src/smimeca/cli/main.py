"""SMIMECA command-line entry point.

Usage::

    smimeca -c smimeca.yaml init
    smimeca -c smimeca.yaml create-root-ca
    smimeca -c smimeca.yaml create-user-cert alice@example.com
    smimeca -c smimeca.yaml verify-cert alice@example.com
    smimeca -c smimeca.yaml list-certs
    python -m smimeca -c smimeca.yaml init
"""

from __future__ import annotations

import argparse
import importlib
import logging
import os
import sys
from pathlib import Path
from typing import NoReturn

log = logging.getLogger(__name__)

_DEFAULT_CONFIG = "smimeca.yaml"

# Maps subcommand -> (module_path, function_name)
_COMMANDS: dict[str, tuple[str, str]] = {
    "init": ("smimeca.cli.commands.store", "run_init"),
    "list-certs": ("smimeca.cli.commands.store", "run_list"),
    "create-root-ca": ("smimeca.cli.commands.certs", "run_create_root"),
    "create-user-cert": ("smimeca.cli.commands.certs", "run_create_user"),
    "verify-cert": ("smimeca.cli.commands.certs", "run_verify"),
}


def _get_version() -> str:
    from smimeca import __version__

    return __version__


class _Parser(argparse.ArgumentParser):
    """Argument parser whose usage errors exit with status 1."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        _print_error(message)
        sys.exit(1)


def _build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="smimeca",
        description="SMIMECA: S/MIME certificate authority lifecycle manager",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=os.environ.get("SMIMECA_CONFIG", _DEFAULT_CONFIG),
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON). "
        "Defaults to $SMIMECA_CONFIG or ./smimeca.yaml.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", parser_class=_Parser)

    subparsers.add_parser("init", help="Create the CA store directory structure")

    root = subparsers.add_parser("create-root-ca", help="Generate the self-signed root CA")
    root.add_argument("--days", type=int, default=None, help="Root validity in days")

    user = subparsers.add_parser("create-user-cert", help="Issue an S/MIME certificate")
    user.add_argument("emails", nargs="*", metavar="EMAIL", help="Subject email address")
    user.add_argument("--days", type=int, default=None, help="Validity in days")
    user.add_argument("--common-name", default=None, help="Subject CN (defaults to the email)")

    verify = subparsers.add_parser("verify-cert", help="Verify a user certificate")
    verify.add_argument("emails", nargs="*", metavar="EMAIL", help="Subject email address")

    subparsers.add_parser("list-certs", help="List every certificate in the ledger")

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"smimeca: error: {message}", file=sys.stderr)  # noqa: T201


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, dispatches."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_usage(sys.stderr)
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- load & validate config ---
    from smimeca.config import ConfigValidationError, load_config

    try:
        settings = load_config(config_path)
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)

    # -- replace bootstrap logging with the operator log ---
    from smimeca.logging import configure_logging

    configure_logging(
        settings.logging,
        log_file=settings.log_file,
        store=str(settings.store.path),
    )
    if args.debug:
        logging.getLogger("smimeca").setLevel(logging.DEBUG)

    # -- dispatch subcommand ---
    from smimeca.ca.errors import CAError

    mod_path, func_name = _COMMANDS[args.command]
    handler = getattr(importlib.import_module(mod_path), func_name)
    try:
        handler(settings, args)
    except CAError as exc:
        if args.debug:
            raise
        log.error("%s", exc.detail)
        sys.exit(1)
