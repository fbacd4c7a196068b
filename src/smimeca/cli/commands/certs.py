"""Certificate subcommands: root, user certificates, verification."""

from __future__ import annotations

import getpass
import logging
import sys
from typing import TYPE_CHECKING

from smimeca.ca.cert_utils import describe_certificate
from smimeca.ca.errors import UsageError
from smimeca.ca.issuance import IssuancePipeline
from smimeca.ca.policy import validate_email
from smimeca.ca.verify import Verifier
from smimeca.models.identity import SubjectCandidate

if TYPE_CHECKING:
    from argparse import Namespace

    from smimeca.config.settings import SmimecaSettings

log = logging.getLogger(__name__)


def _single_email(args: Namespace) -> str:
    if len(args.emails) != 1:
        msg = f"Usage: smimeca {args.command} <email>"
        raise UsageError(msg)
    return args.emails[0]


def _bundle_password(settings: SmimecaSettings) -> str:
    """Return the configured bundle password, prompting on a TTY."""
    if settings.bundle.password:
        return settings.bundle.password
    if not sys.stdin.isatty():
        msg = (
            "No bundle password configured; set bundle.password "
            "(e.g. ${SMIMECA_BUNDLE_PASSWORD}) or run interactively"
        )
        raise UsageError(msg)
    password = getpass.getpass("Enter export password: ")
    if password != getpass.getpass("Verifying - Enter export password: "):
        msg = "Export passwords do not match"
        raise UsageError(msg)
    return password


def run_create_root(settings: SmimecaSettings, args: Namespace) -> None:
    """Generate the self-signed root CA."""
    issued = IssuancePipeline(settings).issue_root(validity_days=args.days)
    log.info("Certificate details:")
    print(describe_certificate(issued.certificate))  # noqa: T201


def run_create_user(settings: SmimecaSettings, args: Namespace) -> None:
    """Issue an S/MIME certificate and PKCS#12 bundle for one email."""
    email = validate_email(_single_email(args))
    password = _bundle_password(settings)
    issued = IssuancePipeline(settings).issue_leaf(
        SubjectCandidate(email=email, common_name=args.common_name),
        validity_days=args.days,
        password=password,
    )
    log.info("Bundle written to %s", issued.bundle_path)
    log.info("Certificate details:")
    print(describe_certificate(issued.certificate))  # noqa: T201


def run_verify(settings: SmimecaSettings, args: Namespace) -> None:
    """Verify the latest certificate issued for an email against the root."""
    email = _single_email(args)
    pipeline = IssuancePipeline(settings)
    verifier = Verifier(
        pipeline.layout,
        pipeline.ledger,
        root=pipeline.load_root_certificate(),
    )
    cert, result = verifier.verify_email(email)
    print(describe_certificate(cert))  # noqa: T201
    if not result.valid:
        log.error("Certificate for %s is not valid: %s", email, result.reason)
        sys.exit(1)
    log.info("Certificate for %s: OK (%s)", email, result.status.value)
