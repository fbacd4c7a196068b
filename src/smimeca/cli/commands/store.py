"""Store management subcommands."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from smimeca.store.layout import StoreLayout, initialize_store
from smimeca.store.ledger import Ledger

if TYPE_CHECKING:
    from argparse import Namespace

    from smimeca.config.settings import SmimecaSettings

log = logging.getLogger(__name__)


def run_init(settings: SmimecaSettings, args: Namespace) -> None:  # noqa: ARG001
    """Create the CA store directory structure."""
    initialize_store(
        StoreLayout(settings.store.path),
        serial_start=settings.store.serial_start,
        lock_timeout=settings.store.lock_timeout_seconds,
    )


def run_list(settings: SmimecaSettings, args: Namespace) -> None:  # noqa: ARG001
    """Print every ledger entry with its status as of now."""
    layout = StoreLayout(settings.store.path)
    layout.require_initialized()
    now = datetime.now(UTC)
    entries = Ledger(layout.ledger_path).entries()
    if not entries:
        log.info("Ledger is empty")
        return
    for entry in entries:
        print(  # noqa: T201
            f"{entry.serial_hex:>40}  {entry.profile.value:<4}  "
            f"{entry.status_at(now).value:<7}  {entry.not_after.date().isoformat()}  "
            f"{entry.email or '-'}  {entry.subject}",
        )
