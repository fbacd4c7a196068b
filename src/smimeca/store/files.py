"""Permission-aware file writes for the CA store.

Every artifact is written to a uniquely named temp file in its final
directory and renamed into place, so readers never observe a partially
written file.  Temp files are created ``0600`` and receive their final
mode *before* the rename: a private key is never group or world
readable at any point, not even while being written.
"""

from __future__ import annotations

import logging
import os
import secrets
import stat
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

log = logging.getLogger(__name__)

PRIVATE_DIR_MODE = 0o700
PRIVATE_KEY_MODE = 0o400
CERTIFICATE_MODE = 0o444
BUNDLE_MODE = 0o600
REQUEST_MODE = 0o644

TMP_SUFFIX = ".tmp"
_LOOSE_BITS = stat.S_IRWXG | stat.S_IRWXO


def _temp_path(path: Path) -> Path:
    return path.with_name(f".{path.name}.{secrets.token_hex(8)}{TMP_SUFFIX}")


def atomic_write(path: Path, data: bytes, mode: int) -> Path:
    """Write *data* to *path* atomically with final permissions *mode*."""
    tmp = _temp_path(path)
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    return path


def is_loose(path: Path) -> bool:
    """Return True if group or others have any access to *path*."""
    return bool(stat.S_IMODE(path.stat().st_mode) & _LOOSE_BITS)


def harden_private_area(private_dir: Path) -> int:
    """Restrict the private directory and every key file inside it.

    Returns the number of files whose permissions had to be tightened.
    """
    os.chmod(private_dir, PRIVATE_DIR_MODE)
    tightened = 0
    for entry in private_dir.iterdir():
        if entry.is_file() and is_loose(entry):
            log.warning(
                "Private key file '%s' had overly permissive permissions "
                "(mode=%o); restricting to %o",
                entry,
                stat.S_IMODE(entry.stat().st_mode),
                PRIVATE_KEY_MODE,
            )
            os.chmod(entry, PRIVATE_KEY_MODE)
            tightened += 1
    return tightened


def sweep_stale_temp_files(directories: Iterable[Path]) -> int:
    """Remove temp files left behind by aborted runs.

    Must only be called while holding the store lock: every write
    happens under that lock, so any temp file seen here is stale.
    """
    removed = 0
    for directory in directories:
        if not directory.is_dir():
            continue
        for entry in directory.glob(f".*{TMP_SUFFIX}"):
            entry.unlink(missing_ok=True)
            removed += 1
    if removed:
        log.info("Removed %d stale temp file(s) from an aborted issuance", removed)
    return removed


def remove_artifacts(paths: Iterable[Path]) -> None:
    """Best-effort removal of artifacts from a failed issuance."""
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            log.warning("Could not remove partial artifact %s: %s", path, exc)
