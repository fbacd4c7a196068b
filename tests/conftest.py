"""Root conftest for the SMIMECA test suite."""

from __future__ import annotations

import copy
import logging
import sys
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

BUNDLE_PASSWORD = "correct horse battery staple"

# 2048-bit root keys keep the suite fast; production defaults are 4096.
_BASE_CONFIG: dict = {
    "store": {"path": None, "lock_timeout_seconds": 30, "max_retries": 3},
    "identity": {
        "organization": "Example Corp",
        "organizational_unit": "IT Security",
        "country": "US",
        "state": "California",
        "city": "San Francisco",
        "email": "ca@example.com",
    },
    "validity": {"root_days": 3650, "leaf_days": 365},
    "keys": {"root_key_size": 2048, "leaf_key_size": 2048, "hash_algorithm": "sha256"},
    "bundle": {"password": BUNDLE_PASSWORD},
    "logging": {"level": "DEBUG", "format": "text"},
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "ca"


@pytest.fixture()
def config_data(store_path: Path) -> dict:
    """Return a full config dict rooted at *store_path*."""
    data = copy.deepcopy(_BASE_CONFIG)
    data["store"]["path"] = str(store_path)
    return data


@pytest.fixture()
def settings(config_data: dict):
    from smimeca.config.settings import build_settings

    return build_settings(config_data)


@pytest.fixture()
def tmp_config_file(tmp_path: Path, config_data: dict) -> Path:
    """Write *config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "smimeca.yaml"
    cfg.write_text(
        yaml.safe_dump(config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


@pytest.fixture()
def initialized_store(settings):
    """An initialised store without a root certificate."""
    from smimeca.store.layout import StoreLayout, initialize_store

    layout = StoreLayout(settings.store.path)
    initialize_store(
        layout,
        serial_start=settings.store.serial_start,
        lock_timeout=settings.store.lock_timeout_seconds,
    )
    return layout


@pytest.fixture()
def pipeline(settings, initialized_store):
    """An issuance pipeline whose store already holds a root certificate."""
    from smimeca.ca.issuance import IssuancePipeline

    pipe = IssuancePipeline(settings)
    pipe.issue_root()
    return pipe


# ---------------------------------------------------------------------------
# Logger cleanup -- configure_logging mutates the global hierarchy
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_smimeca_logging():
    yield
    root = logging.getLogger("smimeca")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = True
    root.setLevel(logging.NOTSET)
    audit = logging.getLogger("smimeca.audit")
    audit.disabled = False
    audit.setLevel(logging.NOTSET)
