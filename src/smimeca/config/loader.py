"""SMIMECA configuration loader.

Lifecycle::

    # 1. The CLI loads the file once, at startup
    settings = load_config("/etc/smimeca/smimeca.yaml")

    # 2. The resulting frozen tree is passed explicitly to the core
    pipeline = IssuancePipeline(settings)

Loading happens in four stages: parse (YAML or JSON), resolve
``${VAR}`` / ``${VAR:-default}`` references from the environment,
validate against the bundled JSON Schema, then run cross-field checks.
Every problem found is reported together in one
:class:`ConfigValidationError`.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from smimeca.config.settings import SmimecaSettings, build_settings
from smimeca.core.email import is_valid_email

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_MIN_RSA_KEY_SIZE = 2048
_COUNTRY_RE = re.compile(r"[A-Za-z]{2}")

log = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        """Store *errors* and build a human-readable message."""
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(data: Any, path: str = "") -> None:  # noqa: ANN401
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


# ---------------------------------------------------------------------------
# Parsing & validation
# ---------------------------------------------------------------------------


def _read_file(config_path: Path) -> dict:
    with open(config_path, encoding="utf-8") as f:  # noqa: PTH123
        if config_path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if not isinstance(data, dict):
        msg = f"{config_path}: top-level value must be a mapping"
        raise ConfigValidationError([msg])
    return data


def _schema_errors(data: dict) -> list[str]:
    schema = json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))
    validator = Draft202012Validator(schema)
    errors = []
    for err in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        where = ".".join(str(p) for p in err.path) or "<root>"
        errors.append(f"{where}: {err.message}")
    return errors


def additional_checks(data: dict) -> None:
    """Semantic & cross-field validation run after the schema passes."""
    errors: list[str] = []
    identity = data.get("identity") or {}
    validity = data.get("validity") or {}
    keys = data.get("keys") or {}
    store = data.get("store") or {}

    # -- identity --
    country = identity.get("country", "")
    if not _COUNTRY_RE.fullmatch(country):
        errors.append(
            f"identity.country must be a two-letter code (got {country!r})",
        )
    ca_email = identity.get("email")
    if ca_email and not is_valid_email(ca_email):
        errors.append(f"identity.email is not a valid address (got {ca_email!r})")

    # -- keys --
    for name in ("root_key_size", "leaf_key_size"):
        size = keys.get(name)
        if size is not None and size < _MIN_RSA_KEY_SIZE:
            errors.append(
                f"keys.{name} ({size}) must be at least {_MIN_RSA_KEY_SIZE}",
            )

    # -- validity --
    for name in ("root_days", "leaf_days"):
        days = validity.get(name)
        if days is not None and days < 1:
            errors.append(f"validity.{name} must be at least 1 (got {days})")

    root_days = validity.get("root_days", 3650)
    leaf_days = validity.get("leaf_days", 365)
    if leaf_days > root_days:
        log.warning(
            "Config warning: validity.leaf_days (%d) exceeds validity.root_days "
            "(%d); leaf certificates will outlive the root",
            leaf_days,
            root_days,
        )

    # -- store --
    start = store.get("serial_start")
    if start is not None and start < 1:
        errors.append(f"store.serial_start must be positive (got {start})")

    if errors:
        raise ConfigValidationError(errors)


def load_config(config_file: str | Path) -> SmimecaSettings:
    """Load, resolve, validate and materialise the settings tree.

    Raises
    ------
    ConfigValidationError
        If the file cannot be parsed or any check fails.

    """
    config_path = Path(config_file)
    try:
        data = _read_file(config_path)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
        msg = f"failed to read configuration {config_path}: {exc}"
        raise ConfigValidationError([msg]) from exc

    # Env vars first so substituted values are checked by the schema.
    _resolve_env_vars(data)

    errors = _schema_errors(data)
    if errors:
        raise ConfigValidationError(errors)

    additional_checks(data)
    settings = build_settings(data)
    log.debug("Loaded configuration from %s", config_path)
    return settings
