"""Tests for smimeca.config -- loading, env resolution and validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from smimeca.config import ConfigValidationError, load_config
from smimeca.core.types import SerialSource


def _write(tmp_path: Path, data, name: str = "smimeca.yaml") -> Path:
    path = tmp_path / name
    if name.endswith(".json"):
        path.write_text(json.dumps(data), encoding="utf-8")
    else:
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def _minimal(store: str = "/srv/ca") -> dict:
    return {
        "store": {"path": store},
        "identity": {"organization": "Example Corp", "country": "US", "state": "California"},
    }


class TestLoadConfig:
    def test_full_config(self, tmp_config_file, store_path):
        settings = load_config(tmp_config_file)

        assert settings.store.path == store_path
        assert settings.store.serial_source == SerialSource.COUNTER
        assert settings.identity.organization == "Example Corp"
        assert settings.keys.root_key_size == 2048
        assert settings.bundle.password
        assert settings.logging.level == "DEBUG"

    def test_defaults(self, tmp_path):
        settings = load_config(_write(tmp_path, _minimal()))

        assert settings.store.serial_start == 0x1000
        assert settings.store.lock_timeout_seconds == 30.0
        assert settings.store.max_retries == 3
        assert settings.validity.root_days == 3650
        assert settings.validity.leaf_days == 365
        assert settings.keys.root_key_size == 4096
        assert settings.keys.leaf_key_size == 2048
        assert settings.keys.hash_algorithm == "sha256"
        assert settings.bundle.password is None
        assert settings.logging.format == "text"
        assert settings.logging.audit is True
        assert settings.identity.organizational_unit is None

    def test_log_file_defaults_to_store(self, tmp_path):
        settings = load_config(_write(tmp_path, _minimal("/srv/ca")))
        assert settings.log_file == Path("/srv/ca/ca.log")

    def test_explicit_log_file(self, tmp_path):
        data = _minimal()
        data["logging"] = {"file": "/var/log/smimeca.log"}
        settings = load_config(_write(tmp_path, data))
        assert settings.log_file == Path("/var/log/smimeca.log")

    def test_json_config(self, tmp_path):
        settings = load_config(_write(tmp_path, _minimal(), "smimeca.json"))
        assert settings.identity.country == "US"

    def test_settings_are_frozen(self, tmp_path):
        settings = load_config(_write(tmp_path, _minimal()))
        with pytest.raises(AttributeError):
            settings.store.max_retries = 10  # type: ignore[misc]


class TestEnvResolution:
    def test_env_var(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SMIMECA_TEST_PASSWORD", "from-env")
        data = _minimal()
        data["bundle"] = {"password": "${SMIMECA_TEST_PASSWORD}"}
        assert load_config(_write(tmp_path, data)).bundle.password == "from-env"

    def test_env_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SMIMECA_TEST_STORE", raising=False)
        data = _minimal("${SMIMECA_TEST_STORE:-/opt/ca}")
        assert load_config(_write(tmp_path, data)).store.path == Path("/opt/ca")

    def test_missing_env_var(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SMIMECA_TEST_PASSWORD", raising=False)
        data = _minimal()
        data["bundle"] = {"password": "${SMIMECA_TEST_PASSWORD}"}
        with pytest.raises(ConfigValidationError, match="bundle.password"):
            load_config(_write(tmp_path, data))


class TestValidation:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="failed to read"):
            load_config(tmp_path / "absent.yaml")

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "smimeca.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="mapping"):
            load_config(path)

    def test_missing_required_sections(self, tmp_path):
        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(_write(tmp_path, {"store": {}}))
        text = "\n".join(exc_info.value.errors)
        assert "'identity' is a required property" in text
        assert "'path' is a required property" in text

    def test_unknown_key_rejected(self, tmp_path):
        data = _minimal()
        data["store"]["colour"] = "blue"
        with pytest.raises(ConfigValidationError, match="colour"):
            load_config(_write(tmp_path, data))

    def test_bad_enum(self, tmp_path):
        data = _minimal()
        data["store"]["serial_source"] = "database"
        with pytest.raises(ConfigValidationError, match="store.serial_source"):
            load_config(_write(tmp_path, data))

    def test_cross_field_errors_are_collected(self, tmp_path):
        data = _minimal()
        data["identity"]["country"] = "USA"
        data["identity"]["email"] = "not-an-email"
        data["keys"] = {"leaf_key_size": 1024}
        data["validity"] = {"leaf_days": 0}
        data["store"]["serial_start"] = 0

        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(_write(tmp_path, data))
        errors = exc_info.value.errors
        assert len(errors) == 5
        assert any("identity.country" in e for e in errors)
        assert any("identity.email" in e for e in errors)
        assert any("keys.leaf_key_size" in e for e in errors)
        assert any("validity.leaf_days" in e for e in errors)
        assert any("store.serial_start" in e for e in errors)

    def test_leaf_outliving_root_warns(self, tmp_path, caplog):
        data = _minimal()
        data["validity"] = {"root_days": 30, "leaf_days": 365}
        with caplog.at_level("WARNING", logger="smimeca.config"):
            load_config(_write(tmp_path, data))
        assert "outlive the root" in caplog.text
