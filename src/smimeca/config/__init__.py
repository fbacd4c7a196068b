"""Configuration subsystem for SMIMECA.

Public API::

    from smimeca.config import load_config

    settings = load_config("smimeca.yaml")
    settings.store.path          # typed access
"""

from smimeca.config.loader import ConfigValidationError, load_config
from smimeca.config.settings import (
    BundleSettings,
    IdentitySettings,
    KeySettings,
    LoggingSettings,
    SmimecaSettings,
    StoreSettings,
    ValiditySettings,
    build_settings,
)

__all__ = [
    "BundleSettings",
    "ConfigValidationError",
    "IdentitySettings",
    "KeySettings",
    "LoggingSettings",
    "SmimecaSettings",
    "StoreSettings",
    "ValiditySettings",
    "build_settings",
    "load_config",
]
