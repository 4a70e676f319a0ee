"""Binding options and logging settings, plus their YAML/env loader."""

from propbind.config.loader import YamlSettingsLoader
from propbind.config.models import (
    BindingOptions,
    LoggingSettings,
    PropbindSettings,
    SettingsLoadRequest,
)

__all__ = [
    "BindingOptions",
    "LoggingSettings",
    "PropbindSettings",
    "SettingsLoadRequest",
    "YamlSettingsLoader",
]
