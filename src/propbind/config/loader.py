from __future__ import annotations

import functools
import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from propbind.config.models import PropbindSettings, SettingsLoadRequest

logger = logging.getLogger(__name__)

SettingPath = tuple[str, ...]


class YamlSettingsLoader:
    """
    Builds PropbindSettings from layered inputs.

    Layers, later ones winning: model defaults, the YAML file, then environment
    variables named <prefix>SECTION__FIELD (after an optional .env file has been
    loaded without overriding variables that are already set). An environment
    variable must name an existing scalar setting; pydantic validates and
    coerces the combined result.
    """

    async def load(self, request: SettingsLoadRequest = SettingsLoadRequest()) -> PropbindSettings:
        defaults = PropbindSettings().model_dump(mode="python")
        layers: list[Mapping[str, Any]] = [defaults]

        if request.yaml_path is not None:
            layers.append(self._read_yaml(Path(request.yaml_path)))

        if request.dotenv_path is not None and Path(request.dotenv_path).exists():
            load_dotenv(dotenv_path=request.dotenv_path, override=False)

        layers.append(self._environment_layer(request.env_prefix, self._setting_paths(defaults)))
        return PropbindSettings.model_validate(functools.reduce(self._overlay, layers, {}))

    @staticmethod
    def _read_yaml(path: Path) -> Mapping[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")
        with path.open(encoding="utf-8") as stream:
            data = yaml.safe_load(stream)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Top-level YAML must be a mapping, got: {type(data).__name__}")
        return data

    @classmethod
    def _setting_paths(cls, tree: Mapping[str, Any], parent: SettingPath = ()) -> dict[SettingPath, bool]:
        """Map every setting path to True when it names a section, False for a scalar."""
        paths: dict[SettingPath, bool] = {}
        for name, value in tree.items():
            path = parent + (name,)
            paths[path] = isinstance(value, dict)
            if paths[path]:
                paths.update(cls._setting_paths(value, path))
        return paths

    @staticmethod
    def _environment_layer(prefix: str, paths: Mapping[SettingPath, bool]) -> dict[str, Any]:
        layer: dict[str, Any] = {}
        for variable in sorted(os.environ):
            if not variable.startswith(prefix):
                continue
            path = tuple(segment.lower() for segment in variable[len(prefix) :].split("__") if segment)
            if not path:
                raise ValueError(f"Invalid environment variable override name: {variable}")
            dotted = ".".join(path)
            if path not in paths:
                raise KeyError(f"Unknown settings key path: {dotted}")
            if paths[path]:
                raise TypeError(f"Environment variable overrides are only allowed for scalar values. Key '{dotted}' is a section.")

            node = layer
            for segment in path[:-1]:
                node = node.setdefault(segment, {})
            node[path[-1]] = os.environ[variable]
            logger.debug("Applied environment override. key=%s variable=%s", dotted, variable)
        return layer

    @classmethod
    def _overlay(cls, base: Mapping[str, Any], layer: Mapping[str, Any]) -> dict[str, Any]:
        merged = dict(base)
        for name, value in layer.items():
            if isinstance(value, Mapping) and isinstance(merged.get(name), Mapping):
                merged[name] = cls._overlay(merged[name], value)
            else:
                merged[name] = value
        return merged
