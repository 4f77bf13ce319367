from __future__ import annotations

import copy
import errno
import logging
import os
import threading
from pathlib import Path
from typing import Any

import yaml

from calport.models import AppConfig, default_app_config


logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "CALPORT_CONFIG_PATH"
DEFAULT_CONFIG_PATH = "config.yaml"
MASK = "***"
# (section, key) pairs never echoed back and never cleared by a masked update.
SECRET_FIELDS = (("caldav", "password"),)


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _drop_placeholder_secrets(payload: dict[str, Any], current: dict[str, Any]) -> dict[str, Any]:
    """Remove masked or blank secrets so an update does not wipe stored ones."""
    cleaned = copy.deepcopy(payload)
    for section, key in SECRET_FIELDS:
        values = cleaned.get(section)
        if not isinstance(values, dict) or key not in values:
            continue
        if str(values[key] if values[key] is not None else "").strip() not in {"", MASK}:
            continue
        if current.get(section, {}).get(key):
            values.pop(key)
        else:
            values[key] = ""
        if not values:
            cleaned.pop(section)
    return cleaned


def _write_yaml(path: Path, config_dict: dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config_dict, handle, sort_keys=False, allow_unicode=True, default_flow_style=False)


class ConfigManager:
    """Importer settings and CalDAV credentials kept in one YAML file."""

    def __init__(self, config_path: str | os.PathLike[str]) -> None:
        self.config_path = Path(config_path)
        self._lock = threading.RLock()
        if not self.config_path.exists():
            logger.info("Creating default config at %s", self.config_path)
            self.save(default_app_config())

    @classmethod
    def from_env(cls) -> "ConfigManager":
        return cls(os.getenv(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH))

    def load(self) -> AppConfig:
        with self._lock:
            with self.config_path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
            return AppConfig.from_dict(data)

    def save(self, config: AppConfig) -> None:
        with self._lock:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            config_dict = config.to_dict()
            tmp_path = self.config_path.with_suffix(self.config_path.suffix + ".tmp")
            _write_yaml(tmp_path, config_dict)
            try:
                tmp_path.replace(self.config_path)
            except OSError as exc:
                # Bind-mounted single files in containers cannot be atomically replaced.
                if exc.errno != errno.EBUSY:
                    raise
                _write_yaml(self.config_path, config_dict)
                tmp_path.unlink(missing_ok=True)

    def update(self, payload: dict[str, Any]) -> AppConfig:
        """Deep-merge ``payload`` into the stored config.

        A secret sent back as ``***`` or blank keeps its stored value.
        """
        with self._lock:
            current = self.load().to_dict()
            merged = _deep_merge(current, _drop_placeholder_secrets(payload, current))
            config = AppConfig.from_dict(merged)
            self.save(config)
            return config

    def masked(self, config: AppConfig | None = None) -> dict[str, Any]:
        data = (config or self.load()).to_dict()
        for section, key in SECRET_FIELDS:
            if data.get(section, {}).get(key):
                data[section][key] = MASK
        return data
