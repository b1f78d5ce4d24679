"""
Application configuration loaded from an optional YAML file.

Deutsch:
    Anwendungskonfiguration aus einer optionalen YAML-Datei.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from jsonschema import Draft7Validator

from .errors import ConfigError
from .labels import CABLE_GROUP_LABEL, TERRESTRIAL_GROUP_LABEL
from .schemas import load_schema

log = logging.getLogger(__name__)

CONFIG_ENV_VAR = "E2DUPES_CONFIG"

_CONFIG_VALIDATOR = Draft7Validator(load_schema("config.schema.json"))


@dataclass
class AppConfig:
    """
    User options controlling scans and removals.

    Deutsch:
        Benutzeroptionen für Suche und Löschen.
    """

    log_level: Optional[str] = None
    settings_dir: Optional[Path] = None
    output_dir: Optional[Path] = None
    require_confirmation: bool = True
    cable_label: str = CABLE_GROUP_LABEL
    terrestrial_label: str = TERRESTRIAL_GROUP_LABEL


def load_config(path: Optional[Path] = None) -> AppConfig:
    """
    Load the config file given explicitly or via ``E2DUPES_CONFIG``.

    Without either, the defaults are returned.
    """

    if path is None:
        env_value = os.getenv(CONFIG_ENV_VAR)
        if not env_value:
            return AppConfig()
        path = Path(env_value)

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"config file {path} not found")
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse config {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"config {path} must contain a mapping")

    errors = sorted(_CONFIG_VALIDATOR.iter_errors(data), key=lambda err: list(err.path))
    if errors:
        details = "; ".join(_format_error(err) for err in errors)
        raise ConfigError(f"invalid config {path}: {details}")

    log.debug("loaded config from %s", path)
    return _build_config(data, path.parent)


def _build_config(data: Dict[str, Any], base_dir: Path) -> AppConfig:
    labels = data.get("group_labels") or {}
    return AppConfig(
        log_level=data.get("log_level"),
        settings_dir=_resolve_path(data.get("settings_dir"), base_dir),
        output_dir=_resolve_path(data.get("output_dir"), base_dir),
        require_confirmation=bool(data.get("require_confirmation", True)),
        cable_label=labels.get("cable", CABLE_GROUP_LABEL),
        terrestrial_label=labels.get("terrestrial", TERRESTRIAL_GROUP_LABEL),
    )


def _resolve_path(value: Optional[str], base_dir: Path) -> Optional[Path]:
    if not value:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else base_dir / path


def _format_error(error: Any) -> str:
    location = "/".join(str(part) for part in error.path) or "<root>"
    return f"{location}: {error.message}"
