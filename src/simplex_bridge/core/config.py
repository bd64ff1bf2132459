from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, cast

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigError

logger = logging.getLogger("simplex_bridge.core.config")

ROOT_CONFIG_FILENAME = "simplex-bridge.yml"
ROOT_OVERRIDE_FILENAME = "simplex-bridge.override.yml"
STATE_DIRNAME = ".simplex-bridge"


def _merge_defaults(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = cast(Dict[str, Any], json.loads(json.dumps(base)))
    for key, value in overrides.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml_dict(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def load_dotenv_for_root(root: Path) -> None:
    """
    Best-effort load of environment variables for the provided root.

    Files are loaded from fixed locations under ``root`` rather than the process
    CWD, and override values already present in the environment.
    """
    try:
        root = root.resolve()
        for candidate in (root / ".env", root / STATE_DIRNAME / ".env"):
            if candidate.exists():
                load_dotenv(dotenv_path=candidate, override=True)
    except OSError as exc:
        logger.debug("Failed to load .env file: %s", exc)


def load_root_config(root: Path, *, section: Optional[str] = None) -> Dict[str, Any]:
    """Load ``simplex-bridge.yml`` merged with its override file.

    When ``section`` is given only that mapping is returned (empty if absent).
    """
    load_dotenv_for_root(root)
    merged = _load_yaml_dict(root / ROOT_CONFIG_FILENAME)
    override_path = root / ROOT_OVERRIDE_FILENAME
    try:
        override = _load_yaml_dict(override_path)
    except ConfigError as exc:
        raise ConfigError(
            f"Invalid override config {override_path}; fix or delete it: {exc}"
        ) from exc
    if override:
        merged = _merge_defaults(merged, override)
    if section is None:
        return merged
    value = merged.get(section)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{section} must be a mapping")
    return value


__all__ = [
    "ROOT_CONFIG_FILENAME",
    "ROOT_OVERRIDE_FILENAME",
    "STATE_DIRNAME",
    "load_dotenv_for_root",
    "load_root_config",
]
