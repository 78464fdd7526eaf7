"""YAML configuration loader.

Loads a single YAML file with a ``session`` section. Keys that are
absent keep their ToolConfig defaults; unknown keys are logged and
ignored.

Example YAML:
    session:
      cwd: /path/to/project
      auto_close_terminal: true
      skip_write_animation: false
      always_allow_write_only: false
      command_timeout_seconds: 45
      output_flush_delay_seconds: 0.3
      write_update_interval_seconds: 0.008
      log_level: INFO
"""
from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from .config import ToolConfig

logger = logging.getLogger(__name__)

_BOOL_KEYS = {
    "auto_close_terminal",
    "skip_write_animation",
    "always_allow_write_only",
}
_FLOAT_KEYS = {
    "command_timeout_seconds",
    "output_flush_delay_seconds",
    "write_update_interval_seconds",
}


def _coerce(key: str, value: Any) -> Any:
    if key in _BOOL_KEYS:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if key in _FLOAT_KEYS:
        return float(value)
    return str(value)


def config_from_dict(raw: dict[str, Any], base: ToolConfig | None = None) -> ToolConfig:
    """Build a ToolConfig from a parsed ``session`` mapping."""
    base = base or ToolConfig()
    known = {f.name for f in fields(ToolConfig)}
    changes: dict[str, Any] = {}
    for key, value in (raw or {}).items():
        if key not in known:
            logger.warning("Ignoring unknown session config key: %s", key)
            continue
        if value is None:
            continue
        changes[key] = _coerce(key, value)
    return base.with_overrides(**changes)


def load_yaml_config(path: str | Path) -> ToolConfig:
    """Load and parse a YAML config file into a ToolConfig.

    Relative ``cwd`` values resolve against the config file's directory.
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists()
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute()
        )
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"Top level of {path} must be a mapping")

    session_raw = raw.get("session") or {}
    if not isinstance(session_raw, dict):
        raise ValueError(f"'session' section of {path} must be a mapping")

    config = config_from_dict(session_raw)
    cwd = Path(config.cwd).expanduser()
    if "cwd" in session_raw and not cwd.is_absolute():
        config = config.with_overrides(cwd=str((path.parent / cwd).resolve()))

    logger.info(
        "Parsed YAML config %s: cwd=%s timeout=%.1fs",
        path.name, config.cwd, config.command_timeout_seconds,
    )
    return config
