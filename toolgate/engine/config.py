"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via TOOLGATE_* env vars
or a YAML file (see yaml_config.py). A snapshot is taken per invocation
so engines never read global mutable state.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class ToolConfig:
    """Session configuration consumed by the tool engines."""

    # Working directory commands run in and file paths resolve against.
    cwd: str = "."
    # Close the terminal once its command exits.
    auto_close_terminal: bool = False
    # Skip incremental diff previews while file content streams in.
    skip_write_animation: bool = False
    # Auto-approve mode for write-only tools. While on, free-text
    # answers to a command prompt are not surfaced as feedback.
    always_allow_write_only: bool = False
    # How long a command may run before a partial result is returned.
    # The process itself is left running.
    command_timeout_seconds: float = 45.0
    # Grace period after the race to collect trailing output.
    output_flush_delay_seconds: float = 0.3
    # Minimum spacing between partial diff preview pushes.
    write_update_interval_seconds: float = 0.008

    # Logging
    log_level: str = "INFO"

    def with_overrides(self, **changes) -> ToolConfig:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    @classmethod
    def from_env(cls) -> ToolConfig:
        """Load configuration from TOOLGATE_* environment variables."""
        overrides = {
            k: v for k, v in os.environ.items() if k.startswith("TOOLGATE_")
        }
        if overrides:
            logger.info(
                "ToolConfig.from_env: TOOLGATE_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(overrides.items())),
            )
        else:
            logger.debug("ToolConfig.from_env: no TOOLGATE_* env vars set, using defaults")

        config = cls(
            cwd=os.getenv("TOOLGATE_CWD", cls.cwd),
            auto_close_terminal=_env_flag(
                "TOOLGATE_AUTO_CLOSE_TERMINAL", cls.auto_close_terminal
            ),
            skip_write_animation=_env_flag(
                "TOOLGATE_SKIP_WRITE_ANIMATION", cls.skip_write_animation
            ),
            always_allow_write_only=_env_flag(
                "TOOLGATE_ALWAYS_ALLOW_WRITE_ONLY", cls.always_allow_write_only
            ),
            command_timeout_seconds=float(os.getenv(
                "TOOLGATE_COMMAND_TIMEOUT", str(cls.command_timeout_seconds)
            )),
            output_flush_delay_seconds=float(os.getenv(
                "TOOLGATE_OUTPUT_FLUSH_DELAY",
                str(cls.output_flush_delay_seconds),
            )),
            write_update_interval_seconds=float(os.getenv(
                "TOOLGATE_WRITE_UPDATE_INTERVAL",
                str(cls.write_update_interval_seconds),
            )),
            log_level=os.getenv("TOOLGATE_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "ToolConfig.from_env: cwd=%s timeout=%.1fs auto_close=%s log_level=%s",
            config.cwd, config.command_timeout_seconds,
            config.auto_close_terminal, config.log_level,
        )
        return config
