"""
Configuration management for the schema compatibility engine.

All configuration is done via environment variables; CLI flags override
individual values. This module provides typed configuration classes with
validation.

Invariants:
    - All settings have sensible defaults (full mode, latestMinor, fail on break)
    - Invalid values fail at load time, not halfway through a check

How to change safely:
    - Add new settings with defaults that keep existing builds passing
    - Keep environment variable names stable; CI pipelines set them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from .schema.types import Mode
from .schema.versioning import Strategy

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_LOG_FORMATS = ("json", "text")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class CompatConfig:
    """Compatibility check configuration.

    Attributes:
        mode: Default compatibility mode for types without an override
        strategy: Baseline version selection strategy
        fail_on_break: Whether Error-severity issues fail the build
        max_workers: Thread pool size for per-type checks (None = default)
    """

    mode: Mode = Mode.FULL
    strategy: Strategy = Strategy.LATEST_MINOR
    fail_on_break: bool = True
    max_workers: Optional[int] = None

    @classmethod
    def from_env(cls) -> CompatConfig:
        """Load configuration from environment variables.

        Raises:
            ValueError: If a mode, strategy or worker count is invalid
        """
        raw_workers = os.getenv("SCHEMA_COMPAT_MAX_WORKERS")
        try:
            max_workers = int(raw_workers) if raw_workers else None
        except ValueError:
            raise ValueError(
                f"Invalid SCHEMA_COMPAT_MAX_WORKERS '{raw_workers}'. Must be an integer"
            )
        return cls(
            mode=Mode.from_str(os.getenv("SCHEMA_COMPAT_MODE", "full")),
            strategy=Strategy.from_str(os.getenv("SCHEMA_COMPAT_STRATEGY", "latestMinor")),
            fail_on_break=_env_bool("SCHEMA_COMPAT_FAIL_ON_BREAK", "true"),
            max_workers=max_workers,
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
        )


@dataclass
class EngineConfig:
    """Complete configuration.

    Attributes:
        compat: Compatibility check configuration
        observability: Logging configuration
    """

    compat: CompatConfig = field(default_factory=CompatConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            compat=CompatConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.compat.max_workers is not None and self.compat.max_workers < 1:
            raise ValueError(
                f"SCHEMA_COMPAT_MAX_WORKERS must be >= 1, got {self.compat.max_workers}"
            )
        if self.observability.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid LOG_LEVEL '{self.observability.log_level}'. "
                f"Must be one of: {', '.join(_LOG_LEVELS)}"
            )
        if self.observability.log_format not in _LOG_FORMATS:
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. "
                f"Must be one of: {', '.join(_LOG_FORMATS)}"
            )

    def log_config(self) -> None:
        logger.info(
            "Schema compatibility configuration loaded",
            extra={
                "mode": self.compat.mode.value,
                "strategy": self.compat.strategy.value,
                "fail_on_break": self.compat.fail_on_break,
                "max_workers": self.compat.max_workers,
                "log_level": self.observability.log_level,
            },
        )
