"""
ScriptLoop Configuration Management.

Handles loading, saving, and validating configuration from various sources:
- Default values
- Configuration files (TOML)
- Environment variables
"""

from __future__ import annotations

import json
import logging
import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

import tomli_w

logger = logging.getLogger(__name__)

# Configuration directory and file constants
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "scriptloop"
DEFAULT_CONFIG_FILE = "config.toml"

# Largest delay a timer accepts, in milliseconds (signed 32-bit)
MAX_TIMER_DELAY_MS = 2147483647.0


@dataclass
class ValidationError:
    """Validation error for configuration."""
    field: str
    message: str
    severity: str  # "error" or "warning"

    def __str__(self) -> str:
        return f"[{self.severity.upper()}] {self.field}: {self.message}"


@dataclass
class EngineConfig:
    """Naming and evaluation settings for the engine side."""

    # Product name used in diagnostics such as the missing event-loop error
    name: str = "ScriptLoop"

    # Name of the host runtime, used in marshaled host errors
    host_name: str = "Python"

    # File name reported for top-level evaluated code
    filename: str = "<evaluate>"


@dataclass
class TimerConfig:
    """Configuration for ``setTimeout`` delays."""

    # Invalid, negative or too large delays are clamped to this value
    min_delay_ms: float = 0.0
    max_delay_ms: float = MAX_TIMER_DELAY_MS


@dataclass
class DrainConfig:
    """Configuration for draining the engine job queue."""

    # Report rejected promises that still have no handler after a drain pass
    report_unhandled_rejections: bool = True

    # Log a warning when a single drain pass runs this many jobs
    warn_after_jobs: int = 100_000


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "WARNING"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[Path] = None


@dataclass
class ScriptLoopConfig:
    """Main configuration container for ScriptLoop."""

    config_dir: Path = DEFAULT_CONFIG_DIR

    engine: EngineConfig = field(default_factory=EngineConfig)
    timers: TimerConfig = field(default_factory=TimerConfig)
    drain: DrainConfig = field(default_factory=DrainConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = ("engine", "timers", "drain", "logging")


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = "SCRIPTLOOP_"
) -> ScriptLoopConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Default values

    Args:
        config_path: Path to config file (default: ~/.config/scriptloop/config.toml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration
    """
    config = ScriptLoopConfig()

    if config_path is None:
        env_config_dir = os.environ.get(f"{env_prefix}CONFIG_DIR")
        if env_config_dir:
            config_path = Path(env_config_dir) / DEFAULT_CONFIG_FILE
        else:
            config_path = DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE

    if config_path.exists():
        config = _load_from_file(config_path, config)

    config = _load_from_env(config, env_prefix)

    return config


def _load_from_file(path: Path, config: ScriptLoopConfig) -> ScriptLoopConfig:
    """Load configuration from a TOML file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        return config

    for section in _SECTIONS:
        if section not in data:
            continue
        section_obj = getattr(config, section)
        for key, value in data[section].items():
            if hasattr(section_obj, key):
                setattr(section_obj, key, value)
            else:
                logger.warning(f"Ignoring unknown configuration key: {section}.{key}")

    if "config_dir" in data:
        config.config_dir = Path(data["config_dir"])
    if config.logging.file is not None:
        config.logging.file = Path(config.logging.file)

    return config


def _load_from_env(config: ScriptLoopConfig, prefix: str) -> ScriptLoopConfig:
    """Load configuration from environment variables."""

    # Engine settings
    if env_val := os.environ.get(f"{prefix}ENGINE_NAME"):
        config.engine.name = env_val
    if env_val := os.environ.get(f"{prefix}HOST_NAME"):
        config.engine.host_name = env_val

    # Timer settings
    if env_val := os.environ.get(f"{prefix}MIN_DELAY_MS"):
        config.timers.min_delay_ms = float(env_val)
    if env_val := os.environ.get(f"{prefix}MAX_DELAY_MS"):
        config.timers.max_delay_ms = float(env_val)

    # Drain settings
    if env_val := os.environ.get(f"{prefix}REPORT_UNHANDLED"):
        config.drain.report_unhandled_rejections = env_val.lower() in ("true", "1", "yes")

    # Logging settings
    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()

    # Paths
    if env_val := os.environ.get(f"{prefix}CONFIG_DIR"):
        config.config_dir = Path(env_val)

    return config


def config_to_dict(config: ScriptLoopConfig) -> dict[str, Any]:
    """Convert configuration to a TOML/JSON friendly dictionary."""
    data = asdict(config)
    data["config_dir"] = str(config.config_dir)
    if config.logging.file is None:
        data["logging"].pop("file")
    else:
        data["logging"]["file"] = str(config.logging.file)
    return data


def export_config_json(config: ScriptLoopConfig) -> str:
    """Export configuration as a JSON string."""
    return json.dumps(config_to_dict(config), indent=2)


def save_config(config: ScriptLoopConfig, path: Optional[Path] = None) -> Path:
    """
    Save configuration to a TOML file.

    Args:
        config: Configuration to save
        path: Path to save to (default: config.config_dir / config.toml)

    Returns:
        The path written
    """
    if path is None:
        path = config.config_dir / DEFAULT_CONFIG_FILE

    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "wb") as f:
        tomli_w.dump(config_to_dict(config), f)

    return path


def validate_config(config: ScriptLoopConfig) -> list[ValidationError]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors: list[ValidationError] = []

    if config.timers.min_delay_ms < 0:
        errors.append(ValidationError(
            field="timers.min_delay_ms",
            message="Minimum delay cannot be negative.",
            severity="error"
        ))
    if config.timers.max_delay_ms < config.timers.min_delay_ms:
        errors.append(ValidationError(
            field="timers.max_delay_ms",
            message="Maximum delay is smaller than the minimum delay.",
            severity="error"
        ))
    if config.timers.max_delay_ms > MAX_TIMER_DELAY_MS:
        errors.append(ValidationError(
            field="timers.max_delay_ms",
            message=f"Delays above {MAX_TIMER_DELAY_MS:.0f}ms overflow in most engines.",
            severity="warning"
        ))
    if config.drain.warn_after_jobs <= 0:
        errors.append(ValidationError(
            field="drain.warn_after_jobs",
            message="Must be a positive number of jobs.",
            severity="error"
        ))
    if config.logging.level.upper() not in logging.getLevelNamesMapping():
        errors.append(ValidationError(
            field="logging.level",
            message=f"Unknown log level: {config.logging.level}",
            severity="error"
        ))

    return errors


def get_default_config() -> ScriptLoopConfig:
    """Get the default configuration."""
    return ScriptLoopConfig()


# Global configuration instance (lazy-loaded)
_global_config: Optional[ScriptLoopConfig] = None


def get_config() -> ScriptLoopConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: ScriptLoopConfig) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def clear_config_cache() -> None:
    """Clear the global configuration cache."""
    global _global_config
    _global_config = None
