"""
Configuration loader module for contact-vault.

Provides YAML-based configuration file loading with support for:
- Loading configuration from default or custom paths
- Graceful handling of missing configuration files
- Type and range validation of known keys, including nested sections
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from contact_vault.daemon import parse_interval
from contact_vault.utils.paths import resolve_config_dir

# Default configuration file name
DEFAULT_CONFIG_FILE = "config.yaml"

logger = logging.getLogger(__name__)

NUMBER = (int, float)

# Top-level keys and their expected types
VALID_KEYS: dict[str, type[Any] | tuple[type[Any], ...]] = {
    # Storage
    "data_dir": str,
    "kv_capacity_bytes": int,
    # Timers
    "rapid_interval": (str, int),
    "full_interval": (str, int),
    "cleanup_interval": (str, int),
    "retention_days": NUMBER,
    # Remote sync
    "remote_sync_url": str,
    "remote_sync_token_env": str,
    "remote_timeout": NUMBER,
    # Recovery
    "scoring": dict,
    "divergence": dict,
    # Logging
    "log_dir": str,
    "log_retention_count": int,
    "verbose": bool,
    # Daemon
    "daemon_pid_file": str,
}

SCORING_KEYS: dict[str, type[Any] | tuple[type[Any], ...]] = {
    "record_weight": NUMBER,
    "recency_window_hours": NUMBER,
    "reliability": dict,
}

DIVERGENCE_KEYS: dict[str, type[Any] | tuple[type[Any], ...]] = {
    "ratio": NUMBER,
    "floor": int,
}

RELIABILITY_TIERS = ("primary", "backup", "async_store", "snapshot")


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def _type_name(expected: type[Any] | tuple[type[Any], ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _check_types(
    section: dict[str, Any],
    valid_keys: dict[str, type[Any] | tuple[type[Any], ...]],
    prefix: str = "",
) -> None:
    for key, value in section.items():
        if key not in valid_keys:
            logger.warning(f"Ignoring unknown configuration key '{prefix}{key}'")
            continue
        expected = valid_keys[key]
        # bool is an int subclass; only accept it where bool is expected
        if isinstance(value, bool) and expected is not bool:
            raise ConfigError(
                f"Invalid type for '{prefix}{key}': expected {_type_name(expected)}, "
                f"got bool"
            )
        if not isinstance(value, expected):
            raise ConfigError(
                f"Invalid type for '{prefix}{key}': expected {_type_name(expected)}, "
                f"got {type(value).__name__}"
            )


class ConfigLoader:
    """
    YAML configuration file loader.

    Attributes:
        config_dir: Directory containing the configuration file
        config_file: Name of the configuration file

    Usage:
        loader = ConfigLoader()
        config = loader.load_and_validate()

        # With custom path
        loader = ConfigLoader(config_dir=Path("/custom/path"))

        # Load from specific file
        config = loader.load_from_file("/path/to/config.yaml")
    """

    def __init__(
        self, config_dir: Optional[Path] = None, config_file: str = DEFAULT_CONFIG_FILE
    ):
        """
        Args:
            config_dir: Directory containing the configuration file.
                       Defaults to ~/.contact-vault/ or $CONTACT_VAULT_CONFIG_DIR
            config_file: Name of the configuration file (default: config.yaml)
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.config_file = config_file

    @property
    def config_path(self) -> Path:
        return self.config_dir / self.config_file

    def load(self) -> dict[str, Any]:
        """
        Load configuration from the default configuration file.

        Returns:
            Configuration values, or an empty dict if the file doesn't exist

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        return self.load_from_file(self.config_path)

    def load_from_file(self, path: Path | str) -> dict[str, Any]:
        """
        Load configuration from a specific file.

        Args:
            path: Path to the configuration file

        Returns:
            Configuration values, or an empty dict if the file doesn't exist
            or is empty

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        path = Path(path)

        if not path.exists():
            logger.debug(f"Configuration file not found: {path}")
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                config = yaml.safe_load(f)

            if config is None:
                logger.debug(f"Configuration file is empty: {path}")
                return {}

            if not isinstance(config, dict):
                raise ConfigError(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(config).__name__}"
                )

            logger.debug(f"Loaded configuration from {path}")
            return config

        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}") from e

    def validate(self, config: dict[str, Any]) -> None:
        """
        Validate configuration structure and values.

        Unknown keys are logged and ignored.

        Raises:
            ConfigError: If configuration is invalid
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration must be a dictionary, got {type(config).__name__}"
            )

        _check_types(config, VALID_KEYS)

        for key in ("rapid_interval", "full_interval", "cleanup_interval"):
            if key in config:
                try:
                    seconds = parse_interval(config[key])
                except ValueError as e:
                    raise ConfigError(f"Invalid {key}: {e}") from e
                if seconds < 1:
                    raise ConfigError(f"{key} must be at least 1 second, got {seconds}")

        positive_keys = ["kv_capacity_bytes", "retention_days", "remote_timeout"]
        for key in positive_keys:
            if key in config and config[key] <= 0:
                raise ConfigError(f"{key} must be > 0, got {config[key]}")

        if "log_retention_count" in config and config["log_retention_count"] < 1:
            raise ConfigError(
                f"log_retention_count must be >= 1, got {config['log_retention_count']}"
            )

        if "remote_sync_url" in config:
            url = config["remote_sync_url"]
            if url and not url.startswith(("http://", "https://")):
                raise ConfigError(f"remote_sync_url must be an http(s) URL, got {url!r}")

        if "scoring" in config:
            scoring = config["scoring"]
            _check_types(scoring, SCORING_KEYS, prefix="scoring.")
            for key in ("record_weight", "recency_window_hours"):
                if key in scoring and scoring[key] < 0:
                    raise ConfigError(f"scoring.{key} must be >= 0, got {scoring[key]}")
            for tier, bonus in (scoring.get("reliability") or {}).items():
                if tier not in RELIABILITY_TIERS:
                    raise ConfigError(
                        f"Unknown reliability tier '{tier}'. "
                        f"Must be one of: {', '.join(RELIABILITY_TIERS)}"
                    )
                if isinstance(bonus, bool) or not isinstance(bonus, NUMBER):
                    raise ConfigError(
                        f"scoring.reliability.{tier} must be a number, "
                        f"got {type(bonus).__name__}"
                    )

        if "divergence" in config:
            divergence = config["divergence"]
            _check_types(divergence, DIVERGENCE_KEYS, prefix="divergence.")
            if "ratio" in divergence and not (0.0 <= divergence["ratio"] <= 1.0):
                raise ConfigError(
                    f"divergence.ratio must be between 0.0 and 1.0, "
                    f"got {divergence['ratio']}"
                )
            if "floor" in divergence and divergence["floor"] < 0:
                raise ConfigError(f"divergence.floor must be >= 0, got {divergence['floor']}")

    def load_and_validate(self) -> dict[str, Any]:
        """
        Load configuration and validate it.

        Raises:
            ConfigError: If configuration cannot be loaded or is invalid
        """
        config = self.load()
        if config:
            self.validate(config)
        return config


__all__ = ["ConfigLoader", "ConfigError", "DEFAULT_CONFIG_FILE"]
