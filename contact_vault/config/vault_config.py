"""
Typed configuration for a ContactVault.

Built from the validated YAML mapping returned by ConfigLoader. Every field
has a default, so an absent config file yields a working setup:

    data_dir: ~/.contact-vault/data
    kv_capacity_bytes: 5242880
    rapid_interval: 30s
    full_interval: 5m
    cleanup_interval: 1h
    retention_days: 7
    remote_sync_url: null            (remote sync disabled)
    remote_sync_token_env: CONTACT_VAULT_REMOTE_TOKEN
    remote_timeout: 10
    scoring: {record_weight: 10, recency_window_hours: 100,
              reliability: {primary: 100, backup: 90, async_store: 85, snapshot: 50}}
    divergence: {ratio: 0.10, floor: 5}
    log_retention_count: 10
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

from contact_vault.config.loader import ConfigError, ConfigLoader
from contact_vault.daemon import parse_interval
from contact_vault.daemon.scheduler import (
    DEFAULT_CLEANUP_INTERVAL,
    DEFAULT_FULL_INTERVAL,
    DEFAULT_RAPID_INTERVAL,
)
from contact_vault.recovery.engine import ScoringWeights
from contact_vault.recovery.integrity import (
    DEFAULT_DIVERGENCE_FLOOR,
    DEFAULT_DIVERGENCE_RATIO,
)
from contact_vault.remote.client import DEFAULT_TIMEOUT, DEFAULT_TOKEN_ENV
from contact_vault.storage import DEFAULT_CAPACITY_BYTES
from contact_vault.utils.paths import resolve_config_dir, resolve_data_dir

KV_STORE_FILE = "kv.db"
STRUCTURED_STORE_FILE = "records.db"
PID_FILE = "daemon.pid"
LOGS_SUBDIR = "logs"


@dataclass
class VaultConfig:
    """
    Settings for storage, timers, recovery, remote sync and logging.

    Usage:
        config = VaultConfig.load()                       # default location
        config = VaultConfig.from_dict({"retention_days": 3})
        vault = ContactVault.from_config(config)
    """

    config_dir: Path = field(default_factory=resolve_config_dir)
    data_dir: Optional[Path] = None
    kv_capacity_bytes: int = DEFAULT_CAPACITY_BYTES
    rapid_interval: int = DEFAULT_RAPID_INTERVAL
    full_interval: int = DEFAULT_FULL_INTERVAL
    cleanup_interval: int = DEFAULT_CLEANUP_INTERVAL
    retention_days: float = 7
    remote_sync_url: Optional[str] = None
    remote_sync_token_env: str = DEFAULT_TOKEN_ENV
    remote_timeout: float = DEFAULT_TIMEOUT
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    divergence_ratio: float = DEFAULT_DIVERGENCE_RATIO
    divergence_floor: int = DEFAULT_DIVERGENCE_FLOOR
    log_dir: Optional[Path] = None
    log_retention_count: int = 10
    verbose: bool = False
    daemon_pid_file: Optional[Path] = None

    @property
    def resolved_data_dir(self) -> Path:
        return resolve_data_dir(self.data_dir, self.config_dir)

    @property
    def kv_path(self) -> Path:
        return self.resolved_data_dir / KV_STORE_FILE

    @property
    def structured_path(self) -> Path:
        return self.resolved_data_dir / STRUCTURED_STORE_FILE

    @property
    def pid_file(self) -> Path:
        return self.daemon_pid_file or self.config_dir / PID_FILE

    @property
    def logs_dir(self) -> Path:
        return self.log_dir or self.config_dir / LOGS_SUBDIR

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], config_dir: Optional[Path] = None
    ) -> VaultConfig:
        """
        Build a configuration from a (validated) mapping.

        Raises:
            ConfigError: If the mapping is invalid
        """
        ConfigLoader(config_dir).validate(data)

        def path_or_none(key: str) -> Optional[Path]:
            value = data.get(key)
            return Path(value).expanduser() if value else None

        scoring = data.get("scoring") or {}
        divergence = data.get("divergence") or {}
        try:
            weights = ScoringWeights.from_dict(scoring)
        except ValueError as e:
            raise ConfigError(f"Invalid scoring configuration: {e}") from e

        return cls(
            config_dir=resolve_config_dir(config_dir),
            data_dir=path_or_none("data_dir"),
            kv_capacity_bytes=data.get("kv_capacity_bytes", DEFAULT_CAPACITY_BYTES),
            rapid_interval=parse_interval(data.get("rapid_interval", DEFAULT_RAPID_INTERVAL)),
            full_interval=parse_interval(data.get("full_interval", DEFAULT_FULL_INTERVAL)),
            cleanup_interval=parse_interval(
                data.get("cleanup_interval", DEFAULT_CLEANUP_INTERVAL)
            ),
            retention_days=data.get("retention_days", 7),
            remote_sync_url=data.get("remote_sync_url") or None,
            remote_sync_token_env=data.get("remote_sync_token_env", DEFAULT_TOKEN_ENV),
            remote_timeout=float(data.get("remote_timeout", DEFAULT_TIMEOUT)),
            scoring=weights,
            divergence_ratio=float(divergence.get("ratio", DEFAULT_DIVERGENCE_RATIO)),
            divergence_floor=divergence.get("floor", DEFAULT_DIVERGENCE_FLOOR),
            log_dir=path_or_none("log_dir"),
            log_retention_count=data.get("log_retention_count", 10),
            verbose=data.get("verbose", False),
            daemon_pid_file=path_or_none("daemon_pid_file"),
        )

    @classmethod
    def load(
        cls, config_dir: Optional[Path] = None, config_file: Optional[Path] = None
    ) -> VaultConfig:
        """
        Load from ``config_file`` or ``<config_dir>/config.yaml``.

        Raises:
            ConfigError: If the file cannot be parsed or is invalid
        """
        loader = ConfigLoader(config_dir)
        data = loader.load_from_file(config_file) if config_file else loader.load()
        return cls.from_dict(data, config_dir=loader.config_dir)


__all__ = ["VaultConfig", "KV_STORE_FILE", "STRUCTURED_STORE_FILE"]
