"""
Configuration file generator for contact-vault.

Provides functionality to generate a default configuration file with
documentation for every available option.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def generate_default_config() -> str:
    """
    Generate default YAML configuration with all options documented.

    Every option is commented out, so the generated file behaves exactly
    like having no file at all until an option is uncommented.

    Example:
        config_yaml = generate_default_config()
        with open("config.yaml", "w") as f:
            f.write(config_yaml)
    """
    return """# contact-vault Configuration
# ===========================
#
# CLI arguments always override these values.
#
# To use this configuration:
#   1. Save as ~/.contact-vault/config.yaml (or custom location)
#   2. Uncomment and modify options as needed


# Storage
# -------

# Directory holding kv.db (key-value store) and records.db (structured store)
# Default: ~/.contact-vault/data
# data_dir: /path/to/data

# Capacity of the key-value store in bytes. Writes beyond it fail and
# fall back to an emergency key.
# Default: 5242880 (5 MiB)
# kv_capacity_bytes: 5242880


# Backup Timers
# -------------
# Intervals accept seconds or a unit suffix: 30s, 5m, 1h, 1d

# Rapid backup of unsaved changes to the structured store
# Default: 30s
# rapid_interval: 30s

# Full snapshot to both stores plus remote sync
# Default: 5m
# full_interval: 5m

# Retention cleanup
# Default: 1h
# cleanup_interval: 1h

# Snapshots older than this many days are deleted by cleanup
# Default: 7
# retention_days: 7


# Remote Sync (best effort)
# -------------------------

# Endpoint receiving full snapshots as JSON (POST). Leave unset to disable.
# remote_sync_url: https://example.com/api/contacts/sync

# Environment variable holding the bearer token
# Default: CONTACT_VAULT_REMOTE_TOKEN
# remote_sync_token_env: CONTACT_VAULT_REMOTE_TOKEN

# Request timeout in seconds
# Default: 10
# remote_timeout: 10


# Recovery
# --------

# Candidate score = record_weight * contacts + recency bonus + reliability bonus
# The recency bonus is (recency_window_hours - age in hours), never below 0.
# scoring:
#   record_weight: 10
#   recency_window_hours: 100
#   reliability:
#     primary: 100
#     backup: 90
#     async_store: 85
#     snapshot: 50

# Replicas diverge when max - min > max(ratio * max, floor)
# divergence:
#   ratio: 0.10
#   floor: 5


# Logging
# -------

# Enable verbose output
# Default: false
# verbose: true

# Directory for log files
# Default: ~/.contact-vault/logs
# log_dir: /path/to/logs

# Number of log files to keep
# Default: 10
# log_retention_count: 10


# Daemon
# ------

# PID file of the running daemon
# Default: ~/.contact-vault/daemon.pid
# daemon_pid_file: /path/to/daemon.pid
"""


def save_config_file(
    config_path: Path, overwrite: bool = False
) -> tuple[bool, str | None]:
    """
    Save default configuration file to specified path.

    Creates parent directories if they don't exist and saves
    the configuration with secure permissions.

    Args:
        config_path: Path where the config file should be saved
        overwrite: If True, overwrite existing file. If False, fail if file exists.

    Returns:
        Tuple of (success, error_message); error_message is None on success
    """
    try:
        config_path = config_path.expanduser().resolve()

        if config_path.exists() and not overwrite:
            return (
                False,
                f"Configuration file already exists: {config_path}\n"
                "Use --force to overwrite.",
            )

        config_path.parent.mkdir(parents=True, mode=0o700, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")
        config_path.chmod(0o600)

        logger.info(f"Created configuration file: {config_path}")
        return (True, None)

    except OSError as e:
        error_msg = f"Failed to create configuration file: {e}"
        logger.error(error_msg)
        return (False, error_msg)
