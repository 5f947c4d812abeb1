"""
Path utilities for configuration and data directory resolution.

Provides consistent path resolution for the contact-vault configuration
and data directories across all modules.
"""

from __future__ import annotations

import os
from pathlib import Path

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".contact-vault"

# Environment variable for overriding config directory
CONFIG_DIR_ENV_VAR = "CONTACT_VAULT_CONFIG_DIR"

# Sub-directory of the config directory holding the storage files
DATA_SUBDIR = "data"


def resolve_config_dir(config_dir: Path | str | None = None) -> Path:
    """
    Resolve the configuration directory path.

    Priority:
        1. Explicit config_dir parameter (if provided)
        2. CONTACT_VAULT_CONFIG_DIR environment variable
        3. Default directory (~/.contact-vault)

    Args:
        config_dir: Optional explicit configuration directory path.

    Returns:
        Resolved Path to the configuration directory
    """
    if config_dir is not None:
        return Path(config_dir).expanduser().resolve()

    env_dir = os.environ.get(CONFIG_DIR_ENV_VAR)
    if env_dir:
        return Path(env_dir).expanduser().resolve()

    return DEFAULT_CONFIG_DIR.expanduser().resolve()


def resolve_data_dir(
    data_dir: Path | str | None = None, config_dir: Path | str | None = None
) -> Path:
    """
    Resolve the directory holding the key-value and structured store files.

    Args:
        data_dir: Explicit data directory (from configuration), if any
        config_dir: Configuration directory used to derive the default

    Returns:
        Resolved data directory path (not created)
    """
    if data_dir is not None:
        return Path(data_dir).expanduser().resolve()
    return resolve_config_dir(config_dir) / DATA_SUBDIR
