"""
contact_vault.config - Configuration management module

Contains configuration loading, validation, and default settings.
"""

from contact_vault.config.generator import generate_default_config, save_config_file
from contact_vault.config.loader import DEFAULT_CONFIG_FILE, ConfigError, ConfigLoader
from contact_vault.config.vault_config import VaultConfig

__all__ = [
    "ConfigError",
    "ConfigLoader",
    "DEFAULT_CONFIG_FILE",
    "VaultConfig",
    "generate_default_config",
    "save_config_file",
]
