"""
contact_vault.utils - Utility module

Common utilities including string normalization, path resolution and events.
"""

from contact_vault.utils.normalization import (
    name_sort_key,
    normalize_phone,
    normalize_string,
)
from contact_vault.utils.paths import (
    DEFAULT_CONFIG_DIR,
    resolve_config_dir,
    resolve_data_dir,
)

__all__ = [
    "normalize_string",
    "normalize_phone",
    "name_sort_key",
    "resolve_config_dir",
    "resolve_data_dir",
    "DEFAULT_CONFIG_DIR",
]
