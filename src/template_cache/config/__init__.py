"""
Configuration components for the template cache.
"""
from .configuration import (
    CacheConfiguration,
    ensure_cache_config,
    load_config_file,
    load_configuration_from_env,
    merge_configs,
)
from .loader import load_config

__all__ = [
    "CacheConfiguration",
    "ensure_cache_config",
    "load_config_file",
    "load_configuration_from_env",
    "merge_configs",
    "load_config",
]
