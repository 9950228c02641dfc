"""
Configuration loading from files and environment variables.
"""
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List

from ..logging.config import LogConfig
from .configuration import (
    CacheConfiguration,
    ENV_PREFIX,
    ensure_cache_config,
    load_config_file,
    load_configuration_from_env,
    merge_configs,
)

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ["template_cache.yaml", "template_cache.yml", "template_cache.json"]

def load_config(
    config_path: Optional[str] = None,
    env_prefix: str = ENV_PREFIX,
    defaults: Optional[Dict[str, Any]] = None,
    search_paths: Optional[List[str]] = None,
    setup_logging: bool = False
) -> CacheConfiguration:
    """
    Load cache configuration from a file and the environment.

    Precedence, lowest first: ``defaults``, the configuration file, then
    environment variables named ``<env_prefix><FIELD>``.

    Args:
        config_path: Path to the configuration file (optional)
        env_prefix: Prefix for environment variables to consider
        defaults: Default configuration values
        search_paths: Directories searched for a configuration file when
            ``config_path`` is not given
        setup_logging: Configure the ``template_cache`` logger from the
            loaded ``log_level``, ``log_file`` and ``json_logging``

    Returns:
        Validated CacheConfiguration

    Raises:
        ConfigurationError: If the file cannot be read or the merged values
            do not validate
    """
    config = dict(defaults or {})

    if config_path:
        logger.info(f"Loading configuration from specified file: {config_path}")
        config = merge_configs(config, load_config_file(config_path))
    else:
        if search_paths is None:
            search_paths = [os.getcwd(), str(Path(os.getcwd()) / "config")]

        discovered = _find_config_file(search_paths)
        if discovered:
            logger.info(f"Loading configuration from discovered file: {discovered}")
            config = merge_configs(config, load_config_file(discovered))
        else:
            logger.info("No configuration file found, using defaults and environment variables")

    env_config = load_configuration_from_env(env_prefix)
    config = merge_configs(config, env_config)

    cache_config = ensure_cache_config(config)
    if setup_logging:
        LogConfig.from_config(cache_config).configure()
    return cache_config

def _find_config_file(search_paths: List[str]) -> Optional[str]:
    for path in search_paths:
        for filename in CONFIG_FILENAMES:
            full_path = os.path.join(path, filename)
            if os.path.exists(full_path):
                return full_path
    return None
