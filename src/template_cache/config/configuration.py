"""
Configuration management for the template cache.
"""
import logging
import os
import yaml
import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ValidationError, field_validator
from ..error.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "TEMPLATE_CACHE_"

COMPILE_POLICIES = {"strict", "permissive"}

class CacheConfiguration(BaseModel):
    """Configuration for building and serving the template cache."""

    template_dir: Path = Field(default=Path("templates"), description="Root template directory")
    layouts_dir: str = Field(default="layouts", description="Shared layout directory under the root")
    content_dirs: List[str] = Field(
        default_factory=lambda: ["includes", "mail"],
        description="Content directories under the root, in traversal order"
    )
    suffix: str = Field(default=".tmpl", description="Template fragment file suffix")
    namespace_keys: bool = Field(default=False, description="Prefix keys with their content directory")
    compile_policy: str = Field(default="strict", description="strict aborts a build on compile errors, permissive skips the fragment")
    autoescape: bool = Field(default=True, description="HTML-escape substituted values")
    strict_undefined: bool = Field(default=True, description="Treat undefined template variables as errors")
    trim_blocks: bool = False
    lstrip_blocks: bool = False
    encoding: str = Field(default="utf-8", description="Encoding for fragment sources and rendered output")
    log_level: str = "INFO"
    log_file: Optional[str] = Field(default=None, description="Rotating log file, console only when unset")
    json_logging: bool = Field(default=False, description="Emit JSON log records")

    @field_validator("template_dir", mode="before")
    @classmethod
    def convert_path(cls, value: Any) -> Path:
        """Convert path strings to resolved Path objects."""
        if isinstance(value, (str, Path)):
            return Path(value).expanduser().resolve()
        raise ValueError(f"Invalid path value: {value}")

    @field_validator("content_dirs", mode="before")
    @classmethod
    def split_content_dirs(cls, value: Any) -> List[str]:
        """Accept a comma separated string as well as a list."""
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        if not value:
            raise ValueError("content_dirs must name at least one directory")
        return value

    @field_validator("suffix")
    @classmethod
    def validate_suffix(cls, value: str) -> str:
        if not value.startswith(".") or len(value) < 2:
            raise ValueError(f"Invalid suffix '{value}'. Must start with '.'")
        return value

    @field_validator("compile_policy")
    @classmethod
    def validate_compile_policy(cls, value: str) -> str:
        """Validate compile failure policy."""
        if value.lower() not in COMPILE_POLICIES:
            raise ValueError(f"Invalid compile policy '{value}'. Must be one of: {COMPILE_POLICIES}")
        return value.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        value_upper = value.upper()
        if value_upper not in valid_levels:
            raise ValueError(f"Invalid log level '{value}'. Must be one of: {valid_levels}")
        return value_upper

    @property
    def layouts_path(self) -> Path:
        return self.template_dir / self.layouts_dir

    def content_paths(self) -> List[Path]:
        return [self.template_dir / name for name in self.content_dirs]

    class Config:
        """Pydantic configuration."""
        extra = "forbid"
        validate_assignment = True


def ensure_cache_config(config: Optional[Any] = None) -> CacheConfiguration:
    """Ensure a valid cache configuration."""
    if isinstance(config, CacheConfiguration):
        return config

    if config is None:
        config = {}

    try:
        return CacheConfiguration(**config)
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid configuration: {str(e)}")


def load_config_file(file_path: str) -> Dict[str, Any]:
    """
    Load configuration from a file (YAML or JSON).

    Args:
        file_path: Path to the configuration file

    Returns:
        Dictionary with configuration

    Raises:
        ConfigurationError: If the file is not found or cannot be parsed
    """
    path = Path(file_path).expanduser()

    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {file_path}")

    try:
        content = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ConfigurationError(f"Error reading config file {file_path}: {str(e)}")

    try:
        if path.suffix in (".yaml", ".yml"):
            loaded_config = yaml.safe_load(content) or {}
        elif path.suffix == ".json":
            loaded_config = json.loads(content) or {}
        else:
            raise ConfigurationError(f"Unsupported config file format: {file_path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML format in {file_path}: {str(e)}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON format in {file_path}: {str(e)}")

    if not isinstance(loaded_config, dict):
        raise ConfigurationError(f"Configuration in {file_path} must be a mapping")

    # Allow the settings to sit under a top-level "template_cache" section
    if "template_cache" in loaded_config and isinstance(loaded_config["template_cache"], dict):
        loaded_config = loaded_config["template_cache"]

    logger.debug(f"Loaded configuration from {file_path}")
    return loaded_config


def load_configuration_from_env(env_prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """Collect configuration values from prefixed environment variables."""
    values = {}
    for name in CacheConfiguration.model_fields:
        env_name = f"{env_prefix}{name.upper()}"
        if env_name in os.environ:
            values[name] = os.environ[env_name]
    return values


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge two configuration dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if isinstance(value, dict) and key in result and isinstance(result[key], dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value
    return result
