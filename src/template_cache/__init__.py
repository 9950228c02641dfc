"""
Template Cache: compiles content fragments with shared layouts and serves them by name.
"""
import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .config import CacheConfiguration, load_config
from .error import (
    TemplateCacheError,
    ConfigurationError,
    DiscoveryError,
    BuildCancelledError,
    CompileError,
    UnknownTemplateError,
    ExecutionError,
)
from .templates import TemplateCache, CacheSnapshot, build_templates

__all__ = [
    "TemplateCache",
    "CacheSnapshot",
    "build_templates",
    "CacheConfiguration",
    "load_config",
    "TemplateCacheError",
    "ConfigurationError",
    "DiscoveryError",
    "BuildCancelledError",
    "CompileError",
    "UnknownTemplateError",
    "ExecutionError",
    "__version__",
]
