"""
Error handling utilities and exceptions.
"""
from .exceptions import (
    ErrorContext,
    TemplateCacheError,
    ConfigurationError,
    DiscoveryError,
    BuildCancelledError,
    CompileError,
    UnknownTemplateError,
    ExecutionError,
)

__all__ = [
    'ErrorContext',
    'TemplateCacheError',
    'ConfigurationError',
    'DiscoveryError',
    'BuildCancelledError',
    'CompileError',
    'UnknownTemplateError',
    'ExecutionError',
]
