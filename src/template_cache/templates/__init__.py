"""
Template cache: layout-aware compiled units served by key.
"""

from .cache import TemplateCache, CacheSnapshot
from .builder import BuildResult, build_templates
from .engine import CompiledUnit, compile_unit
from .helpers import BUILTIN_HELPERS, merge_helpers

__all__ = [
    'TemplateCache',
    'CacheSnapshot',
    'BuildResult',
    'build_templates',
    'CompiledUnit',
    'compile_unit',
    'BUILTIN_HELPERS',
    'merge_helpers',
]
