from .config import LogConfig, JsonFormatter

__all__ = ['LogConfig', 'JsonFormatter']
