"""
Centralized exception definitions for the template cache.
"""

class ErrorContext:
    """Context information for errors."""

    def __init__(self, component: str = None, operation: str = None, **kwargs):
        self.component = component
        self.operation = operation
        self.details = kwargs

class TemplateCacheError(Exception):
    """Base class for all template cache errors."""

    def __init__(self, message: str, context: ErrorContext = None, details: dict = None):
        super().__init__(message)
        self.context = context or ErrorContext()
        self.details = details or {}

    def __str__(self):
        base_str = super().__str__()
        if self.context.component and self.context.operation:
            return f"{base_str} [in {self.context.component}.{self.context.operation}]"
        return base_str

class ConfigurationError(TemplateCacheError):
    """Error in configuration."""
    pass

class DiscoveryError(TemplateCacheError):
    """Error locating layout or content fragments on disk."""
    pass

class BuildCancelledError(DiscoveryError):
    """Build was cancelled before it completed."""
    pass

class CompileError(TemplateCacheError):
    """A fragment group failed to compile."""

    @property
    def key(self) -> str:
        return self.details.get("key")

    @property
    def path(self) -> str:
        return self.details.get("path")

class UnknownTemplateError(TemplateCacheError):
    """Requested key is not present in the cache."""

    def __init__(self, key: str, context: ErrorContext = None):
        super().__init__(f"Unknown template: {key!r}", context=context, details={"key": key})
        self.key = key

class ExecutionError(TemplateCacheError):
    """Error while executing a compiled unit."""

    @property
    def key(self) -> str:
        return self.details.get("key")

    @property
    def entry_point(self) -> str:
        return self.details.get("entry_point")
