import logging
import logging.handlers
from typing import Any, List, Optional
from pathlib import Path
import json
from datetime import datetime, timezone

# Record attributes copied into JSON output when a caller passes them via ``extra``
CONTEXT_FIELDS = ('template_key', 'entry_point', 'template_dir', 'unit_count')

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

class LogConfig:
    """Logging setup for the ``template_cache`` logger hierarchy."""

    def __init__(
        self,
        log_level: str = 'INFO',
        log_file: Optional[str] = None,
        json_logging: bool = False,
        log_format: str = DEFAULT_FORMAT,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        logger_name: Optional[str] = 'template_cache'
    ):
        """
        Args:
            log_level: Level name applied to the logger and its handlers
            log_file: Optional path of a rotating log file
            json_logging: Emit one JSON object per record
            log_format: Format string for plain text output
            max_bytes: Size at which the log file rotates
            backup_count: Rotated files to keep
            logger_name: Logger to configure; None configures the root logger
        """
        self.level = logging.getLevelName(log_level.upper())
        if not isinstance(self.level, int):
            raise ValueError(f"Unknown log level: {log_level}")
        self.log_file = log_file
        self.json_logging = json_logging
        self.log_format = log_format
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self.logger_name = logger_name

    @classmethod
    def from_config(cls, config: Any, **overrides) -> 'LogConfig':
        """Create a LogConfig from the logging fields of a CacheConfiguration."""
        values = {
            'log_level': config.log_level,
            'log_file': config.log_file,
            'json_logging': config.json_logging,
        }
        values.update(overrides)
        return cls(**values)

    def _handlers(self) -> List[logging.Handler]:
        handlers: List[logging.Handler] = [logging.StreamHandler()]
        if self.log_file:
            Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.handlers.RotatingFileHandler(
                self.log_file,
                maxBytes=self.max_bytes,
                backupCount=self.backup_count
            ))
        return handlers

    def configure(self) -> logging.Logger:
        """Replace the target logger's handlers and return the logger."""
        formatter = JsonFormatter() if self.json_logging else logging.Formatter(self.log_format)
        target = logging.getLogger(self.logger_name)
        target.setLevel(self.level)

        for handler in target.handlers[:]:
            target.removeHandler(handler)
            handler.close()

        for handler in self._handlers():
            handler.setFormatter(formatter)
            handler.setLevel(self.level)
            target.addHandler(handler)

        return target

class JsonFormatter(logging.Formatter):
    """One JSON object per record, with template context fields when present."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'location': f"{record.module}:{record.funcName}:{record.lineno}",
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        log_data.update(
            (name, getattr(record, name)) for name in CONTEXT_FIELDS if hasattr(record, name)
        )
        return json.dumps(log_data, default=str)
