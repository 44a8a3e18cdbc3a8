# backend/config/logging.py
import functools
import json
import logging
import logging.config
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .settings import Settings, get_settings


# Custom formatter with colors for console output
class ColoredFormatter(logging.Formatter):
    """Custom formatter with color coding for different log levels."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        original = record.levelname
        record.levelname = f"{color}{record.levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = original

# JSON formatter for structured logging
class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging in production."""

    EXTRA_FIELDS = ('document_type', 'document_id', 'event', 'operation', 'duration', 'row_count')

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def build_logging_config(settings: Settings) -> Dict[str, Any]:
    """Build the dictConfig payload for the given settings."""
    console_formatter = 'json' if settings.LOG_JSON else ('colored' if settings.DEBUG else 'standard')
    root_handlers = ['console']

    config: Dict[str, Any] = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': settings.LOG_FORMAT,
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'detailed': {
                'format': '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(funcName)s(): %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'colored': {
                '()': ColoredFormatter,
                'format': settings.LOG_FORMAT,
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'json': {
                '()': JSONFormatter
            }
        },
        'handlers': {
            'console': {
                'level': 'DEBUG' if settings.DEBUG else settings.LOG_LEVEL,
                'class': 'logging.StreamHandler',
                'formatter': console_formatter,
                'stream': 'ext://sys.stdout'
            }
        },
        'loggers': {
            '': {  # Root logger
                'handlers': root_handlers,
                'level': settings.LOG_LEVEL,
            },
            'services': {
                'level': settings.LOG_LEVEL,
            },
            'repositories': {
                'level': 'DEBUG' if settings.DEBUG else 'WARNING',
            },
            'sqlalchemy.engine': {
                'level': 'INFO' if settings.DATABASE_ECHO else 'WARNING',
            },
            'workflow': {
                'level': 'DEBUG' if settings.DEBUG else settings.LOG_LEVEL,
            },
            'performance': {
                'level': 'DEBUG' if settings.DEBUG else 'WARNING',
            }
        }
    }

    if settings.LOG_FILE:
        log_dir = os.path.dirname(settings.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        config['handlers']['file'] = {
            'level': 'INFO',
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'json' if settings.LOG_JSON else 'detailed',
            'filename': settings.LOG_FILE,
            'maxBytes': 10485760,  # 10MB
            'backupCount': 5,
            'encoding': 'utf8'
        }
        root_handlers.append('file')

    return config

def setup_logging(settings: Optional[Settings] = None):
    """Setup logging configuration."""
    settings = settings or get_settings()
    logging.config.dictConfig(build_logging_config(settings))

    if not settings.DEBUG:
        # Reduce noise in production
        logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)

def log_document_event(event: str, document_type: str, document_id: Any = None, details: str = None):
    """Log a workflow event on a document."""
    logger = get_logger("workflow")
    extra = {'event': event, 'document_type': document_type, 'document_id': document_id}

    message = f"{event}: {document_type}"
    if document_id is not None:
        message += f" #{document_id}"
    if details:
        message += f" - {details}"

    logger.info(message, extra=extra)

def log_repository_operation(operation: str, document_type: str, duration: float = None, row_count: int = None):
    """Log repository operations."""
    logger = get_logger("repositories")
    extra = {'operation': operation, 'document_type': document_type}
    if duration:
        extra['duration'] = duration
    if row_count:
        extra['row_count'] = row_count

    message = f"Repository Operation: {operation} - Document: {document_type}"
    if row_count:
        message += f" - Rows: {row_count}"

    logger.debug(message, extra=extra)

# Performance logging decorator
def log_performance(logger_name: str = "performance"):
    """Decorator to log function performance."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(logger_name)
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                duration = time.perf_counter() - start_time
                logger.info(f"{func.__name__} completed in {duration:.3f}s", extra={'duration': duration})
                return result
            except Exception as e:
                duration = time.perf_counter() - start_time
                logger.error(f"{func.__name__} failed after {duration:.3f}s: {str(e)}", extra={'duration': duration})
                raise
        return wrapper
    return decorator

# Export commonly used functions
__all__ = [
    "ColoredFormatter",
    "JSONFormatter",
    "build_logging_config",
    "setup_logging",
    "get_logger",
    "log_document_event",
    "log_repository_operation",
    "log_performance"
]
