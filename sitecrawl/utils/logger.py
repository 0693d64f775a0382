"""
Logging utilities for the site crawler.
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        # Context attached through CrawlerLogAdapter
        for key in ('worker_id', 'url', 'event_type'):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, ensure_ascii=False)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Logger adapter that adds crawler-specific context."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Add extra context to log messages."""
        extra = dict(self.extra)
        extra.update(kwargs.get('extra', {}))
        kwargs['extra'] = extra

        worker_id = extra.get('worker_id')
        if worker_id is not None:
            msg = f"[{worker_id}] {msg}"
        return msg, kwargs

    def log_url_event(self, level: int, url: str, message: str, **kwargs):
        """Log URL-specific events."""
        extra = kwargs.get('extra', {})
        extra['url'] = url
        extra['event_type'] = 'url_event'
        kwargs['extra'] = extra
        self.log(level, message, **kwargs)


class PerformanceFilter(logging.Filter):
    """Filter to suppress noisy third-party logs."""

    def __init__(self, suppress_modules: Optional[list] = None):
        super().__init__()
        self.suppress_modules = suppress_modules or [
            'aiohttp.access',
            'urllib3.connectionpool',
        ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter out noisy log records."""
        return not any(record.name.startswith(module) for module in self.suppress_modules)


def setup_logging(config: Dict[str, Any],
                  enable_json: bool = False,
                  quiet: bool = False) -> logging.Logger:
    """
    Setup logging for the crawler.

    Args:
        config: Logging configuration dictionary (level, file, format)
        enable_json: Enable JSON formatted logging
        quiet: Only warnings and errors reach the console

    Returns:
        Configured root logger
    """
    log_file = Path(config.get('file') or 'logs/crawler.log')
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.get('level', 'INFO').upper()))
    root_logger.handlers.clear()

    if enable_json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.WARNING if quiet else logging.INFO)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(PerformanceFilter())
    root_logger.addHandler(console_handler)

    # File handler with rotation
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=50 * 1024 * 1024,  # 50MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(PerformanceFilter())
    root_logger.addHandler(file_handler)

    error_log_file = log_file.parent / 'errors.log'
    error_handler = logging.handlers.RotatingFileHandler(
        error_log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=3,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    root_logger.addHandler(error_handler)

    third_party_loggers = {
        'aiohttp': logging.WARNING,
        'asyncio': logging.WARNING,
        'playwright': logging.WARNING,
        'redis': logging.WARNING,
    }

    for logger_name, level in third_party_loggers.items():
        logging.getLogger(logger_name).setLevel(level)

    root_logger.debug(f"Log file: {log_file}")
    root_logger.debug(f"Error log file: {error_log_file}")

    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """
    Get a crawler-specific logger with additional context.

    Args:
        name: Logger name
        **extra_context: Additional context fields to include in all log messages

    Returns:
        CrawlerLogAdapter instance
    """
    logger = logging.getLogger(name)
    return CrawlerLogAdapter(logger, extra_context)


def log_system_info():
    """Log system and environment information."""
    import platform
    import psutil

    logger = logging.getLogger(__name__)

    logger.debug("=== SYSTEM INFORMATION ===")
    logger.debug(f"Platform: {platform.platform()}")
    logger.debug(f"Python version: {sys.version}")
    logger.debug(f"CPU cores: {psutil.cpu_count()}")
    logger.debug(f"Memory: {psutil.virtual_memory().total / 1024**3:.1f} GB")
