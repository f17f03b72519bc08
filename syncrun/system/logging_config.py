"""
Centralized Logging Configuration for the sync run service.

Provides structured logging with console output and rotating log files.
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Optional

from syncrun.config.settings import settings


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured logging."""

    def format(self, record):
        # Add custom fields to log record
        record.service_name = getattr(record, 'service_name', 'syncrun')
        record.workspace_id = getattr(record, 'workspace_id', None)
        record.sync_id = getattr(record, 'sync_id', None)
        record.task_id = getattr(record, 'task_id', None)

        # Format timestamp
        record.timestamp = datetime.fromtimestamp(record.created).isoformat()

        return super().format(record)


def setup_logging(log_dir: Optional[str] = None) -> None:
    """Setup logging configuration."""

    log_dir = log_dir or settings.app.log_dir
    os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.app.log_level.upper(), logging.INFO))

    # Clear existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)

    console_format = (
        "%(asctime)s - %(name)s - %(levelname)s - "
        "%(message)s"
    )

    if settings.app.debug:
        console_format = (
            "%(asctime)s - %(name)s - %(levelname)s - "
            "[%(filename)s:%(lineno)d] - %(message)s"
        )

    console_handler.setFormatter(logging.Formatter(console_format))
    root_logger.addHandler(console_handler)

    # File handler for general application logs
    app_file_handler = logging.handlers.RotatingFileHandler(
        filename=os.path.join(log_dir, "app.log"),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5
    )
    app_file_handler.setLevel(logging.INFO)
    app_file_handler.setFormatter(StructuredFormatter(
        "%(timestamp)s - %(name)s - %(levelname)s - "
        "%(service_name)s - %(message)s"
    ))
    root_logger.addHandler(app_file_handler)

    # Error file handler for errors and above
    error_file_handler = logging.handlers.RotatingFileHandler(
        filename=os.path.join(log_dir, "errors.log"),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10
    )
    error_file_handler.setLevel(logging.ERROR)
    error_file_handler.setFormatter(StructuredFormatter(
        "%(timestamp)s - %(name)s - %(levelname)s - "
        "%(service_name)s - %(workspace_id)s - %(sync_id)s - %(task_id)s - "
        "%(message)s"
    ))
    root_logger.addHandler(error_file_handler)

    # Set specific logger levels
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.info("Logging configuration initialized")


class LoggerAdapter(logging.LoggerAdapter):
    """Custom logger adapter for adding context to log messages."""

    def __init__(self, logger, extra=None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        # Merge adapter context under any per-call extra
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs


def get_logger(name: str, **context) -> LoggerAdapter:
    """Get a logger with optional context."""
    logger = logging.getLogger(name)
    return LoggerAdapter(logger, context)
