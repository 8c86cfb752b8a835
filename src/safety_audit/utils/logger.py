"""
Logging configuration with rotation support.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _build_handlers(
    log_file: Optional[str],
    max_size_mb: int,
    backup_count: int
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding='utf-8'
        ))

    return handlers


def setup_logger(
    name: Optional[str] = None,
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 50,
    backup_count: int = 7,
    log_format: str = DEFAULT_FORMAT
) -> logging.Logger:
    """
    Attach console and optional rotating file handlers to a logger.

    Components log through ``logging.getLogger(ClassName)``, so the default
    (``name=None``) configures the root logger and catches all of them.
    Existing handlers on that logger are replaced.

    Args:
        name: Logger name (None for the root logger)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (None for console only)
        max_size_mb: Maximum log file size before rotation
        backup_count: Number of rotated files to keep
        log_format: Log message format

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logger.handlers.clear()

    formatter = logging.Formatter(log_format)
    for handler in _build_handlers(log_file, max_size_mb, backup_count):
        handler.setFormatter(formatter)
        handler.setLevel(numeric_level)
        logger.addHandler(handler)

    logger.setLevel(numeric_level)
    return logger


def setup_logging_from_config(logging_config, name: Optional[str] = None) -> logging.Logger:
    """Configure logging from a LoggingConfig section."""
    return setup_logger(
        name=name,
        level=logging_config.level,
        log_file=logging_config.file,
        max_size_mb=logging_config.max_size_mb,
        backup_count=logging_config.backup_count,
        log_format=logging_config.format
    )
