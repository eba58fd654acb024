"""
Logging configuration for dhcp6pd.

Provides console logging plus optional rotating file logs, so a
long-running renewal loop leaves a trail of every exchange.
"""

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler

LOGGER_NAME = "dhcp6pd"


class StructuredFormatter(logging.Formatter):
    """Structured formatter for easier log parsing."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structured data."""
        if not hasattr(record, 'module_name'):
            record.module_name = record.module
        if not hasattr(record, 'function_name'):
            record.function_name = record.funcName

        return super().format(record)


def default_log_path(log_dir: str | None = None) -> Path:
    if log_dir:
        return Path(log_dir) / "dhcp6pd.log"
    return Path.home() / ".dhcp6pd" / "logs" / "dhcp6pd.log"


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    log_dir: str | None = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
    enable_console: bool = True,
    enable_file: bool = False,
) -> logging.Logger:
    """
    Set up logging for dhcp6pd.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Custom log file path (overrides log_dir)
        log_dir: Directory for log files (defaults to ~/.dhcp6pd/logs)
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup log files to keep
        enable_console: Enable console logging
        enable_file: Enable file logging

    Returns:
        Configured package logger
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)

    # Clear existing handlers
    logger.handlers.clear()

    console_fmt = logging.Formatter(
        fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_fmt = StructuredFormatter(
        fmt='%(asctime)s | %(levelname)-8s | %(name)-24s | %(module_name)-10s | '
            '%(function_name)-18s | %(lineno)-4d | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if enable_console:
        # stdout is reserved for command output (e.g. JSON)
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(console_fmt)
        logger.addHandler(console_handler)

    if enable_file:
        log_path = Path(log_file) if log_file else default_log_path(log_dir)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_fmt)
        logger.addHandler(file_handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def configure_logging(
    debug: bool = False,
    log_to_file: bool = False,
    level: str = "INFO",
    log_file: str | None = None,
) -> None:
    """
    Quick logging configuration.

    Args:
        debug: Enable debug logging (overrides level)
        log_to_file: Enable file logging
        level: Level to use when debug is off
        log_file: Log file path (defaults to ~/.dhcp6pd/logs/dhcp6pd.log)
    """
    setup_logging(
        level="DEBUG" if debug else level,
        log_file=log_file,
        enable_console=True,
        enable_file=log_to_file,
    )
