"""Logging setup for the exporter: colored console output, optional log file, run summaries."""

import copy
import logging
import logging.handlers
import time
from typing import Any, Dict, Optional

import colorlog

LOGGER_NAME = 'chatgpt_markdown_exporter'

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}
SENSITIVE_KEYS = ('access_token', 'password', 'secret', 'cookie')


def setup_logging(verbosity: int = 0, log_file: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    """
    Configure the exporter's logger tree.

    Args:
        verbosity: 0=WARNING, 1=INFO, 2+=DEBUG
        log_file: Also write to this rotating log file
        level: Explicit level name; wins over verbosity

    Raises:
        ValueError: If level is not a standard level name
    """
    if level:
        log_level = logging.getLevelName(level.upper())
        if not isinstance(log_level, int):
            raise ValueError(f"Invalid log level '{level}'")
    else:
        log_level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(colorlog.ColoredFormatter(
        '%(log_color)s' + LOG_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS
    ))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding='utf-8'
            )
        except OSError as e:
            logger.warning(f"Cannot open log file {log_file}: {e}")
        else:
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")

    return logger


class ProgressTracker:
    """Counts successes and failures over a batch and logs one summary line on exit."""

    def __init__(self, total_items: int, item_type: str = "items"):
        self.total_items = total_items
        self.item_type = item_type
        self.successful_items = 0
        self.failed_items = 0
        self.start_time: Optional[float] = None
        self.logger = logging.getLogger(LOGGER_NAME)

    def __enter__(self) -> 'ProgressTracker':
        self.start_time = time.time()
        self.logger.info(f"Processing {self.total_items} {self.item_type}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.time() - (self.start_time or time.time())
        if self.failed_items and not self.successful_items:
            log_method = self.logger.error
        elif self.failed_items:
            log_method = self.logger.warning
        else:
            log_method = self.logger.info

        log_method(
            f"{self.item_type.capitalize()}: {self.successful_items}/{self.total_items} succeeded, "
            f"{self.failed_items} failed in {elapsed:.1f}s"
        )

    def increment(self, success: bool = True) -> None:
        if success:
            self.successful_items += 1
        else:
            self.failed_items += 1


def log_section(title: str) -> None:
    """Log a banner line around a section title."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.info("=" * 60)
    logger.info(f"  {title.upper()}")
    logger.info("=" * 60)


def log_config(config: Dict[str, Any]) -> None:
    """Log the effective configuration with secrets redacted."""
    logger = logging.getLogger(LOGGER_NAME)
    log_section("Configuration")
    for section, values in redact_config(config).items():
        if isinstance(values, dict):
            for key, value in values.items():
                logger.info(f"{section}.{key}: {value}")


def redact_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of config with set secret values replaced; unresolved ${VAR} placeholders are kept."""
    redacted = copy.deepcopy(config)
    for values in redacted.values():
        if not isinstance(values, dict):
            continue
        for key, value in values.items():
            if any(marker in key.lower() for marker in SENSITIVE_KEYS) and isinstance(value, str) \
                    and value and '${' not in value:
                values[key] = '***REDACTED***'
    return redacted


__all__ = ['LOGGER_NAME', 'ProgressTracker', 'log_config', 'log_section', 'redact_config', 'setup_logging']
