"""
Centralized logging configuration for patch_intel.

Console output is colour-coded by level when attached to a TTY; an optional
log file always receives DEBUG records with timestamps.
"""

import logging
import sys
from pathlib import Path
from typing import Optional


LOGGER_NAME = "patch_intel"

CONSOLE_FORMAT = "%(levelname_colored)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logger: Optional[logging.Logger] = None


def _resolve_level(level: str, verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return getattr(logging, level.upper())


def _console_handler(level: int) -> logging.Handler:
    # Scan results go to stdout, so diagnostics stay on stderr
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, use_colors=sys.stderr.isatty()))
    return handler


def _file_handler(log_file: str) -> logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    verbose: bool = False,
    quiet: bool = False,
    propagate: bool = False,
) -> logging.Logger:
    """
    (Re)configure the ``patch_intel`` logger.

    Args:
        level: Console level name when neither verbose nor quiet is set
        log_file: Also write every record to this file
        verbose: DEBUG on the console
        quiet: No console handler; WARNING and above only
        propagate: Pass records up to the root logger (pytest's caplog needs this)

    Returns:
        The configured logger
    """
    global _logger

    effective_level = _resolve_level(level, verbose, quiet)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(effective_level)
    logger.handlers.clear()

    if not quiet:
        logger.addHandler(_console_handler(effective_level))
    if log_file:
        logger.addHandler(_file_handler(log_file))

    logger.propagate = propagate
    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Return the package logger, configuring defaults on first use."""
    global _logger
    if _logger is None:
        _logger = setup_logging()
    return _logger


class ColoredFormatter(logging.Formatter):
    """
    Prefixes each record with a coloured level marker.

    Exposes ``%(levelname_colored)s`` to the format string; without colours
    it is the plain level name.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    SYMBOLS = {
        "DEBUG": "·",
        "INFO": "✓",
        "WARNING": "⚠",
        "ERROR": "✗",
        "CRITICAL": "🚨",
    }

    def __init__(self, fmt: str, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        name = record.levelname
        if self.use_colors:
            marker = f"{self.SYMBOLS.get(name, '')} {name}"
            record.levelname_colored = f"{self.COLORS.get(name, '')}{marker}{self.RESET}"
        else:
            record.levelname_colored = name
        return super().format(record)
