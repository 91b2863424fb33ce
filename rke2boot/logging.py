"""Logging configuration for the rke2boot package."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import IO, Optional

import typer

from .config import LoggingConfig

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

LEVEL_COLORS = {
    SUCCESS: typer.colors.GREEN,
    logging.WARNING: typer.colors.YELLOW,
    logging.ERROR: typer.colors.RED,
    logging.CRITICAL: typer.colors.BRIGHT_RED,
}

# Marks handlers installed here so repeated setup replaces rather than stacks them
_HANDLER_FLAG = "_rke2boot_handler"


class ColorFormatter(logging.Formatter):
    """Colors whole records by level: green success, yellow warnings, red errors."""

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: str = DATE_FORMAT, use_color: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if self.use_color and color:
            return typer.style(message, fg=color, bold=record.levelno >= logging.ERROR)
        return message


class _BelowLevel(logging.Filter):
    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def _is_tty(stream: IO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def setup_logging(
    debug_mode: bool = False,
    settings: Optional[LoggingConfig] = None,
    stdout: Optional[IO] = None,
    stderr: Optional[IO] = None,
) -> logging.Logger:
    """Configure the ``rke2boot`` logger.

    Records below ERROR go to stdout and ERROR or above to stderr. When
    ``settings.file`` is set, everything is also written to a rotating file.

    Args:
        debug_mode: Force DEBUG level and let library loggers through
        settings: Logging settings (level, optional file)
        stdout: Stream for regular records (default: sys.stdout)
        stderr: Stream for errors (default: sys.stderr)

    Returns:
        The configured package logger
    """
    settings = settings or LoggingConfig()
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    level = logging.DEBUG if debug_mode else getattr(logging, settings.level, logging.INFO)
    logger = logging.getLogger("rke2boot")
    logger.setLevel(level)
    logger.propagate = False

    for handler in logger.handlers[:]:
        if getattr(handler, _HANDLER_FLAG, False):
            logger.removeHandler(handler)
            handler.close()

    out_handler = logging.StreamHandler(stdout)
    out_handler.addFilter(_BelowLevel(logging.ERROR))
    out_handler.setFormatter(ColorFormatter(use_color=_is_tty(stdout)))

    err_handler = logging.StreamHandler(stderr)
    err_handler.setLevel(logging.ERROR)
    err_handler.setFormatter(ColorFormatter(use_color=_is_tty(stderr)))

    handlers = [out_handler, err_handler]

    if settings.file:
        log_file = Path(settings.file).expanduser().absolute()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=log_file,
            maxBytes=settings.max_size_mb * 1024 * 1024,
            backupCount=settings.backup_count
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        setattr(handler, _HANDLER_FLAG, True)
        logger.addHandler(handler)

    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('kubernetes').setLevel(logging.WARNING)

    return logger


def log_success(logger: logging.Logger, msg: str, *args) -> None:
    """Log at SUCCESS level (rendered green on a terminal)."""
    logger.log(SUCCESS, msg, *args)
