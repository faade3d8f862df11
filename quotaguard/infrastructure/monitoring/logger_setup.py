"""Logging bootstrap for the quotaguard CLI.

Log records go to stderr so tables printed on stdout stay machine-readable.
An optional rotating file handler keeps retry/backoff history across runs.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE_MAX_BYTES = 1_000_000
LOG_FILE_BACKUPS = 3

# Third-party loggers that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(
    log_level: int = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = None,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Configures the root logger.

    Args:
        log_level: Minimum level for quotaguard records.
        log_format: Format string shared by every handler.
        log_file: Optional path for a size-rotated log file.
        quiet_loggers: Loggers raised to at least WARNING.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)
    handlers = [logging.StreamHandler(sys.stderr)]

    if log_file:
        try:
            handlers.append(RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding='utf-8',
            ))
        except OSError as e:
            # Keep stderr logging even when the file is unwritable
            print(f"quotaguard: cannot open log file {log_file}: {e}", file=sys.stderr)

    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logging.debug(
        "Logging configured. Level=%s file=%s", logging.getLevelName(log_level), log_file or "-"
    )


def level_from_name(name: str) -> int:
    """Maps a level name like 'debug' to its logging constant, defaulting to INFO."""
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else DEFAULT_LOG_LEVEL
