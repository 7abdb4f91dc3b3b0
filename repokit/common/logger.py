"""Logging for repokit.

Every module logs through ``get_logger("<component>")``, which returns a
child of the ``repokit`` logger. Applications attach handlers once, at
the library root, with ``setup_logger`` or straight from a loaded
configuration with ``configure_logging``.
"""

import logging
import logging.handlers
import os
from typing import List, Optional

from .config import SystemConfig

LOGGER_ROOT = "repokit"

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_level(level: str) -> int:
    name = str(level).upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LOG_LEVELS)}")
    return getattr(logging, name)


def _handlers(
    name: str,
    log_dir: Optional[str],
    console: bool,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, f"{name}.log"),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        )
    if console:
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logger(
    name: str = LOGGER_ROOT,
    log_dir: Optional[str] = "/var/log/repokit",
    level: str = "INFO",
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach the repokit handlers to a logger.

    The file handler writes ``<log_dir>/<name>.log`` with rotation; an
    empty ``log_dir`` disables it. Calling this again on an already
    configured logger only updates its level.

    Args:
        name: Logger name, normally the library root
        log_dir: Directory for the rotating log file
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        console_logging: Also log to stderr
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files to keep

    Returns:
        The configured logger

    Raises:
        ValueError: If the level name is unknown
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in _handlers(name, log_dir, console_logging, max_bytes, backup_count):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_logging(system: SystemConfig, console_logging: bool = True) -> logging.Logger:
    """Configure the library root logger from the ``system`` config section."""
    return setup_logger(
        LOGGER_ROOT,
        log_dir=system.log_dir,
        level=system.log_level,
        console_logging=console_logging,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a component logger below the library root.

    Args:
        name: Component name (e.g., "sync", "generator.registry")

    Returns:
        Logger instance named "repokit.<name>"
    """
    if name == LOGGER_ROOT or name.startswith(f"{LOGGER_ROOT}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")
