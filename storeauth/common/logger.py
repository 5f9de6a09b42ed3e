"""Logging infrastructure for storeauth.

Every engine component logs through a named child of the ``storeauth``
logger. Decision audit entries go to ``storeauth.audit``, which can be
written to its own file so it ships separately from operational logs.
"""

import logging
import logging.handlers
import os
from typing import List, Optional

ROOT_LOGGER = "storeauth"
AUDIT_LOGGER = "storeauth.audit"

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
ISO_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_level(level: str) -> int:
    name = level.upper()
    if name not in _LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(_LEVELS)}")
    return getattr(logging, name)


def _handlers(
    log_file: Optional[str],
    console: bool,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count
            )
        )
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logger(
    name: str = ROOT_LOGGER,
    log_dir: str = "/var/log/storeauth",
    level: str = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    file_logging: bool = False,
    console_logging: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Configure ``name`` once; later calls only adjust the level.

    With ``file_logging`` the logger writes to ``<log_dir>/<name>.log``,
    rotated at ``max_bytes``.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))
    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format or DEFAULT_FORMAT, datefmt=date_format or ISO_DATE_FORMAT)
    log_file = os.path.join(log_dir, f"{name}.log") if file_logging else None
    for handler in _handlers(log_file, console_logging, formatter, max_bytes, backup_count):
        logger.addHandler(handler)
    return logger


def setup_audit_logger(log_dir: str, level: str = "INFO") -> logging.Logger:
    """Send audit entries to ``<log_dir>/audit.log`` only.

    The audit logger stops propagating to the root ``storeauth`` logger,
    so Deny reasons never show up in operational output.
    """
    logger = logging.getLogger(AUDIT_LOGGER)
    logger.setLevel(_parse_level(level))
    logger.propagate = False
    if not logger.handlers:
        formatter = logging.Formatter("%(asctime)s %(message)s", datefmt=ISO_DATE_FORMAT)
        for handler in _handlers(os.path.join(log_dir, "audit.log"), False, formatter, 10 * 1024 * 1024, 5):
            logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Component logger under the ``storeauth`` namespace, e.g. ``get_logger("resolver")``."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
