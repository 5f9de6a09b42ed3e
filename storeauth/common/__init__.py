"""Common utilities for storeauth."""

from .logger import setup_logger, get_logger
from .config import load_config, load_hierarchy_file

__all__ = ["get_logger", "load_config", "load_hierarchy_file", "setup_logger"]
