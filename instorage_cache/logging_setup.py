"""
Logging configuration for processes embedding the cache.

Library modules only create module-level loggers; handlers are installed by
the application (or the bundled CLI) through setup_logging().
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import CacheSettings, LogFormat


def setup_logging(settings: CacheSettings, verbose: bool = False) -> None:
    """Configure logging based on settings.

    Args:
        settings: Cache settings
        verbose: Force DEBUG level
    """
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.INFO)

    if settings.log_format == LogFormat.JSON:
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
