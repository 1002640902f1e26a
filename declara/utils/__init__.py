"""
Declara Utils Package
=====================

Logging and naming helpers.
"""

from __future__ import annotations

from declara.utils.helpers import pascal_case, snake_case, truncate
from declara.utils.logger import LogLevel, Logger, configure_logging, get_logger

__all__ = [
    "LogLevel",
    "Logger",
    "configure_logging",
    "get_logger",
    "pascal_case",
    "snake_case",
    "truncate",
]
