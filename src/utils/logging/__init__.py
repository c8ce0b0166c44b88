"""
Logging configuration for dbcompare.

Provides console and JSON formatted logging with contextual fields.

Usage:
    from utils.logging import setup_logging, get_logger

    setup_logging(level="INFO", log_file="/var/log/dbcompare/run.log")

    logger = get_logger(__name__)
    logger.info("Table compared", extra={"table_name": "customers", "matched": 120})
"""

from .config import configure_from_env, get_logger, setup_logging, shutdown_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "configure_from_env",
    "shutdown_logging",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]
