"""
Logging configuration for the order service.

Routes log through module-level ``logging.getLogger(__name__)`` loggers;
this module wires them to a rich console handler once at startup.
"""

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger with a RichHandler.

    Args:
        level: Log level name. Defaults to the LOG_LEVEL environment
               variable, then INFO.

    Returns:
        The root logger.
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_path=log_level <= logging.DEBUG,
    )

    logging.basicConfig(level=log_level, format="%(message)s", datefmt="[%X]", handlers=[handler])

    root = logging.getLogger()
    root.setLevel(log_level)
    return root
