"""
Loguru sink setup for host applications.

Library modules only call ``logger``; nothing here runs on import.
"""

from __future__ import annotations

import sys

from loguru import logger

from exam_session.config import get_settings


def configure_logging(level: str | None = None) -> int:
    """
    Replace loguru's default sink with a compact stderr sink.

    Args:
        level: Loguru level; defaults to Settings.log_level

    Returns:
        The id of the added sink
    """
    level = level or get_settings().log_level
    logger.remove()
    return logger.add(
        sys.stderr,
        level=level.upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {name} | {message}",
    )
