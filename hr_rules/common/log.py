"""Logging setup shared by the scheduler entry points."""

from __future__ import annotations

import logging
from typing import Optional

from hr_rules.config import settings


def configure_logging(level: Optional[str] = None) -> None:
    """Apply ``logging.basicConfig`` using the configured level and format."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=settings.LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # SQL echo is controlled by DB_ECHO, keep the engine logger quiet otherwise
    if not settings.DB_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
