"""
Logging configuration.

All modules log through loguru's global ``logger``; this only decides
where records go. Call once per process (API lifespan, CLI entry point).
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from config import Settings

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def configure_logging(settings: Settings, level: str | None = None, to_file: bool = True) -> None:
    """
    Replace loguru's default sink with the configured ones.

    Args:
        settings: Application settings (log_level, log_file)
        level: Console level override (CLI uses WARNING unless --verbose)
        to_file: Also write a rotating log file when log_file is set
    """
    logger.remove()
    logger.add(sys.stderr, level=(level or settings.log_level).upper(), format=CONSOLE_FORMAT)

    if to_file and settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            level=settings.log_level.upper(),
            format=FILE_FORMAT,
            rotation="10 MB",
            retention=5,
        )
