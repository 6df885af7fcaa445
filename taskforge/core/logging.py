"""Loguru configuration."""

import sys
from pathlib import Path

from loguru import logger

from taskforge.core.config import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(settings: Settings, log_to_file: bool = True) -> None:
    """Configure loguru based on settings.

    Replaces the default handler with a console sink and, unless disabled,
    a daily-rotating file sink under ``settings.taskforge_log_dir``.
    """
    logger.remove()

    console_level = "DEBUG" if settings.taskforge_debug else settings.taskforge_log_level
    logger.add(
        sys.stderr,
        level=console_level,
        format=LOG_FORMAT,
        colorize=True,
    )

    if log_to_file:
        logs_dir = Path(settings.taskforge_log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            str(logs_dir / "taskforge_{time:YYYY-MM-DD}.log"),
            rotation="1 day",
            retention="7 days",
            level=settings.taskforge_log_level,
            format=LOG_FORMAT,
        )
