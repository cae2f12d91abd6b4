"""Loguru configuration."""

import sys

from loguru import logger

from modsetup.core.config import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(settings: Settings, console: bool = True) -> None:
    """Configure loguru based on settings."""
    logger.remove()  # Remove default handler

    logs_dir = settings.resolve_path(settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(logs_dir / "modsetup_{time:YYYY-MM-DD}.log"),
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        format=LOG_FORMAT,
    )

    if not console:
        return

    logger.add(
        sys.stderr,
        level="DEBUG" if settings.debug else settings.log_level,
        format=LOG_FORMAT,
        colorize=True,
    )
