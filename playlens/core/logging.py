"""
Logging configuration

Library modules log through the standard ``logging`` module; hosts call
``setup_logging()`` once to route every record into loguru sinks.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from playlens.core.config import Settings, settings as default_settings


class InterceptHandler(logging.Handler):
    """
    Intercept standard logging and redirect to loguru
    """

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(settings: Optional[Settings] = None, sink=sys.stdout):
    """
    Setup logging configuration
    """
    settings = settings or default_settings

    # Remove default logger
    logger.remove()

    logger.add(
        sink,
        colorize=sink is sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.LOG_LEVEL,
    )

    # Add file logger for production
    if settings.ENVIRONMENT == "production":
        log_path = Path("logs")
        log_path.mkdir(exist_ok=True)

        logger.add(
            log_path / "playlens_{time:YYYY-MM-DD}.log",
            rotation="100 MB",
            retention="14 days",
            enqueue=True,
            serialize=False,
            level=settings.LOG_LEVEL,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )

    # Intercept everything at the root logger
    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(settings.LOG_LEVEL)

    # Let the package loggers propagate to the intercepted root
    for name in list(logging.root.manager.loggerDict.keys()):
        if name.startswith("playlens"):
            logging.getLogger(name).handlers = []
            logging.getLogger(name).propagate = True

    logger.info(f"Logging configured - Level: {settings.LOG_LEVEL}, Environment: {settings.ENVIRONMENT}")
