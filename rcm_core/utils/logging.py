"""
Logging Configuration
Loguru sinks for the revenue cycle core.
Source: https://github.com/Delgan/loguru

The db layer logs through loguru directly; services use stdlib loggers
under the `rcm_core` namespace, which `setup_logging` routes into the
same sinks. Every record carries a `tenant_id` extra ("-" when unbound).
"""

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from loguru import logger

if TYPE_CHECKING:
    from rcm_core.core.config import RCMSettings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[tenant_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[tenant_id]} | "
    "{name}:{function}:{line} - {message}"
)


class StdlibBridge(logging.Handler):
    """Forward stdlib log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the caller
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(settings: Optional["RCMSettings"] = None) -> None:
    """
    Configure loguru sinks from settings.

    Console output is colorized text or, with LOG_JSON, serialized records.
    LOG_FILE adds a rotating file sink.
    """
    if settings is None:
        from rcm_core.core.config import get_settings

        settings = get_settings()

    level = settings.LOG_LEVEL.upper()

    logger.remove()
    logger.configure(extra={"tenant_id": "-"})

    if settings.LOG_JSON:
        logger.add(sys.stderr, format="{message}", level=level, serialize=True)
    else:
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    if settings.LOG_FILE:
        Path(settings.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.LOG_FILE,
            rotation="100 MB",
            retention="30 days",
            compression="zip",
            format=FILE_FORMAT,
            level=level,
            serialize=settings.LOG_JSON,
        )

    core_logger = logging.getLogger("rcm_core")
    core_logger.handlers = [StdlibBridge()]
    core_logger.setLevel(level)
    core_logger.propagate = False

    logger.info(f"Logging configured: level={level}, json_logs={settings.LOG_JSON}")


def get_logger(name: str = __name__, tenant_id: Optional[str] = None):  # type: ignore[no-untyped-def]
    """
    Get a loguru logger bound to a module name and, optionally, a tenant.

    Example:
        >>> from rcm_core.utils.logging import get_logger
        >>> logger = get_logger(__name__, tenant_id="tenant-a")
        >>> logger.info("Batch ingested")
    """
    return logger.bind(name=name, tenant_id=tenant_id or "-")
