"""
Logging Configuration
Structured logging with loguru; stdlib loggers used by the service layer
are routed into the same sinks.
Source: https://github.com/Delgan/loguru
"""

import inspect
import logging
import sys
from pathlib import Path

from loguru import logger

# Third-party loggers whose records are forwarded into loguru
_FORWARDED_LOGGERS = ("sqlalchemy.engine", "uvicorn", "uvicorn.error", "uvicorn.access")


class InterceptHandler(logging.Handler):
    """
    Forward stdlib ``logging`` records to loguru.

    Source: https://loguru.readthedocs.io/en/stable/overview.html#entirely-compatible-with-standard-logging
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller that originated the record
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).bind(name=record.name).log(
            level, record.getMessage()
        )


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False,
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        json_logs: Whether to output JSON format (useful for production)
    """

    # Remove default logger
    logger.remove()
    logger.configure(extra={"name": "app"})

    if json_logs:
        logger.add(
            sys.stderr,
            format="{message}",
            level=level,
            serialize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[name]}</cyan> - <level>{message}</level>",
            level=level,
            colorize=True,
        )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_file,
            rotation="100 MB",
            retention="30 days",
            compression="zip",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]} - {message}",
            level=level,
            serialize=json_logs,
        )

    # Route the service layer (logging.getLogger(__name__)) into loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _FORWARDED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    logger.bind(name=__name__).info(
        f"Logging configured: level={level}, json_logs={json_logs}"
    )


def get_logger(name: str = __name__):  # type: ignore[no-untyped-def]
    """
    Get a logger instance.

    Example:
        >>> from src.utils.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Engine started")
    """
    return logger.bind(name=name)
