"""
Structured logging configuration.

Logs are JSON in production (or when LOG_FORMAT=json) and human-readable
console output in development.

Usage:
    from networth.core.logging_config import setup_logging, get_logger

    setup_logging()

    logger = get_logger(__name__)
    logger.info("snapshot_written", user_id="u_123", account_count=4)
"""

import logging
import sys

import structlog
from pythonjsonlogger import jsonlogger

from networth.config import settings


def setup_logging() -> None:
    """
    Configure stdlib logging and structlog for the process.

    Called once from the API lifespan and from the Celery worker init signal.
    """
    use_json = settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production"

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configure_third_party_logging(use_json)


def _configure_third_party_logging(use_json: bool = False) -> None:
    """Route uvicorn and celery logs through a JSON formatter in JSON mode."""
    if use_json:
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error", "celery"]:
            logger = logging.getLogger(logger_name)
            logger.handlers.clear()
            logger.addHandler(handler)

    if settings.ENVIRONMENT == "production":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Structured logger with context support
    """
    return structlog.get_logger(name)


def log_celery_task(
    logger: structlog.stdlib.BoundLogger,
    task_name: str,
    task_id: str,
    status: str,
    duration_ms: float = 0,
    **kwargs,
) -> None:
    """Log Celery task execution."""
    logger.info(
        "celery_task",
        task_name=task_name,
        task_id=task_id,
        status=status,
        duration_ms=duration_ms,
        **kwargs,
    )
