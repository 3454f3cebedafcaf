"""
Structured logging setup.

Modules log through ``structlog.get_logger(__name__)`` with key/value events.
``configure_logging`` wires structlog onto the standard library so uvicorn,
SQLAlchemy and application events share one handler and one format: a console
renderer during development and JSON lines in production.
"""

import logging
from typing import Optional

import structlog

from src.config import settings


def configure_logging(log_level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        log_level: Override for ``settings.log_level``
        json_logs: Override for ``settings.log_json`` (JSON vs console output)
    """
    level_name = (log_level or settings.log_level).upper()
    render_json = settings.log_json if json_logs is None else json_logs

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if render_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name, logging.INFO),
    )
