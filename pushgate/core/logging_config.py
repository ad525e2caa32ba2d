# pushgate/core/logging_config.py
import logging
import sys
from typing import Optional

import structlog


def setup_logging(level: Optional[str] = None, json: Optional[bool] = None) -> None:
    """
    Configure structlog + standard logging.
    JSON to stdout by default; console renderer for local development.
    """
    from pushgate.core.settings import get_settings

    s = get_settings()
    level = (level or s.log_level).upper()
    json = s.log_json if json is None else json

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "pushgate"):
    return structlog.get_logger(name)


# Global logger, importable everywhere
logger = get_logger("pushgate")
