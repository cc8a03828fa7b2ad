"""
Structured logging configuration shared by the gateway and the CLI
"""
import logging
import sys
from typing import Optional

import structlog

from api.config import settings

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "botocore", "aiobotocore", "aiosqlite")


def setup_logging(level: Optional[str] = None, debug: Optional[bool] = None) -> None:
    """Route structlog through stdlib logging.

    JSON lines in production, the console renderer when ``DEBUG`` is set.
    Safe to call more than once; the last call wins.
    """
    level_name = (level or settings.API_LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    debug = settings.DEBUG if debug is None else debug

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
