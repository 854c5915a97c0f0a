import logging
import sys
from typing import Optional

import structlog

from app.core.config import settings


def configure_logging(
    level: Optional[str] = None, json_logs: Optional[bool] = None
) -> None:
    """Route stdlib logging and structlog through one formatter.

    The engine modules log through ``logging.getLogger`` while services and
    endpoints use structlog key-value events; both end up on stdout.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    use_json = settings.LOG_JSON if json_logs is None else json_logs

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
