"""structlog configuration shared by the whole service.

Call :func:`setup_logging` once at start-up (the FastAPI lifespan does
this) and obtain loggers with :func:`get_logger`.  Log calls use short
snake_case event names plus keyword context::

    logger = get_logger("tasks.orchestrator")
    logger.info("task_start", task_id=task.id, executor="search")
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(debug: bool = False, json_logs: bool = False) -> None:
    """Configure stdlib logging and structlog.

    Parameters
    ----------
    debug:
        Lower the root level to ``DEBUG``.
    json_logs:
        Render one JSON object per line instead of the coloured console
        output used during development.
    """
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
        force=True,
    )
    # Playwright and httpx are chatty at INFO.
    for noisy in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

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
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to *name*."""
    return structlog.get_logger(name)
