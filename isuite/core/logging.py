"""Structured logging setup.

structlog sits on top of the stdlib logging module so third-party libraries
(uvicorn, httpx, tenacity) end up in the same stream. Development gets a
readable console renderer, everything else gets JSON lines.
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List

import structlog

from isuite.core.config import Environment, settings


def get_log_file_path() -> Path | None:
    """Daily log file under LOG_DIR, or None when file logging is off."""
    if not settings.LOG_DIR:
        return None
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    env_prefix = settings.ENVIRONMENT.value
    return log_dir / f"{env_prefix}-{datetime.now().strftime('%Y-%m-%d')}.jsonl"


def get_shared_processors() -> List[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging() -> None:
    """Configure stdlib logging and structlog. Safe to call more than once."""
    log_level = getattr(logging, settings.LOG_LEVEL, logging.INFO)
    use_console = settings.LOG_FORMAT == "console" and settings.ENVIRONMENT in (
        Environment.DEVELOPMENT,
        Environment.TEST,
    )

    renderer = structlog.dev.ConsoleRenderer() if use_console else structlog.processors.JSONRenderer()
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=get_shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    handlers: List[logging.Handler] = []
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    log_file = get_log_file_path()
    if log_file is not None:
        # files are always JSON so they can be shipped as-is
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=get_shared_processors(),
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.JSONRenderer(),
                ],
            )
        )
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(log_level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    structlog.configure(
        processors=get_shared_processors() + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


setup_logging()

logger = structlog.get_logger()
logger.info(
    "logging_initialized",
    environment=settings.ENVIRONMENT.value,
    log_level=settings.LOG_LEVEL,
    log_format=settings.LOG_FORMAT,
)
