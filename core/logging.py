from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog
from structlog.types import Processor

LOG_FILE_NAME = "app.ndjson"


def _shared_processors() -> list[Processor]:
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _build_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        *_shared_processors(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]


def setup_json_logging(
    log_dir: str | Path,
    level: str = "INFO",
    *,
    service: str = "blob-uploader",
    console: bool = False,
) -> structlog.stdlib.BoundLogger:
    """Configure structlog to emit NDJSON lines into ``log_dir/app.ndjson``.

    Records from stdlib ``logging`` (redis, asyncio) go through the same JSON
    formatter, so the file holds one object per line regardless of origin.
    With ``console`` the same lines are mirrored to stderr.
    """

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=_shared_processors(),
    )
    handlers: list[logging.Handler] = [
        logging.FileHandler(log_path / LOG_FILE_NAME, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level.upper())
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    structlog.configure(
        processors=_build_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.stdlib.get_logger(service).bind(service=service)
