"""Logging setup: structlog events rendered through stdlib handlers.

Environment:
    CARNIVALSYNC_LOG_LEVEL   level for the ``carnivalsync`` loggers (default INFO)
    CARNIVALSYNC_LOG_FORMAT  ``console`` or ``json`` (default console)
"""

from __future__ import annotations

import logging.config
import os

import structlog

# Third-party loggers that would otherwise drown a sync run.
_QUIET_LOGGERS = {
    "sqlalchemy.engine": "WARNING",
    "asyncpg": "WARNING",
    "aiosqlite": "WARNING",
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "uvicorn.access": "WARNING",
}


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Install structlog and the stdlib handler once per process.

    Explicit arguments win over the environment.
    """
    level = (level or os.environ.get("CARNIVALSYNC_LOG_LEVEL", "INFO")).upper()
    log_format = (log_format or os.environ.get("CARNIVALSYNC_LOG_FORMAT", "console")).lower()
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers: dict[str, dict] = {"carnivalsync": {"level": level}}
    loggers.update({name: {"level": lvl} for name, lvl in _QUIET_LOGGERS.items()})

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "carnivalsync": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": pre_chain,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(log_format),
                    ],
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "carnivalsync",
                },
            },
            "root": {"handlers": ["stderr"], "level": "WARNING"},
            "loggers": loggers,
        }
    )
