"""Structured logging configuration — structlog rendering for stdlib logging.

Environment:
    BOOKSHELF_LOG_LEVEL   level for the ``bookshelf`` loggers (default: INFO)
    BOOKSHELF_LOG_FORMAT  ``console`` or ``json`` (default: console)
"""

from __future__ import annotations

import logging
import logging.config
import os

import structlog

_ENV_LOG_LEVEL = "BOOKSHELF_LOG_LEVEL"
_ENV_LOG_FORMAT = "BOOKSHELF_LOG_FORMAT"

# Libraries that are chatty at INFO
_LIBRARY_LEVELS = {
    "uvicorn.access": "WARNING",
    "uvicorn.error": "INFO",
    "sqlalchemy.engine": "WARNING",
    "asyncpg": "WARNING",
    "aiosqlite": "WARNING",
    "python_multipart": "WARNING",
}


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Route structlog and stdlib records through one stdout handler.

    Arguments override the environment; the API factory passes none, the
    seed script passes its ``--log-level`` flag.
    """
    level = (level or os.environ.get(_ENV_LOG_LEVEL, "INFO")).upper()
    log_format = (log_format or os.environ.get(_ENV_LOG_FORMAT, "console")).lower()
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers: dict[str, dict[str, str]] = {"bookshelf": {"level": level}}
    loggers.update({name: {"level": lvl} for name, lvl in _LIBRARY_LEVELS.items()})

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": pre_chain,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(log_format),
                    ],
                },
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "structlog",
                },
            },
            "root": {"handlers": ["stdout"], "level": level},
            "loggers": loggers,
        }
    )
