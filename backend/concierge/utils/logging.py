"""structlog configuration and per-request log context.

Two renderers: "json" lines for deployed workers, "console" for local
runs. The Command Dispatcher opens a ``correlation_scope`` per request,
so validation, executor, rollback, audit and notification lines all carry
the same ``correlation_id`` (the request id returned to the caller).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog
from structlog.contextvars import (
    bind_contextvars,
    bound_contextvars,
    get_contextvars,
    unbind_contextvars,
)

_CORRELATION_KEY = "correlation_id"

# Libraries that log every statement or request at INFO.
_NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "httpx", "httpcore")

_PRE_CHAIN: tuple[structlog.types.Processor, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
)


def set_correlation_id(cid: str) -> None:
    """Bind ``cid`` to the current context; an empty id unbinds it."""
    if cid:
        bind_contextvars(**{_CORRELATION_KEY: cid})
    else:
        unbind_contextvars(_CORRELATION_KEY)


def get_correlation_id() -> str:
    return str(get_contextvars().get(_CORRELATION_KEY, ""))


@contextmanager
def correlation_scope(cid: str, **context: Any) -> Iterator[str]:
    """Bind ``cid`` (plus any extra keys) for the duration of a block."""
    with bound_contextvars(**{_CORRELATION_KEY: cid}, **context):
        yield cid


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    stream: TextIO | None = None,
) -> None:
    """Route structlog through stdlib logging with one stream handler.

    Args:
        level: Root log level name.
        log_format: "json" or "console".
        stream: Output stream; defaults to the current ``sys.stderr``.
    """
    threshold = logging.getLevelName(level.upper())

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format),
            ],
            foreign_pre_chain=list(_PRE_CHAIN),
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(threshold)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, threshold))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Named logger, bound lazily so ``setup_logging`` may run later."""
    return structlog.stdlib.get_logger(name)
