from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from threading import Lock
from typing import Any

import structlog

from app.observability.context import add_correlation_fields


ACCESS_LOGGER_NAME = "access"

ACCESS_KEY_ORDER = ["timestamp", "event", "method", "path", "status", "elapsed_ms", "traceId", "spanId"]

_CONFIGURED = False
_ACCESS_LOCK = Lock()
_ACCESS_HANDLER: logging.FileHandler | None = None


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        add_correlation_fields,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure structlog + stdlib logging for JSON output.

    Safe to call multiple times (no-op after first call).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    pre_chain = _pre_chain()

    structlog.configure(
        processors=[
            *pre_chain,
            # Let ProcessorFormatter render stdlib log records too.
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=pre_chain,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # Keep uvicorn's own loggers consistent with our handler.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.handlers = [handler]
        logger.propagate = False
        logger.setLevel(level)

    _CONFIGURED = True


def configure_access_log(path: Path) -> logging.Logger:
    """Point the ``access`` logger at ``path`` (one key=value line per request).

    Re-pointing to another file swaps the handler; same path is a no-op.
    """

    global _ACCESS_HANDLER

    target = os.path.abspath(path)
    access = logging.getLogger(ACCESS_LOGGER_NAME)

    with _ACCESS_LOCK:
        if _ACCESS_HANDLER is not None and _ACCESS_HANDLER.baseFilename == target:
            return access

        Path(target).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(target, mode="a", encoding="utf-8")
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.KeyValueRenderer(
                    key_order=ACCESS_KEY_ORDER,
                    drop_missing=True,
                    repr_native_str=False,
                ),
                foreign_pre_chain=_pre_chain(),
            )
        )

        previous = _ACCESS_HANDLER
        access.handlers = [handler]
        access.propagate = False
        access.setLevel(logging.INFO)
        _ACCESS_HANDLER = handler

        if previous is not None:
            previous.close()

    return access
