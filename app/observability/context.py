"""Request-scoped correlation context (trace id + span id).

The active context lives in a ContextVar. asyncio tasks and threads started
through ``contextvars``-aware helpers inherit it; anything resumed on an
unrelated thread does not, and reads the empty context instead. ``capture``
and ``restore`` carry a snapshot across such a hand-off explicitly.
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, TypeVar


T = TypeVar("T")

ABSENT = "-"

_TRACEPARENT_RE = re.compile(r"^00-(?P<trace_id>[0-9a-f]{32})-(?P<span_id>[0-9a-f]{16})-[0-9a-f]{2}$")


def new_trace_id() -> str:
    return secrets.token_hex(16)


def new_span_id() -> str:
    return secrets.token_hex(8)


@dataclass(frozen=True)
class CorrelationContext:
    trace_id: str | None = None
    span_id: str | None = None

    @property
    def is_active(self) -> bool:
        return bool(self.trace_id) and bool(self.span_id)

    @classmethod
    def start(cls, trace_id: str | None = None) -> CorrelationContext:
        """New server span, joining ``trace_id`` when given."""

        return cls(trace_id=trace_id or new_trace_id(), span_id=new_span_id())

    @classmethod
    def from_traceparent(cls, header: str | None) -> CorrelationContext | None:
        """Child span of a W3C ``traceparent`` header, or None if malformed."""

        if not header:
            return None
        match = _TRACEPARENT_RE.match(header.strip().lower())
        if match is None:
            return None
        trace_id = match.group("trace_id")
        # All-zero ids are invalid per W3C trace context.
        if trace_id == "0" * 32 or match.group("span_id") == "0" * 16:
            return None
        return cls.start(trace_id=trace_id)

    def as_log_fields(self) -> dict[str, str]:
        return {
            "traceId": self.trace_id or ABSENT,
            "spanId": self.span_id or ABSENT,
        }


EMPTY = CorrelationContext()

_current: ContextVar[CorrelationContext] = ContextVar("correlation_context", default=EMPTY)


def current() -> CorrelationContext:
    return _current.get()


def capture() -> CorrelationContext:
    """Snapshot of the calling unit's active context (EMPTY when none)."""

    return _current.get()


@contextmanager
def correlation_scope(snapshot: CorrelationContext) -> Iterator[CorrelationContext]:
    token = _current.set(snapshot)
    try:
        yield snapshot
    finally:
        _current.reset(token)


def restore(snapshot: CorrelationContext, body: Callable[[], T]) -> T:
    """Run ``body`` with ``snapshot`` installed, then reinstall what was there before."""

    with correlation_scope(snapshot):
        return body()


def propagating(fn: Callable[..., T]) -> Callable[..., T]:
    """Bind ``fn`` to the context active right now, wherever it ends up running."""

    snapshot = capture()

    @wraps(fn)
    def _wrapper(*args: Any, **kwargs: Any) -> T:
        return restore(snapshot, lambda: fn(*args, **kwargs))

    return _wrapper


def add_correlation_fields(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: read the context active on the logging thread."""

    _ = logger, method_name
    for key, value in current().as_log_fields().items():
        event_dict.setdefault(key, value)
    return event_dict
