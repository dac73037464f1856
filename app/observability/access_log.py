from __future__ import annotations

import re
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from time import perf_counter

import structlog

from app.config import get_settings
from app.observability.logging import ACCESS_LOGGER_NAME, configure_access_log
from app.observability.context import ABSENT, current
from app.observability.metrics import get_metrics


_MISSING_VALUES = {"", ABSENT, "null", "None"}


class AccessLogRecorder:
    """Writes the single access line for one request.

    Whoever signals completion first writes the line, on its own thread, with
    whatever correlation context that thread has active at that moment.
    """

    def __init__(self, method: str | None, path: str | None) -> None:
        self.method = method
        self.path = path
        self._start = perf_counter()
        self._lock = Lock()
        self._completed = False

    @property
    def completed(self) -> bool:
        with self._lock:
            return self._completed

    def complete(self, status_code: int) -> bool:
        with self._lock:
            if self._completed:
                return False
            self._completed = True

        elapsed_ms = (perf_counter() - self._start) * 1000.0
        get_metrics().observe_access_entry(correlated=current().is_active)

        configure_access_log(get_settings().access_log_file)
        structlog.get_logger(ACCESS_LOGGER_NAME).info(
            "http_request",
            method=self.method,
            path=self.path,
            status=status_code,
            elapsed_ms=round(elapsed_ms, 2),
        )
        return True


def extract_field(line: str | None, key: str) -> str | None:
    """Value of ``key=`` in an access line; None when the key is not there."""

    if not line:
        return None
    match = re.search(rf"(?:^|\s){re.escape(key)}=(\S*)", line)
    if match is None:
        return None
    return match.group(1).rstrip(",;")


def is_valid_correlation_value(value: str | None) -> bool:
    return value is not None and value not in _MISSING_VALUES and len(value) > 1


@dataclass(frozen=True)
class AccessLogEntry:
    line: str
    method: str | None
    path: str | None
    status: int | None
    trace_id: str | None
    span_id: str | None

    @classmethod
    def parse(cls, line: str) -> AccessLogEntry:
        status = extract_field(line, "status")
        return cls(
            line=line,
            method=extract_field(line, "method"),
            path=extract_field(line, "path"),
            status=int(status) if status and status.isdigit() else None,
            trace_id=extract_field(line, "traceId"),
            span_id=extract_field(line, "spanId"),
        )

    @property
    def correlated(self) -> bool:
        return is_valid_correlation_value(self.trace_id) and is_valid_correlation_value(self.span_id)


def read_access_log(path: Path) -> list[AccessLogEntry]:
    if not path.exists():
        return []
    lines = path.read_text(encoding="utf-8").splitlines()
    return [AccessLogEntry.parse(line.strip()) for line in lines if line.strip()]


def last_access_log_entry(path: Path) -> AccessLogEntry | None:
    entries = read_access_log(path)
    return entries[-1] if entries else None


def truncate_access_log(path: Path) -> None:
    if path.exists():
        path.write_text("", encoding="utf-8")


def wait_for_access_log_entry(
    path: Path,
    request_path: str,
    *,
    timeout_s: float = 2.0,
    interval_s: float = 0.05,
) -> AccessLogEntry | None:
    """Poll until the newest entry for ``request_path`` shows up (or time runs out)."""

    deadline = time.monotonic() + timeout_s
    while True:
        matching = [e for e in read_access_log(path) if e.path == request_path]
        if matching:
            return matching[-1]
        if time.monotonic() >= deadline:
            return None
        time.sleep(interval_s)
