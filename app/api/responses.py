from __future__ import annotations

import asyncio
from concurrent.futures import Future
from functools import partial
from typing import Any, Mapping

import structlog
from starlette.background import BackgroundTask
from starlette.responses import JSONResponse, Response
from starlette.types import Receive, Scope, Send

from app.observability.access_log import AccessLogRecorder
from app.observability.middleware import ACCESS_LOG_STATE_KEY


CANCELLED_STATUS = 503

_SKIPPED_HEADERS = {b"content-length", b"content-type"}

logger = structlog.get_logger("deferred")


def _complete_access_log(recorder: AccessLogRecorder, status_code: int, future: Future) -> None:
    if future.cancelled():
        recorder.complete(CANCELLED_STATUS)
    elif future.exception() is not None:
        recorder.complete(500)
    else:
        recorder.complete(status_code)


class DeferredJSONResponse(Response):
    """JSON response whose payload is produced later by a ``Future``.

    The request's access line is chained onto the future, so it is written by
    whichever thread resolves it, not by the request's own task. Work cancelled
    before it ran (scheduler shutdown) is answered with 503.
    """

    media_type = "application/json"

    def __init__(
        self,
        deferred: Future,
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
        background: BackgroundTask | None = None,
    ) -> None:
        self.deferred = deferred
        self.status_code = status_code
        self.background = background
        self.body = b""
        self.init_headers(headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        recorder = scope.get("state", {}).get(ACCESS_LOG_STATE_KEY)
        if recorder is not None:
            self.deferred.add_done_callback(partial(_complete_access_log, recorder, self.status_code))

        try:
            content: Any = await asyncio.wrap_future(self.deferred)
        except asyncio.CancelledError:
            # Only swallow the deferred work being cancelled, never our own task.
            if not self.deferred.cancelled():
                raise
            logger.warning("deferred.cancelled", path=scope.get("path"))
            response: Response = JSONResponse({"detail": "Deferred work was cancelled"}, status_code=CANCELLED_STATUS)
        else:
            response = JSONResponse(content, status_code=self.status_code, background=self.background)

        response.raw_headers.extend((k, v) for k, v in self.raw_headers if k not in _SKIPPED_HEADERS)
        await response(scope, receive, send)
