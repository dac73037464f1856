from __future__ import annotations

import uuid
from time import perf_counter
from typing import Any, Callable

import structlog
from starlette.datastructures import Headers, MutableHeaders

from app.config import get_settings
from app.observability.access_log import AccessLogRecorder
from app.observability.context import CorrelationContext, correlation_scope
from app.observability.metrics import get_metrics


ACCESS_LOG_STATE_KEY = "access_log"


def _inbound_correlation(scope: dict[str, Any]) -> CorrelationContext:
    if get_settings().trust_traceparent:
        parent = CorrelationContext.from_traceparent(Headers(scope=scope).get("traceparent"))
        if parent is not None:
            return parent
    return CorrelationContext.start()


class RequestContextMiddleware:
    """Installs the request's correlation context, access logs, and basic HTTP metrics.

    The access line is normally written here once the app returns. Responses that
    finish elsewhere (see ``DeferredJSONResponse``) pick the recorder up from
    ``scope["state"]`` and complete it themselves; this middleware then skips it.
    """

    def __init__(self, app: Callable[..., Any]) -> None:
        self.app = app
        # Avoid self-observing the observability endpoints.
        self._excluded_metric_paths = {"/api/metrics", "/metrics"}

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())
        path = scope.get("path")
        method = scope.get("method")

        recorder = AccessLogRecorder(method=method, path=path)
        scope.setdefault("state", {})[ACCESS_LOG_STATE_KEY] = recorder

        tokens = structlog.contextvars.bind_contextvars(request_id=request_id)

        start = perf_counter()
        status_code: int = 500

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code

            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
                headers = MutableHeaders(scope=message)
                headers["X-Request-ID"] = request_id

            await send(message)

        with correlation_scope(_inbound_correlation(scope)):
            try:
                await self.app(scope, receive, send_wrapper)
            finally:
                elapsed_ms = (perf_counter() - start) * 1000.0

                # Exclude the metrics endpoints to avoid feedback loops in dashboards.
                if path not in self._excluded_metric_paths:
                    get_metrics().observe_http_request(elapsed_ms=elapsed_ms)

                recorder.complete(status_code)

                structlog.contextvars.reset_contextvars(**tokens)
