from __future__ import annotations

import asyncio
from pathlib import Path

from httpx import ASGITransport, AsyncClient

from app.config import get_settings
from app.main import app
from app.models.schemas import ProbeEntry, ProbeReport, ProbeSummary
from app.observability.access_log import read_access_log, truncate_access_log
from app.services.scheduler import shutdown_scheduler


SYNC_PATH = "/hello/sync"
ASYNC_PATH = "/hello/async"


async def _issue_requests(repeat: int) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://probe") as client:
        for _ in range(repeat):
            for path in (SYNC_PATH, ASYNC_PATH):
                resp = await client.get(path)
                resp.raise_for_status()


def run_probe(
    out_path: str | None = None,
    *,
    propagate: bool = False,
    repeat: int = 1,
    access_log_path: str | None = None,
    delay_ms: int | None = None,
) -> ProbeReport:
    """Hit both endpoints in-process and report what reached the access log."""

    if repeat < 1:
        raise ValueError("repeat must be >= 1")

    settings = get_settings()
    saved = (settings.propagate_context, settings.async_delay_ms, settings.access_log_path)

    settings.propagate_context = propagate
    if delay_ms is not None:
        settings.async_delay_ms = delay_ms
    if access_log_path is not None:
        settings.access_log_path = access_log_path

    log_path = settings.access_log_file
    effective_delay_ms = settings.async_delay_ms
    truncate_access_log(log_path)

    try:
        asyncio.run(_issue_requests(repeat))
    finally:
        shutdown_scheduler()
        settings.propagate_context, settings.async_delay_ms, settings.access_log_path = saved

    entries = [
        ProbeEntry(
            path=e.path,
            status=e.status,
            trace_id=e.trace_id,
            span_id=e.span_id,
            correlated=e.correlated,
            line=e.line,
        )
        for e in read_access_log(log_path)
    ]
    sync_entries = [e for e in entries if e.path == SYNC_PATH]
    async_entries = [e for e in entries if e.path == ASYNC_PATH]

    report = ProbeReport(
        summary=ProbeSummary(
            propagate_context=propagate,
            async_delay_ms=effective_delay_ms,
            access_log_path=str(log_path),
            total_entries=len(entries),
            correlated_entries=sum(1 for e in entries if e.correlated),
            sync_correlated=bool(sync_entries) and all(e.correlated for e in sync_entries),
            async_correlated=bool(async_entries) and all(e.correlated for e in async_entries),
        ),
        entries=entries,
    )

    if out_path is not None:
        out = Path(out_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(report.model_dump_json(indent=2), encoding="utf-8")

    return report
