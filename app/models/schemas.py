from __future__ import annotations

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    message: str


class ProbeEntry(BaseModel):
    path: str | None
    status: int | None
    trace_id: str | None
    span_id: str | None
    correlated: bool
    line: str


class ProbeSummary(BaseModel):
    propagate_context: bool
    async_delay_ms: int
    access_log_path: str
    total_entries: int
    correlated_entries: int
    sync_correlated: bool
    async_correlated: bool


class ProbeReport(BaseModel):
    summary: ProbeSummary
    entries: list[ProbeEntry] = Field(default_factory=list)
