from __future__ import annotations

from pathlib import Path

from app.models.schemas import ProbeReport
from app.probe.runner import run_probe


def test_probe_reports_lost_context_by_default(tmp_path: Path) -> None:
    out_path = tmp_path / "report.json"
    report = run_probe(out_path=str(out_path), access_log_path=str(tmp_path / "probe.log"), repeat=2)

    loaded = ProbeReport.model_validate_json(out_path.read_text(encoding="utf-8"))
    assert loaded.summary.total_entries == 4
    assert loaded.summary.sync_correlated is True
    assert loaded.summary.async_correlated is False
    assert [e.path for e in report.entries] == ["/hello/sync", "/hello/async"] * 2


def test_probe_reports_kept_context_with_propagation(tmp_path: Path) -> None:
    report = run_probe(propagate=True, access_log_path=str(tmp_path / "probe.log"), delay_ms=10)

    assert report.summary.propagate_context is True
    assert report.summary.async_delay_ms == 10
    assert report.summary.sync_correlated is True
    assert report.summary.async_correlated is True
    assert report.summary.correlated_entries == 2
