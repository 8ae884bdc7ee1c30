from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from fraudcheck.services.reporting import ReportingSink


def test_report_without_store_only_logs(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="fraudcheck.services.reporting")

    assert ReportingSink().report({"type": "text", "content": "You won a prize"}) is None

    assert "Fraud reported by user" in caplog.text


def test_report_appends_jsonl(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "reports.jsonl"
    sink = ReportingSink(path)

    sink.report({"type": "text", "content": "first"})
    sink.report({"type": "url", "content": "http://bad.example"})

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [r["type"] for r in lines] == ["text", "url"]
    assert lines[1]["content"] == "http://bad.example"
    assert "received_at" in lines[0]


def test_persistence_failure_is_logged_not_raised(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    sink = ReportingSink(blocker / "reports.jsonl")

    with caplog.at_level(logging.WARNING, logger="fraudcheck.services.reporting"):
        sink.report({"type": "image", "content": "data:image/png;base64,AAAA"})

    assert "Failed to persist fraud report" in caplog.text
