"""User fraud reports (fire-and-forget).

Reports are logged and, when FRAUD_REPORT_LOG is set, appended to a JSONL file
for later analysis / retraining. A persistence failure is logged and swallowed:
the caller's request never fails because of the sink.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fraudcheck.shared.detect_contract import FraudReport

LOGGER = logging.getLogger(__name__)

# Keep log lines bounded; image reports carry whole data URIs.
LOG_PREVIEW_CHARS = 120


class ReportingSink:
    def __init__(self, log_path: Optional[Path] = None) -> None:
        self.log_path = Path(log_path) if log_path else None

    def report(self, report: FraudReport) -> None:
        content = str(report.get("content", ""))
        LOGGER.info(
            "Fraud reported by user: type=%s content=%r",
            report.get("type"),
            content[:LOG_PREVIEW_CHARS],
            extra={"report_type": report.get("type"), "content_length": len(content)},
        )
        if self.log_path is None:
            return

        record = {
            "received_at": datetime.now(timezone.utc).isoformat(),
            "type": report.get("type"),
            "content": content,
        }
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.log_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except Exception as exc:  # noqa: BLE001 - reporting must not fail the caller
            LOGGER.warning(
                "Failed to persist fraud report to %s: %s",
                self.log_path,
                exc,
            )
