"""genotype_etl.shared

Shared run bookkeeping: RejectWriter, RunCounters and the JSON run report.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from genotype_etl.validate import COLUMN_NAMES


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected rows."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    @property
    def path(self) -> Path:
        return self._path

    def write(self, row: dict[str, str], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()

    def write_fields(self, line_no: int, fields: list[str], reason: str) -> None:
        """Write a raw tab-split data line keyed by the matrix column names."""
        row = {"line_no": str(line_no)}
        for idx, name in enumerate(COLUMN_NAMES):
            row[name] = fields[idx] if idx < len(fields) else ""
        self.write(row, reason)

    def close(self) -> None:
        if self._fh:
            self._fh.close()
            self._fh = None


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    lines_total: int = 0
    lines_read: int = 0
    comment_lines: int = 0
    rows_skipped_blank: int = 0
    rows_skipped_no_allele: int = 0
    rows_loaded: int = 0
    rows_failed: int = 0
    genotype_calls_stored: int = 0
    entities_inserted: dict[str, int] = field(default_factory=dict)
    entities_matched: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def record_entity(self, table: str, inserted: bool) -> None:
        bucket = self.entities_inserted if inserted else self.entities_matched
        bucket[table] = bucket.get(table, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        d = {
            k: v
            for k, v in self.__dict__.items()
            if k not in ("entities_inserted", "entities_matched", "warnings")
        }
        d["entities_inserted"] = dict(sorted(self.entities_inserted.items()))
        d["entities_matched"] = dict(sorted(self.entities_matched.items()))
        d["warnings"] = self.warnings[:50]
        return d


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: RunCounters,
    status: str,
    error: str | None = None,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        "status": status,
        "error": error,
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
