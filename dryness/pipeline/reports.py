"""Run summary report."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from dryness.common.fs import reports_dir, write_json


@dataclass
class RunStats:
    mode: str
    rows_read: int = 0
    rows_kept: int = 0
    rows_dropped: int = 0
    matched: int | None = None
    in_boundary: int | None = None
    regions: int = 0
    skipped_regions: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)

    def add_extraction(self, rows_in: int, kept: int) -> None:
        self.rows_read += rows_in
        self.rows_kept += kept
        self.rows_dropped += rows_in - kept


def run_status(stats: RunStats) -> str:
    return "partial" if stats.skipped_regions else "success"


def write_run_summary(data_dir: Path, run_id: str, stats: RunStats) -> Path:
    summary_path = reports_dir(data_dir) / "run_summary.json"
    payload = {
        "run_id": run_id,
        "mode": stats.mode,
        "status": run_status(stats),
        "counts": {
            "rows_read": stats.rows_read,
            "rows_kept": stats.rows_kept,
            "rows_dropped": stats.rows_dropped,
            "matched": stats.matched,
            "in_boundary": stats.in_boundary,
            "regions": stats.regions,
            "regions_skipped": len(stats.skipped_regions),
        },
        "skipped_regions": stats.skipped_regions,
        "outputs": sorted(stats.outputs),
    }
    write_json(summary_path, payload)
    return summary_path
