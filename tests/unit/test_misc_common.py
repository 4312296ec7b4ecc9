import json
import logging
import threading
import time
from pathlib import Path

import pytest

from dryness.common.errors import ConfigError, InvalidGeometryError, MissingColumnsError, StageError
from dryness.common.fs import out_dir, read_yaml, reports_dir, run_log_path
from dryness.common.ids import generate_run_id
from dryness.common.logging import build_logger, close_logger, log_event
from dryness.common.time_utils import elapsed_ms
from dryness.pipeline.progress import OperationCancelled, ProgressReporter
from dryness.pipeline.reports import RunStats, write_run_summary


def test_generate_run_id_prefix():
    assert generate_run_id().startswith("run-")
    assert generate_run_id("split").startswith("split-")


def test_elapsed_ms_is_non_negative():
    assert elapsed_ms(time.monotonic()) >= 0


def test_error_codes():
    missing = MissingColumnsError(["LAT", "SH"])
    assert missing.error_code == "MISSING_COLUMNS"
    assert missing.missing == ("LAT", "SH")
    assert str(missing) == "Missing required columns: LAT, SH"
    assert InvalidGeometryError("bad", region_name="A").region_name == "A"
    assert StageError("boom", error_code="PARSE_ERROR").error_code == "PARSE_ERROR"


def test_json_log_lines_written_to_run_meta(tmp_path: Path):
    logger = build_logger("run-test", tmp_path)
    log_event(logger, "loaded", stage="regions", event="REGIONS_LOADED", status="ok", rows_out=3)
    close_logger(logger)

    [line] = (tmp_path / "run_meta" / "run-test.log.jsonl").read_text(encoding="utf-8").splitlines()
    payload = json.loads(line)
    assert payload["event"] == "REGIONS_LOADED"
    assert payload["rows_out"] == 3
    assert payload["region"] is None
    assert payload["level"] == "INFO"
    assert payload["message"] == "loaded"


def test_log_event_without_logger_uses_package_logger(caplog):
    with caplog.at_level(logging.WARNING, logger="dryness"):
        log_event(None, "careful", level=logging.WARNING, stage="classify")
    assert "careful" in caplog.text


def test_progress_reporter_span_and_clamp():
    seen = []
    reporter = ProgressReporter(lambda fraction, message: seen.append(fraction))
    child = reporter.span(0.5, 1.0)

    child.update(0.5, "half")
    child.update(2.0, "over")
    reporter.update(-1.0, "under")

    assert seen == [0.75, 1.0, 0.0]


def test_progress_reporter_raises_once_cancelled():
    cancel = threading.Event()
    reporter = ProgressReporter(cancel_event=cancel)
    reporter.update(0.1, "fine")
    cancel.set()

    with pytest.raises(OperationCancelled):
        reporter.update(0.2, "stop")


def test_write_run_summary(tmp_path: Path):
    stats = RunStats(mode="combined", regions=2, skipped_regions=["Broken"], outputs=["b.csv", "a.csv"])
    stats.add_extraction(10, 7)

    payload = json.loads(write_run_summary(tmp_path, "run-x", stats).read_text(encoding="utf-8"))

    assert payload["status"] == "partial"
    assert payload["counts"]["rows_dropped"] == 3
    assert payload["counts"]["regions_skipped"] == 1
    assert payload["outputs"] == ["a.csv", "b.csv"]


def test_read_yaml_wraps_syntax_errors(tmp_path: Path):
    path = tmp_path / "analysis.yml"
    path.write_text("region: [unterminated\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        read_yaml(path)


def test_output_layout(tmp_path: Path):
    assert out_dir(tmp_path) == tmp_path / "out"
    assert reports_dir(tmp_path) == tmp_path / "out" / "reports"
    assert run_log_path(tmp_path, "run-x") == tmp_path / "run_meta" / "run-x.log.jsonl"
