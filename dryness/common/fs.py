"""Filesystem helpers and the run output layout.

Everything a run writes lives under one data dir::

    <data_dir>/out/<mode>_results.csv | hth_flags.json | monthly_flags.json
    <data_dir>/out/reports/run_summary.json
    <data_dir>/run_meta/<run_id>.log.jsonl
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from dryness.common.errors import ConfigError


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def out_dir(data_dir: Path) -> Path:
    return data_dir / "out"


def reports_dir(data_dir: Path) -> Path:
    return out_dir(data_dir) / "reports"


def run_log_path(data_dir: Path, run_id: str) -> Path:
    return data_dir / "run_meta" / f"{run_id}.log.jsonl"


def read_yaml(path: Path) -> Any:
    import yaml

    try:
        with path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc


def read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, payload: Any) -> None:
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, sort_keys=True)
        f.write("\n")


def write_text(path: Path, text: str) -> None:
    # newline="" keeps "\n" separators byte-exact on every platform.
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8", newline="") as f:
        f.write(text)
