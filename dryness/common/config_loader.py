"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dryness.common.errors import ConfigError
from dryness.common.fs import read_yaml
from dryness.common.models import MonthlyThresholds
from dryness.common.schema import validate_analysis_config

ANALYSIS_FILENAME = "analysis.yml"


@dataclass(frozen=True)
class AnalysisConfig:
    name_field: str
    province: str
    period: str
    matching_method: str
    grid_interpolation: bool
    bbox_chunk: int
    match_chunk: int
    grid_chunk: int
    repair_invalid: bool
    monthly_thresholds: MonthlyThresholds


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if not overlay:
        return base
    return _deep_merge(base, overlay)


def build_analysis_config(cfg: dict) -> AnalysisConfig:
    thresholds = cfg["monthly_thresholds"]
    return AnalysisConfig(
        name_field=str(cfg["region"]["name_field"]),
        province=str(cfg["region"]["province"]),
        period=str(cfg["export"]["period"]),
        matching_method=cfg["matching"]["method"],
        grid_interpolation=cfg["matching"]["grid_interpolation"],
        bbox_chunk=cfg["progress"]["bbox_chunk"],
        match_chunk=cfg["progress"]["match_chunk"],
        grid_chunk=cfg["progress"]["grid_chunk"],
        repair_invalid=cfg["geometry"]["repair_invalid"],
        monthly_thresholds=MonthlyThresholds(
            ch_low=(float(thresholds["ch_low"][0]), float(thresholds["ch_low"][1])),
            ch_high=float(thresholds["ch_high"]),
            sh_bn=(float(thresholds["sh_bn"][0]), float(thresholds["sh_bn"][1])),
            sh_an=(float(thresholds["sh_an"][0]), float(thresholds["sh_an"][1])),
        ),
    )


def load_analysis_config(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> AnalysisConfig:
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / ANALYSIS_FILENAME
    cfg = _load_yaml_with_overlay(config_dir / ANALYSIS_FILENAME, overlay_path)
    validated = validate_analysis_config(cfg, allow_unknown=allow_unknown)
    return build_analysis_config(validated)
