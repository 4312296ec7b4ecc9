"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from dryness.common.errors import ConfigError

MATCHING_METHODS = ("identifier", "coordinates")


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_range(value, ctx: str) -> None:
    if (
        not isinstance(value, (list, tuple))
        or len(value) != 2
        or not all(isinstance(v, (int, float)) for v in value)
    ):
        raise ConfigError(f"{ctx} must be a [low, high] pair of numbers")
    if value[0] > value[1]:
        raise ConfigError(f"{ctx} low bound exceeds high bound")


def _assert_positive_int(value, ctx: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive integer")


def validate_monthly_thresholds(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"ch_low", "ch_high", "sh_bn", "sh_an"}, "monthly_thresholds")
    _assert_range(cfg["ch_low"], "monthly_thresholds.ch_low")
    _assert_range(cfg["sh_bn"], "monthly_thresholds.sh_bn")
    _assert_range(cfg["sh_an"], "monthly_thresholds.sh_an")
    if not isinstance(cfg["ch_high"], (int, float)) or isinstance(cfg["ch_high"], bool):
        raise ConfigError("monthly_thresholds.ch_high must be a number")
    return cfg


def validate_analysis_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"region", "export", "matching", "progress", "geometry", "monthly_thresholds"}
    _assert_required_keys(cfg, top_required, "analysis config")
    _assert_no_unknown_keys(cfg, top_required, "analysis config", allow_unknown)

    _assert_required_keys(cfg["region"], {"name_field", "province"}, "region")
    _assert_required_keys(cfg["export"], {"period"}, "export")
    _assert_required_keys(cfg["matching"], {"method", "grid_interpolation"}, "matching")
    if cfg["matching"]["method"] not in MATCHING_METHODS:
        raise ConfigError(
            f"matching.method must be one of {', '.join(MATCHING_METHODS)}, got {cfg['matching']['method']!r}"
        )
    if not isinstance(cfg["matching"]["grid_interpolation"], bool):
        raise ConfigError("matching.grid_interpolation must be a boolean")

    _assert_required_keys(cfg["progress"], {"bbox_chunk", "match_chunk", "grid_chunk"}, "progress")
    _assert_positive_int(cfg["progress"]["bbox_chunk"], "progress.bbox_chunk")
    _assert_positive_int(cfg["progress"]["match_chunk"], "progress.match_chunk")
    _assert_positive_int(cfg["progress"]["grid_chunk"], "progress.grid_chunk")

    _assert_required_keys(cfg["geometry"], {"repair_invalid"}, "geometry")
    if not isinstance(cfg["geometry"]["repair_invalid"], bool):
        raise ConfigError("geometry.repair_invalid must be a boolean")

    validate_monthly_thresholds(cfg["monthly_thresholds"])
    return cfg
