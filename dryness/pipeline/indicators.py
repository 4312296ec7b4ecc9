"""Per-region dryness indicators.

Observations are partitioned over regions with the classifier's first-match
rule, then every region gets a result in input order, including regions with
no points (all zeros) and regions skipped for invalid geometry.

Fixed thresholds: CH < 100 mm is low, CH > 301 mm is high, SH < 84 % is
below normal, SH > 116 % is above normal. A flag is raised when strictly more
than 10 % of a region's points meet the criterion.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence, TypeVar

import numpy as np

from dryness.common.constants import (
    CH_HIGH_MIN,
    CH_LOW_MAX,
    DEFAULT_BBOX_CHUNK,
    FLAG_ACTIVATION_PCT,
    HTH_DRY_MIN_DAYS,
    HTH_RAIN_MARKER,
    HTH_WET_MAX_DAYS,
    SH_ABOVE_NORMAL_MIN,
    SH_BELOW_NORMAL_MAX,
)
from dryness.common.logging import log_event
from dryness.common.models import (
    HTHFlags,
    HTHObservation,
    MonthlyFlags,
    MonthlyThresholds,
    Observation,
    RegionFeature,
    RegionResult,
)
from dryness.pipeline.classify import SpatialClassifier, to_arrays
from dryness.pipeline.extract import parse_number
from dryness.pipeline.progress import ProgressReporter

STAGE = "aggregate"

P = TypeVar("P")


def activation_flag(pct: float) -> int:
    return 1 if pct > FLAG_ACTIVATION_PCT else 0


def _pct(count: int, total: int) -> float:
    return count / total * 100


def group_by_region(
    points: Sequence[P],
    classifier: SpatialClassifier,
    *,
    progress: ProgressReporter | None = None,
) -> list[list[P]]:
    """Points per region in region order; each point lands in at most one region."""
    progress = progress or ProgressReporter()
    total_regions = len(classifier.regions)

    def _on_region(index: int, region: RegionFeature) -> None:
        progress.update(index / total_regions if total_regions else 1.0, f"Processing {region.name}...")

    xs, ys = to_arrays(points)
    assigned = classifier.assign(xs, ys, on_region=_on_region)
    groups: list[list[P]] = [[] for _ in classifier.regions]
    for point, index in zip(points, assigned.tolist()):
        if index >= 0:
            groups[index].append(point)
    return groups


def region_result(name: str, points: Sequence[Observation]) -> RegionResult:
    n_total = len(points)
    if n_total == 0:
        return RegionResult(region_name=name)

    n_ch_rendah = sum(1 for p in points if p.ch < CH_LOW_MAX)
    n_ch_tinggi = sum(1 for p in points if p.ch > CH_HIGH_MIN)
    n_sh_bn = sum(1 for p in points if p.sh < SH_BELOW_NORMAL_MAX)
    n_sh_an = sum(1 for p in points if p.sh > SH_ABOVE_NORMAL_MIN)

    pct_ch_rendah = _pct(n_ch_rendah, n_total)
    pct_ch_tinggi = _pct(n_ch_tinggi, n_total)
    pct_sh_bn = _pct(n_sh_bn, n_total)
    pct_sh_an = _pct(n_sh_an, n_total)

    return RegionResult(
        region_name=name,
        n_total=n_total,
        n_ch_rendah=n_ch_rendah,
        pct_ch_rendah=pct_ch_rendah,
        flag_ch_rendah=activation_flag(pct_ch_rendah),
        n_ch_tinggi=n_ch_tinggi,
        pct_ch_tinggi=pct_ch_tinggi,
        flag_ch_tinggi=activation_flag(pct_ch_tinggi),
        n_sh_bn=n_sh_bn,
        pct_sh_bn=pct_sh_bn,
        flag_sh_bn=activation_flag(pct_sh_bn),
        n_sh_an=n_sh_an,
        pct_sh_an=pct_sh_an,
        flag_sh_an=activation_flag(pct_sh_an),
        avg_ch=sum(p.ch for p in points) / n_total,
        avg_sh=sum(p.sh for p in points) / n_total,
    )


def _aggregate_with(
    points: Sequence[P],
    classifier: SpatialClassifier,
    build: Callable[[str, Sequence[P]], object],
    progress: ProgressReporter | None,
    logger: logging.Logger | None,
    kind: str,
) -> list:
    progress = progress or ProgressReporter()
    progress.update(0.0, f"Processing {kind} data...")
    groups = group_by_region(points, classifier, progress=progress)
    results = [build(region.name, group) for region, group in zip(classifier.regions, groups)]
    progress.update(1.0, f"{kind} processing complete")

    assigned = sum(len(group) for group in groups)
    log_event(
        logger,
        f"{kind}: {assigned} of {len(points)} points fell in {len(classifier.regions)} regions",
        stage=STAGE,
        event="REGIONS_AGGREGATED",
        status="warn" if classifier.invalid else "ok",
        rows_in=len(points),
        rows_out=assigned,
    )
    return results


def aggregate(
    observations: Sequence[Observation],
    classifier: SpatialClassifier,
    *,
    progress: ProgressReporter | None = None,
    logger: logging.Logger | None = None,
) -> list[RegionResult]:
    return _aggregate_with(observations, classifier, region_result, progress, logger, "CH/SH")


def _in_range(value: float, bounds: tuple[float, float]) -> bool:
    return bounds[0] <= value <= bounds[1]


def monthly_flags(name: str, points: Sequence[Observation], thresholds: MonthlyThresholds) -> MonthlyFlags:
    n_total = len(points)
    if n_total == 0:
        return MonthlyFlags(region_name=name)

    ch_low = sum(1 for p in points if _in_range(p.ch, thresholds.ch_low))
    ch_high = sum(1 for p in points if p.ch >= thresholds.ch_high)
    sh_bn = sum(1 for p in points if _in_range(p.sh, thresholds.sh_bn))
    sh_an = sum(1 for p in points if _in_range(p.sh, thresholds.sh_an))

    return MonthlyFlags(
        region_name=name,
        ch_bulanan_rendah=activation_flag(_pct(ch_low, n_total)),
        ch_bulanan_tinggi=activation_flag(_pct(ch_high, n_total)),
        sh_bulanan_BN=activation_flag(_pct(sh_bn, n_total)),
        sh_bulanan_AN=activation_flag(_pct(sh_an, n_total)),
    )


def aggregate_monthly(
    observations: Sequence[Observation],
    classifier: SpatialClassifier,
    thresholds: MonthlyThresholds,
    *,
    progress: ProgressReporter | None = None,
    logger: logging.Logger | None = None,
) -> list[MonthlyFlags]:
    def _build(name: str, points: Sequence[Observation]) -> MonthlyFlags:
        return monthly_flags(name, points, thresholds)

    return _aggregate_with(observations, classifier, _build, progress, logger, "Monthly CH/SH")


def hth_flags(name: str, points: Sequence[HTHObservation]) -> HTHFlags:
    numeric = [value for value in (parse_number(p.hth) for p in points) if value is not None]
    still_raining = any(HTH_RAIN_MARKER in p.hth.lower() for p in points)

    dry = bool(numeric) and max(numeric) > HTH_DRY_MIN_DAYS
    wet = still_raining or (bool(numeric) and min(numeric) < HTH_WET_MAX_DAYS)
    return HTHFlags(region_name=name, hth_kering=int(dry), hth_basah=int(wet))


def aggregate_hth(
    observations: Sequence[HTHObservation],
    classifier: SpatialClassifier,
    *,
    progress: ProgressReporter | None = None,
    logger: logging.Logger | None = None,
) -> list[HTHFlags]:
    return _aggregate_with(observations, classifier, hth_flags, progress, logger, "HTH")


def filter_points_in_boundary(
    points: Sequence[P],
    classifier: SpatialClassifier,
    *,
    chunk_size: int = DEFAULT_BBOX_CHUNK,
    progress: ProgressReporter | None = None,
    logger: logging.Logger | None = None,
) -> list[P]:
    """Points covered by any region, input order preserved."""
    progress = progress or ProgressReporter()
    total = len(points)
    xs, ys = to_arrays(points)

    progress.update(0.0, "Filtering points by bounding box...")
    in_bbox = np.zeros(total, dtype=bool)
    for start in range(0, total, chunk_size):
        progress.update(0.5 * start / total, f"Filtered {start} / {total} points")
        end = start + chunk_size
        in_bbox[start:end] = classifier.bbox_mask(xs[start:end], ys[start:end])

    candidates = np.flatnonzero(in_bbox)
    assigned = classifier.assign(
        xs[candidates],
        ys[candidates],
        on_region=lambda index, region: progress.update(
            0.5 + 0.5 * index / max(len(classifier.regions), 1),
            f"Checking {region.name}...",
        ),
    )
    kept = [points[i] for i, region_index in zip(candidates.tolist(), assigned.tolist()) if region_index >= 0]
    progress.update(1.0, f"Filtered {len(kept)} points from {total}")

    log_event(
        logger,
        f"kept {len(kept)} of {total} points inside the boundary",
        stage=STAGE,
        event="BOUNDARY_FILTERED",
        status="ok",
        rows_in=total,
        rows_out=len(kept),
        rows_dropped=total - len(kept),
    )
    return kept
