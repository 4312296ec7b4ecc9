"""Block-fill grid interpolation for split CH/SH input.

An alternative to point matching when the CH and SH halves are gridded on
0.05 degree cells. A 0.01 degree grid is laid over the boundary bbox (padded
by 0.05 degrees), clipped to the regions, and every grid point takes the CH
and SH values of the 0.05 degree parent cell it falls in. A parent cell's
value is the first record, in input order, lying in the cell (with a 0.001
degree tolerance); failing that, the record nearest the cell centre.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

from dryness.common.constants import (
    DEFAULT_GRID_CHUNK,
    GRID_BBOX_PADDING,
    GRID_CELL_TOLERANCE,
    PARENT_GRID_RESOLUTION,
    TARGET_GRID_RESOLUTION,
)
from dryness.common.logging import log_event
from dryness.common.models import CHObservation, Observation, SHObservation
from dryness.pipeline.classify import SpatialClassifier
from dryness.pipeline.progress import ProgressReporter

STAGE = "grid"

BBox = tuple[float, float, float, float]


def padded_bbox(classifier: SpatialClassifier, padding: float = GRID_BBOX_PADDING) -> BBox | None:
    if classifier.bbox is None:
        return None
    min_lon, min_lat, max_lon, max_lat = classifier.bbox
    return (min_lon - padding, min_lat - padding, max_lon + padding, max_lat + padding)


def grid_axis(start: float, stop: float, step: float) -> list[float]:
    """Steps from ``start`` by repeated addition while ``<= stop``."""
    values = []
    value = start
    while value <= stop:
        values.append(value)
        value += step
    return values


def grid_points(bbox: BBox, resolution: float = TARGET_GRID_RESOLUTION) -> tuple[np.ndarray, np.ndarray]:
    """``(lons, lats)`` of the grid, latitude rows outermost."""
    min_lon, min_lat, max_lon, max_lat = bbox
    lons = np.array(grid_axis(min_lon, max_lon, resolution), dtype=float)
    lats = np.array(grid_axis(min_lat, max_lat, resolution), dtype=float)
    return np.tile(lons, len(lats)), np.repeat(lats, len(lons))


def parent_cell(lat: float, lon: float, resolution: float = PARENT_GRID_RESOLUTION) -> tuple[float, float]:
    """Lower-left corner of the parent cell containing ``(lat, lon)``."""
    return (
        round(math.floor(lat / resolution) * resolution, 6),
        round(math.floor(lon / resolution) * resolution, 6),
    )


class CellLookup:
    """Parent-cell values for one half (CH or SH)."""

    def __init__(self, lats, lons, values, *, resolution: float = PARENT_GRID_RESOLUTION) -> None:
        self.lats = np.asarray(lats, dtype=float)
        self.lons = np.asarray(lons, dtype=float)
        self.values = np.asarray(values, dtype=float)
        self.resolution = resolution

    def value(self, cell_lat: float, cell_lon: float) -> float | None:
        if self.values.size == 0:
            return None
        tol = GRID_CELL_TOLERANCE
        res = self.resolution
        inside = (
            (self.lats >= cell_lat - tol)
            & (self.lats < cell_lat + res + tol)
            & (self.lons >= cell_lon - tol)
            & (self.lons < cell_lon + res + tol)
        )
        hits = np.flatnonzero(inside)
        if hits.size:
            return float(self.values[hits[0]])

        d_lat = self.lats - (cell_lat + res / 2)
        d_lon = self.lons - (cell_lon + res / 2)
        return float(self.values[int(np.argmin(np.sqrt(d_lat * d_lat + d_lon * d_lon)))])


def interpolate_grid(
    ch_points: Sequence[CHObservation],
    sh_points: Sequence[SHObservation],
    classifier: SpatialClassifier,
    *,
    resolution: float = TARGET_GRID_RESOLUTION,
    parent_resolution: float = PARENT_GRID_RESOLUTION,
    chunk_size: int = DEFAULT_GRID_CHUNK,
    progress: ProgressReporter | None = None,
    logger: logging.Logger | None = None,
) -> list[Observation]:
    progress = progress or ProgressReporter()
    progress.update(0.0, "Computing boundary bounding box...")
    bbox = padded_bbox(classifier)
    if bbox is None:
        progress.update(1.0, "No usable region geometry; grid is empty")
        return []

    progress.update(0.1, f"Generating {resolution:g} degree grid points...")
    xs, ys = grid_points(bbox, resolution)

    progress.update(0.2, f"Filtering {len(xs)} grid points to the boundary...")
    clip_progress = progress.span(0.2, 0.4)
    total_regions = len(classifier.regions)
    assigned = classifier.assign(
        xs,
        ys,
        on_region=lambda index, region: clip_progress.update(index / total_regions, f"Checking {region.name}..."),
    )
    inside = np.flatnonzero(assigned >= 0)

    ch_lookup = CellLookup(
        [p.lat for p in ch_points], [p.lon for p in ch_points], [p.ch for p in ch_points], resolution=parent_resolution
    )
    sh_lookup = CellLookup(
        [p.lat for p in sh_points], [p.lon for p in sh_points], [p.sh for p in sh_points], resolution=parent_resolution
    )

    fill_progress = progress.span(0.4, 0.9)
    total = len(inside)
    cache: dict[tuple[float, float], tuple[float | None, float | None]] = {}
    filled: list[Observation] = []
    for i, index in enumerate(inside.tolist()):
        lat = float(ys[index])
        lon = float(xs[index])
        cell = parent_cell(lat, lon, parent_resolution)
        values = cache.get(cell)
        if values is None:
            values = (ch_lookup.value(*cell), sh_lookup.value(*cell))
            cache[cell] = values
        ch, sh = values
        if ch is not None and sh is not None:
            filled.append(Observation(lat=lat, long=lon, ch=ch, sh=sh))
        if i % chunk_size == 0 or i == total - 1:
            fill_progress.update(i / total, f"Block fill: {len(filled)} / {i + 1} points")

    progress.update(1.0, f"Filled {len(filled)} grid points from {len(cache)} parent cells")
    log_event(
        logger,
        f"block-filled {len(filled)} of {total} grid points from {len(ch_points)} CH and {len(sh_points)} SH records",
        stage=STAGE,
        event="GRID_FILLED",
        status="ok" if filled else "warn",
        rows_in=len(xs),
        rows_out=len(filled),
    )
    return filled
