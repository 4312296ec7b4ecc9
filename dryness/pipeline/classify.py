"""Point-in-region classification.

Regions are tested in their input order and a point belongs to the first
region whose polygon covers it. Containment is planar on lon/lat and
boundary-inclusive (``shapely.intersects_xy``), which is deterministic for a
given point and polygon. A single bounding box over all usable regions
pre-filters points before the exact test; it never changes the outcome.

Each classifier owns its prepared geometries. Nothing is cached at module
level, so concurrent runs never share state.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence, TypeVar

import numpy as np
import shapely
from shapely.geometry.base import BaseGeometry

from dryness.common.errors import InvalidGeometryError
from dryness.common.geometry import build_region_shape, combined_bounds
from dryness.common.logging import log_event
from dryness.common.models import RegionFeature

STAGE = "classify"
UNASSIGNED = -1

P = TypeVar("P")


def point_xy(point) -> tuple[float, float]:
    """``(lon, lat)`` of a combined or half observation."""
    lon = getattr(point, "long", None)
    if lon is None:
        lon = point.lon
    return lon, point.lat


def to_arrays(points: Sequence) -> tuple[np.ndarray, np.ndarray]:
    xs = np.empty(len(points), dtype=float)
    ys = np.empty(len(points), dtype=float)
    for i, point in enumerate(points):
        xs[i], ys[i] = point_xy(point)
    return xs, ys


class SpatialClassifier:
    def __init__(
        self,
        regions: Sequence[RegionFeature],
        *,
        repair_invalid: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self.regions = list(regions)
        self.logger = logger
        self.shapes: list[BaseGeometry | None] = []
        self.invalid: list[InvalidGeometryError] = []

        for region in self.regions:
            self.shapes.append(self._build_shape(region, repair_invalid))

        self.bbox = combined_bounds([geom for geom in self.shapes if geom is not None])

    def _build_shape(self, region: RegionFeature, repair_invalid: bool) -> BaseGeometry | None:
        try:
            return build_region_shape(region.geometry, repair_invalid=repair_invalid)
        except InvalidGeometryError as exc:
            exc.region_index = region.index
            exc.region_name = region.name
            self.invalid.append(exc)
            log_event(
                self.logger,
                f"region skipped: {exc}",
                level=logging.WARNING,
                stage=STAGE,
                event="REGION_SKIPPED",
                status="warn",
                region=region.name,
                error_code=exc.error_code,
            )
            return None

    @property
    def skipped_regions(self) -> list[str]:
        return [exc.region_name or "" for exc in self.invalid]

    def bbox_mask(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        if self.bbox is None:
            return np.zeros(len(xs), dtype=bool)
        min_lon, min_lat, max_lon, max_lat = self.bbox
        return (xs >= min_lon) & (xs <= max_lon) & (ys >= min_lat) & (ys <= max_lat)

    def region_mask(self, index: int, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        geom = self.shapes[index]
        if geom is None or len(xs) == 0:
            return np.zeros(len(xs), dtype=bool)
        return np.asarray(shapely.intersects_xy(geom, xs, ys), dtype=bool)

    def contains(self, index: int, lon: float, lat: float) -> bool:
        geom = self.shapes[index]
        if geom is None:
            return False
        return bool(shapely.intersects_xy(geom, lon, lat))

    def classify(self, lon: float, lat: float) -> int | None:
        """Index of the first region covering the point, or ``None``."""
        if not self.bbox_mask(np.array([lon]), np.array([lat]))[0]:
            return None
        for index in range(len(self.regions)):
            if self.contains(index, lon, lat):
                return index
        return None

    def assign(
        self,
        xs: np.ndarray,
        ys: np.ndarray,
        *,
        on_region: Callable[[int, RegionFeature], None] | None = None,
    ) -> np.ndarray:
        """Region index per point (``UNASSIGNED`` when none), first match wins."""
        assigned = np.full(len(xs), UNASSIGNED, dtype=np.int64)
        pending = np.flatnonzero(self.bbox_mask(xs, ys))
        for index, region in enumerate(self.regions):
            if on_region is not None:
                on_region(index, region)
            if pending.size == 0:
                continue
            hits = self.region_mask(index, xs[pending], ys[pending])
            assigned[pending[hits]] = index
            pending = pending[~hits]
        return assigned

    def points_in_region(self, points: Sequence[P], index: int) -> list[P]:
        """Every point covered by one region, regardless of other regions."""
        xs, ys = to_arrays(points)
        mask = self.bbox_mask(xs, ys)
        candidates = np.flatnonzero(mask)
        hits = self.region_mask(index, xs[candidates], ys[candidates])
        return [points[i] for i in candidates[hits]]
