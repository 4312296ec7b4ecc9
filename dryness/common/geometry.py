"""Geometry helpers: boundary CRS handling and shapely construction."""

from __future__ import annotations

from typing import Any

import numpy as np
import shapely
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError
from shapely.errors import GEOSException
from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry

from dryness.common.errors import ConfigError, InvalidGeometryError

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")
WGS84 = CRS.from_epsg(4326)


def collection_crs(collection: dict[str, Any]) -> CRS | None:
    """Read the legacy GeoJSON ``crs`` member, if any."""
    crs_member = collection.get("crs")
    if not crs_member:
        return None
    name = (crs_member.get("properties") or {}).get("name")
    if not name:
        return None
    try:
        return CRS.from_user_input(name)
    except CRSError as exc:
        raise ConfigError(f"Unrecognised boundary CRS {name!r}: {exc}") from exc


def is_wgs84(crs: CRS | None) -> bool:
    if crs is None:
        return True
    return crs.equals(WGS84, ignore_axis_order=True)


def build_transformer(source_crs: CRS) -> Transformer:
    return Transformer.from_crs(source_crs, WGS84, always_xy=True)


def reproject_geometry(geometry: dict[str, Any], transformer: Transformer) -> dict[str, Any]:
    def _to_wgs84(coords: np.ndarray) -> np.ndarray:
        lons, lats = transformer.transform(coords[:, 0], coords[:, 1])
        return np.column_stack([lons, lats])

    projected = shapely.transform(shape(geometry), _to_wgs84)
    return dict(mapping(projected))


def build_region_shape(geometry: dict[str, Any] | None, *, repair_invalid: bool = True) -> BaseGeometry:
    """Build a prepared polygonal shapely geometry from a GeoJSON mapping.

    Raises InvalidGeometryError for missing, non-polygonal, malformed or (when
    repair is disabled) invalid geometries.
    """
    if not geometry:
        raise InvalidGeometryError("Region has no geometry")
    if not isinstance(geometry, dict):
        raise InvalidGeometryError(f"Region geometry is not a GeoJSON object: {type(geometry).__name__}")
    geometry_type = geometry.get("type")
    if geometry_type not in POLYGONAL_TYPES:
        raise InvalidGeometryError(f"Unsupported region geometry type: {geometry_type}")

    try:
        geom = shape(geometry)
    except (GEOSException, ValueError, TypeError, IndexError, KeyError) as exc:
        raise InvalidGeometryError(f"Malformed {geometry_type} coordinates: {exc}") from exc

    if geom.is_empty:
        raise InvalidGeometryError(f"Empty {geometry_type}")
    if not geom.is_valid:
        if not repair_invalid:
            raise InvalidGeometryError(f"Invalid {geometry_type}: {shapely.is_valid_reason(geom)}")
        geom = shapely.make_valid(geom)

    shapely.prepare(geom)
    return geom


def combined_bounds(geometries: list[BaseGeometry]) -> tuple[float, float, float, float] | None:
    """Axis-aligned ``(min_lon, min_lat, max_lon, max_lat)`` over every geometry."""
    if not geometries:
        return None
    bounds = [geom.bounds for geom in geometries]
    return (
        min(b[0] for b in bounds),
        min(b[1] for b in bounds),
        max(b[2] for b in bounds),
        max(b[3] for b in bounds),
    )
