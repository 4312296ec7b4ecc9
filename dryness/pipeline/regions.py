"""Region boundary loading from GeoJSON feature collections."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from shapely.errors import GEOSException

from dryness.common.constants import UNKNOWN_REGION_NAME
from dryness.common.errors import ConfigError, EmptyFileError, ParseError
from dryness.common.fs import read_json
from dryness.common.geometry import build_transformer, collection_crs, is_wgs84, reproject_geometry
from dryness.common.logging import log_event
from dryness.common.models import RegionFeature

STAGE = "regions"


def read_collection(path: Path) -> dict[str, Any]:
    try:
        payload = read_json(path)
    except ValueError as exc:
        raise ParseError(f"Failed to parse boundary file {path.name}: {exc}") from exc
    if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
        raise ParseError(f"Boundary file {path.name} is not a GeoJSON FeatureCollection")
    return payload


def region_property_keys(collection: dict[str, Any]) -> list[str]:
    """Property names of the first feature, offered as candidate name fields."""
    features = collection.get("features") or []
    if not features:
        return []
    return list(_properties(features[0]).keys())


def _properties(feature: Any) -> dict[str, Any]:
    if not isinstance(feature, dict):
        return {}
    properties = feature.get("properties")
    return dict(properties) if isinstance(properties, dict) else {}


def _region_name(properties: dict[str, Any], name_field: str) -> str:
    value = properties.get(name_field)
    if value in (None, ""):
        return UNKNOWN_REGION_NAME
    return str(value)


def load_regions(
    source: Path | dict[str, Any],
    name_field: str,
    *,
    logger: logging.Logger | None = None,
) -> list[RegionFeature]:
    """Return regions in file order, reprojected to lon/lat when a CRS is declared."""
    collection = read_collection(source) if isinstance(source, Path) else source
    features = collection.get("features") or []
    if not features:
        raise EmptyFileError("Boundary collection has no features")

    # Unnamed features become "Unknown"; a field no feature carries is a typo.
    if not any(name_field in _properties(feature) for feature in features):
        keys = region_property_keys(collection)
        raise ConfigError(
            f"Region name field {name_field!r} not found; available properties: {', '.join(keys) or '-'}"
        )

    crs = collection_crs(collection)
    transformer = None if is_wgs84(crs) else build_transformer(crs)

    regions: list[RegionFeature] = []
    for index, feature in enumerate(features):
        properties = _properties(feature)
        geometry = feature.get("geometry") if isinstance(feature, dict) else None
        if (
            transformer is not None
            and isinstance(geometry, dict)
            and geometry.get("type") in ("Polygon", "MultiPolygon")
        ):
            try:
                geometry = reproject_geometry(geometry, transformer)
            except (GEOSException, ValueError, TypeError, IndexError, KeyError) as exc:
                log_event(
                    logger,
                    f"could not reproject region {index}: {exc}",
                    level=logging.WARNING,
                    stage=STAGE,
                    event="REPROJECT_FAIL",
                    status="warn",
                    region=_region_name(properties, name_field),
                    error_code="INVALID_GEOMETRY",
                )
                geometry = None
        regions.append(
            RegionFeature(
                index=index,
                name=_region_name(properties, name_field),
                geometry=geometry,
                properties=properties,
            )
        )

    log_event(
        logger,
        f"loaded {len(regions)} regions",
        stage=STAGE,
        event="REGIONS_LOADED",
        status="ok",
        rows_out=len(regions),
    )
    return regions
