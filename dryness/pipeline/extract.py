"""Typed observation extraction from normalised records.

Column presence is checked once per file and is fatal. Numeric parsing is
checked per row and is not: rows with a blank or garbled LAT/LON/CH/SH are
dropped and counted, so one bad row never aborts a large file.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Sequence

from dryness.common.errors import MissingColumnsError
from dryness.common.logging import log_event
from dryness.common.models import CHObservation, Extraction, HTHObservation, Observation, SHObservation

STAGE = "extract"


def parse_number(value: str | None) -> float | None:
    """Parse a finite float from a normalised string, or return ``None``."""
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def _missing(columns: Iterable[str], required: Sequence[str]) -> list[str]:
    present = set(columns)
    return [name for name in required if name not in present]


def check_combined_columns(columns: Iterable[str]) -> None:
    present = set(columns)
    has_longitude = "LONG" in present or "LON" in present
    missing = [
        name
        for name, found in (
            ("LAT", "LAT" in present),
            ("LONG/LON", has_longitude),
            ("CH", "CH" in present),
            ("SH", "SH" in present),
        )
        if not found
    ]
    if missing:
        raise MissingColumnsError(missing)


def _log_drops(logger: logging.Logger | None, kind: str, rows_in: int, rows_out: int) -> None:
    dropped = rows_in - rows_out
    log_event(
        logger,
        f"extracted {rows_out} {kind} observations, dropped {dropped} unparsable rows",
        level=logging.WARNING if dropped else logging.INFO,
        stage=STAGE,
        event="ROWS_EXTRACTED",
        status="warn" if dropped else "ok",
        rows_in=rows_in,
        rows_out=rows_out,
        rows_dropped=dropped,
    )


def extract_observations(
    columns: Sequence[str],
    records: Sequence[dict[str, str]],
    *,
    logger: logging.Logger | None = None,
) -> Extraction[Observation]:
    check_combined_columns(columns)

    points: list[Observation] = []
    for row in records:
        lat = parse_number(row.get("LAT"))
        long = parse_number(row.get("LONG"))
        if long is None:
            long = parse_number(row.get("LON"))
        ch = parse_number(row.get("CH"))
        sh = parse_number(row.get("SH"))
        if lat is None or long is None or ch is None or sh is None:
            continue
        points.append(Observation(lat=lat, long=long, ch=ch, sh=sh))

    _log_drops(logger, "CH/SH", len(records), len(points))
    return Extraction(items=points, rows_in=len(records), dropped=len(records) - len(points))


def _metric_text(row: dict[str, str], metric: str) -> str | None:
    # A blank metric cell falls back to VAL row by row.
    return row.get(metric) or row.get("VAL")


def _extract_half(
    columns: Sequence[str],
    records: Sequence[dict[str, str]],
    metric: str,
) -> list[tuple[float, float, float, str | None]]:
    missing = _missing(columns, ("LAT", "LON"))
    if metric not in columns and "VAL" not in columns:
        missing.append(metric)
    if missing:
        raise MissingColumnsError(missing)

    out = []
    for row in records:
        lat = parse_number(row.get("LAT"))
        lon = parse_number(row.get("LON"))
        value = parse_number(_metric_text(row, metric))
        if lat is None or lon is None or value is None:
            continue
        nogrid = row.get("NOGRID") or None
        out.append((lat, lon, value, nogrid))
    return out


def extract_ch_observations(
    columns: Sequence[str],
    records: Sequence[dict[str, str]],
    *,
    logger: logging.Logger | None = None,
) -> Extraction[CHObservation]:
    points = [
        CHObservation(lat=lat, lon=lon, ch=value, nogrid=nogrid)
        for lat, lon, value, nogrid in _extract_half(columns, records, "CH")
    ]
    _log_drops(logger, "CH", len(records), len(points))
    return Extraction(items=points, rows_in=len(records), dropped=len(records) - len(points))


def extract_sh_observations(
    columns: Sequence[str],
    records: Sequence[dict[str, str]],
    *,
    logger: logging.Logger | None = None,
) -> Extraction[SHObservation]:
    points = [
        SHObservation(lat=lat, lon=lon, sh=value, nogrid=nogrid)
        for lat, lon, value, nogrid in _extract_half(columns, records, "SH")
    ]
    _log_drops(logger, "SH", len(records), len(points))
    return Extraction(items=points, rows_in=len(records), dropped=len(records) - len(points))


def extract_hth_observations(
    columns: Sequence[str],
    records: Sequence[dict[str, str]],
    *,
    logger: logging.Logger | None = None,
) -> Extraction[HTHObservation]:
    missing = _missing(columns, ("LAT", "LON", "HTH"))
    if missing:
        raise MissingColumnsError(missing)

    points: list[HTHObservation] = []
    for row in records:
        lat = parse_number(row.get("LAT"))
        lon = parse_number(row.get("LON"))
        if lat is None or lon is None:
            continue
        points.append(HTHObservation(lat=lat, lon=lon, hth=row.get("HTH", "")))

    _log_drops(logger, "HTH", len(records), len(points))
    return Extraction(items=points, rows_in=len(records), dropped=len(records) - len(points))
