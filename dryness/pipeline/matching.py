"""Join CH and SH half-observations into combined observations.

Both methods walk the CH list in input order and keep CH coordinates.
``identifier`` joins on NOGRID through a lookup table. ``coordinates`` takes
the first SH record, in SH input order, whose LAT and LON are both within
``COORDINATE_TOLERANCE`` of the CH record. Unmatched records on either side
are dropped.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from dryness.common.constants import COORDINATE_TOLERANCE, DEFAULT_MATCH_CHUNK
from dryness.common.errors import ConfigError
from dryness.common.logging import log_event
from dryness.common.models import CHObservation, Observation, SHObservation
from dryness.pipeline.progress import ProgressReporter

STAGE = "match"
IDENTIFIER = "identifier"
COORDINATES = "coordinates"


def _identifier_index(sh_points: Sequence[SHObservation]) -> dict[str, SHObservation]:
    # Later duplicates replace earlier ones.
    return {sh.nogrid: sh for sh in sh_points if sh.nogrid}


def _combine(ch: CHObservation, sh: SHObservation) -> Observation:
    return Observation(lat=ch.lat, long=ch.lon, ch=ch.ch, sh=sh.sh)


def first_coordinate_match(
    ch: CHObservation,
    sh_lats: np.ndarray,
    sh_lons: np.ndarray,
    tolerance: float = COORDINATE_TOLERANCE,
) -> int | None:
    hits = np.flatnonzero((np.abs(sh_lats - ch.lat) < tolerance) & (np.abs(sh_lons - ch.lon) < tolerance))
    if hits.size == 0:
        return None
    return int(hits[0])


def match_observations(
    ch_points: Sequence[CHObservation],
    sh_points: Sequence[SHObservation],
    method: str,
    *,
    chunk_size: int = DEFAULT_MATCH_CHUNK,
    progress: ProgressReporter | None = None,
    logger: logging.Logger | None = None,
) -> list[Observation]:
    if method not in (IDENTIFIER, COORDINATES):
        raise ConfigError(f"Unknown matching method: {method!r}")
    progress = progress or ProgressReporter()
    total = len(ch_points)
    progress.update(0.0, "Matching CH and SH points...")

    matched: list[Observation] = []
    if method == IDENTIFIER:
        lookup = _identifier_index(sh_points)
        for index, ch in enumerate(ch_points):
            if index % chunk_size == 0:
                progress.update(index / total, f"Matched {index} / {total} points")
            sh = lookup.get(ch.nogrid) if ch.nogrid else None
            if sh is not None:
                matched.append(_combine(ch, sh))
    else:
        sh_lats = np.array([sh.lat for sh in sh_points], dtype=float)
        sh_lons = np.array([sh.lon for sh in sh_points], dtype=float)
        for index, ch in enumerate(ch_points):
            if index % chunk_size == 0:
                progress.update(index / total, f"Matched {index} / {total} points")
            hit = first_coordinate_match(ch, sh_lats, sh_lons)
            if hit is not None:
                matched.append(_combine(ch, sh_points[hit]))

    progress.update(1.0, f"Matched {len(matched)} points")
    log_event(
        logger,
        f"matched {len(matched)} of {total} CH points by {method}",
        stage=STAGE,
        event="POINTS_MATCHED",
        status="ok",
        rows_in=total,
        rows_out=len(matched),
        rows_dropped=total - len(matched),
    )
    return matched
