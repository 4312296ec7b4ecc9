import pytest

from dryness.common.models import CHObservation, RegionFeature, SHObservation
from dryness.pipeline.classify import SpatialClassifier
from dryness.pipeline.grid import CellLookup, grid_axis, grid_points, interpolate_grid, padded_bbox, parent_cell
from dryness.pipeline.progress import ProgressReporter

SQUARE = {
    "type": "Polygon",
    "coordinates": [[[110.0, -7.9], [110.1, -7.9], [110.1, -7.8], [110.0, -7.8], [110.0, -7.9]]],
}


def _classifier(geometry=SQUARE) -> SpatialClassifier:
    return SpatialClassifier([RegionFeature(index=0, name="Kota", geometry=geometry)])


def test_grid_axis_steps_by_repeated_addition():
    assert grid_axis(0.0, 1.0, 0.25) == [0.0, 0.25, 0.5, 0.75, 1.0]
    assert grid_axis(1.0, 0.0, 0.25) == []


def test_grid_points_are_latitude_major():
    lons, lats = grid_points((0.0, 10.0, 0.5, 11.0), resolution=0.5)

    assert list(zip(lats.tolist(), lons.tolist())) == [
        (10.0, 0.0),
        (10.0, 0.5),
        (10.5, 0.0),
        (10.5, 0.5),
        (11.0, 0.0),
        (11.0, 0.5),
    ]


def test_padded_bbox():
    assert padded_bbox(_classifier()) == pytest.approx((109.95, -7.95, 110.15, -7.75))
    assert padded_bbox(_classifier({"type": "Point", "coordinates": [0, 0]})) is None


def test_parent_cell_is_lower_left_corner():
    assert parent_cell(-7.83, 110.37) == (-7.85, 110.35)
    assert parent_cell(0.01, 0.049) == (0.0, 0.0)


def test_cell_lookup_prefers_first_record_in_cell_then_nearest():
    lookup = CellLookup([0.02, 0.03, 1.0], [0.02, 0.01, 1.0], [1.0, 2.0, 3.0], resolution=0.05)

    assert lookup.value(0.0, 0.0) == 1.0
    assert lookup.value(0.9, 0.9) == 3.0
    assert lookup.value(0.3, 0.3) == 1.0
    assert CellLookup([], [], []).value(0.0, 0.0) is None


def test_interpolate_grid_replicates_parent_cell_values():
    ch = [
        CHObservation(lat=-7.875, lon=110.025, ch=10.0),
        CHObservation(lat=-7.825, lon=110.075, ch=20.0),
    ]
    sh = [SHObservation(lat=-7.85, lon=110.05, sh=100.0)]

    filled = interpolate_grid(ch, sh, _classifier())

    assert len(filled) > 50
    assert all(110.0 - 1e-9 <= p.long <= 110.1 + 1e-9 and -7.9 - 1e-9 <= p.lat <= -7.8 + 1e-9 for p in filled)
    assert all(p.sh == 100.0 for p in filled)
    south_west = [p.ch for p in filled if p.lat < -7.86 and p.long < 110.04]
    north_east = [p.ch for p in filled if p.lat > -7.84 and p.long > 110.06]
    assert south_west and set(south_west) == {10.0}
    assert north_east and set(north_east) == {20.0}


def test_interpolate_grid_needs_both_halves():
    ch = [CHObservation(lat=-7.85, lon=110.05, ch=10.0)]

    assert interpolate_grid(ch, [], _classifier()) == []


def test_interpolate_grid_without_usable_regions_is_empty():
    ch = [CHObservation(lat=-7.85, lon=110.05, ch=10.0)]
    sh = [SHObservation(lat=-7.85, lon=110.05, sh=10.0)]

    assert interpolate_grid(ch, sh, _classifier(None)) == []


def test_interpolate_grid_reports_monotonic_progress():
    updates = []
    ch = [CHObservation(lat=-7.85, lon=110.05, ch=10.0)]
    sh = [SHObservation(lat=-7.85, lon=110.05, sh=90.0)]

    interpolate_grid(
        ch,
        sh,
        _classifier(),
        chunk_size=25,
        progress=ProgressReporter(lambda fraction, message: updates.append((fraction, message))),
    )

    fractions = [fraction for fraction, _ in updates]
    assert fractions == sorted(fractions)
    assert fractions[-1] == 1.0
    assert any(message.startswith("Block fill:") for _, message in updates)
    assert any(message == "Checking Kota..." for _, message in updates)
