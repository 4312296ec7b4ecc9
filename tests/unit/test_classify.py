import numpy as np

from dryness.common.models import Observation, RegionFeature
from dryness.pipeline.classify import UNASSIGNED, SpatialClassifier, to_arrays


def _square(x0: float, y0: float, x1: float, y1: float) -> list[list[float]]:
    return [[x0, y0], [x1, y0], [x1, y1], [x0, y1], [x0, y0]]


def _region(index: int, name: str, geometry: dict | None) -> RegionFeature:
    return RegionFeature(index=index, name=name, geometry=geometry, properties={"NAME": name})


def _polygon(*rings) -> dict:
    return {"type": "Polygon", "coordinates": list(rings)}


def test_classify_point_inside_and_outside():
    classifier = SpatialClassifier([_region(0, "A", _polygon(_square(0, 0, 10, 10)))])

    assert classifier.classify(5.0, 5.0) == 0
    assert classifier.classify(15.0, 5.0) is None


def test_overlapping_regions_resolve_to_first_in_input_order():
    first = _region(0, "A", _polygon(_square(0, 0, 10, 10)))
    second = _region(1, "B", _polygon(_square(5, 5, 15, 15)))

    assert SpatialClassifier([first, second]).classify(7.0, 7.0) == 0
    assert SpatialClassifier([second, first]).classify(7.0, 7.0) == 0


def test_interior_point_found_regardless_of_region_order():
    regions = [
        _region(0, "A", _polygon(_square(0, 0, 10, 10))),
        _region(1, "B", _polygon(_square(20, 0, 30, 10))),
    ]
    forward = SpatialClassifier(regions)
    backward = SpatialClassifier(list(reversed(regions)))

    assert forward.regions[forward.classify(25.0, 5.0)].name == "B"
    assert backward.regions[backward.classify(25.0, 5.0)].name == "B"


def test_holes_subtract_from_containment():
    donut = _region(0, "A", _polygon(_square(0, 0, 10, 10), _square(4, 4, 6, 6)))
    classifier = SpatialClassifier([donut])

    assert classifier.classify(5.0, 5.0) is None
    assert classifier.classify(2.0, 2.0) == 0


def test_multipolygon_parts_all_count():
    geometry = {
        "type": "MultiPolygon",
        "coordinates": [[_square(0, 0, 1, 1)], [[[5, 5], [6, 5], [6, 6], [5, 6], [5, 5]]]],
    }
    classifier = SpatialClassifier([_region(0, "A", geometry)])

    assert classifier.classify(0.5, 0.5) == 0
    assert classifier.classify(5.5, 5.5) == 0
    assert classifier.classify(3.0, 3.0) is None


def test_boundary_points_are_consistent():
    classifier = SpatialClassifier([_region(0, "A", _polygon(_square(0, 0, 10, 10)))])

    results = {classifier.classify(10.0, 5.0) for _ in range(5)}
    assert len(results) == 1


def test_unusable_geometry_is_isolated_to_its_region():
    regions = [
        _region(0, "Broken", {"type": "Point", "coordinates": [1, 1]}),
        _region(1, "Missing", None),
        _region(2, "Text", "oops"),
        _region(3, "A", _polygon(_square(0, 0, 10, 10))),
    ]
    classifier = SpatialClassifier(regions)

    assert classifier.skipped_regions == ["Broken", "Missing", "Text"]
    assert classifier.invalid[0].region_index == 0
    assert classifier.classify(1.0, 1.0) == 3


def test_self_intersecting_polygon_repaired_or_skipped():
    bowtie = _polygon([[0, 0], [10, 10], [10, 0], [0, 10], [0, 0]])

    repaired = SpatialClassifier([_region(0, "Bowtie", bowtie)], repair_invalid=True)
    strict = SpatialClassifier([_region(0, "Bowtie", bowtie)], repair_invalid=False)

    assert repaired.invalid == []
    assert repaired.classify(2.0, 5.0) == 0
    assert strict.skipped_regions == ["Bowtie"]
    assert strict.classify(2.0, 5.0) is None


def test_bbox_spans_every_region():
    classifier = SpatialClassifier(
        [
            _region(0, "A", _polygon(_square(0, 0, 1, 1))),
            _region(1, "B", _polygon(_square(5, -3, 6, 2))),
        ]
    )

    assert classifier.bbox == (0.0, -3.0, 6.0, 2.0)
    mask = classifier.bbox_mask(np.array([3.0, 7.0]), np.array([0.0, 0.0]))
    assert mask.tolist() == [True, False]


def test_assign_gives_each_point_at_most_one_region():
    classifier = SpatialClassifier(
        [
            _region(0, "A", _polygon(_square(0, 0, 10, 10))),
            _region(1, "B", _polygon(_square(5, 0, 15, 10))),
        ]
    )
    points = [
        Observation(lat=5.0, long=7.0, ch=1, sh=1),
        Observation(lat=5.0, long=12.0, ch=1, sh=1),
        Observation(lat=50.0, long=50.0, ch=1, sh=1),
    ]
    seen = []

    assigned = classifier.assign(*to_arrays(points), on_region=lambda index, region: seen.append(region.name))

    assert assigned.tolist() == [0, 1, UNASSIGNED]
    assert seen == ["A", "B"]


def test_points_in_region_ignores_other_regions():
    classifier = SpatialClassifier(
        [
            _region(0, "A", _polygon(_square(0, 0, 10, 10))),
            _region(1, "B", _polygon(_square(5, 0, 15, 10))),
        ]
    )
    points = [Observation(lat=5.0, long=7.0, ch=1, sh=1), Observation(lat=5.0, long=2.0, ch=1, sh=1)]

    assert classifier.points_in_region(points, 1) == [points[0]]
    assert classifier.points_in_region(points, 0) == points
