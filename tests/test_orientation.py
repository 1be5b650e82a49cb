import math

import pytest

import orientation
from orientation import analyze_roof_orientation


@pytest.mark.parametrize("azimuth, direction", [
    (0, "N"),
    (22.4, "N"),
    (22.5, "NE"),
    (90, "E"),
    (180, "S"),
    (202.5, "SW"),
    (337.5, "N"),
    (359.9, "N"),
    (-90, "W"),
])
def test_azimuth_to_direction(azimuth, direction):
    assert orientation.azimuth_to_direction(azimuth) == direction


@pytest.mark.parametrize("azimuth, efficiency", [
    (180, 100),
    (200, 100),
    (135, 96),
    (225, 96),
    (90, 82),
    (270, 82),
    (45, 72),
    (0, 55),
])
def test_orientation_efficiency_is_symmetric_about_south(azimuth, efficiency):
    assert orientation.orientation_efficiency(azimuth) == efficiency


def test_quality_labels():
    assert orientation.orientation_quality(100) == "Excellent"
    assert orientation.orientation_quality(92) == "Good"
    assert orientation.orientation_quality(72) == "Fair"
    assert orientation.orientation_quality(55) == "Poor"


@pytest.mark.parametrize("value, rounded", [
    (182.4, 180.0),
    (182.5, 185.0),
    (357.6, 0.0),
])
def test_round_azimuth(value, rounded):
    assert orientation.round_azimuth(value) == rounded


def test_longest_edge_on_south_side_faces_south():
    assert orientation.calculate_azimuth([(0, 0), (10, 0), (10, 6), (0, 6)]) == 180.0


def test_longest_edge_on_north_side_faces_north():
    assert orientation.calculate_azimuth([(0, 6), (10, 6), (10, 0), (0, 0)]) == 0.0


def test_tall_rectangle_faces_east_or_west():
    assert orientation.calculate_azimuth([(0, 0), (0, 10), (4, 10), (4, 0)]) in (90.0, 270.0)


def test_geographic_outline():
    lat = 43.65
    dx = 10 / (111320.0 * math.cos(math.radians(lat)))
    dy = 6 / 111320.0
    ring = [(-79.38, lat), (-79.38 + dx, lat), (-79.38 + dx, lat + dy), (-79.38, lat + dy),
            (-79.38, lat)]
    result = analyze_roof_orientation(ring)
    assert result.azimuth == 180.0
    assert result.direction == "S"
    assert result.source == "geometry"
    assert result.vertex_angles == [90, 90, 90, 90]


def test_override_wins():
    result = analyze_roof_orientation([(0, 0), (10, 0), (10, 6)], override_azimuth=630,
                                      geographic=False)
    assert result.azimuth == 270.0
    assert result.direction == "W"
    assert result.confidence == 100
    assert result.source == "override"


@pytest.mark.parametrize("ring", [
    [],
    [(0, 0), (1, 1)],
    [(0, 0), (1, 1), (2, 2)],
    [(0, 0), (float("nan"), 1), (2, 0)],
])
def test_unusable_outlines_default_to_south(ring):
    result = analyze_roof_orientation(ring, geographic=False)
    assert result.azimuth == 180.0
    assert result.confidence == 0
    assert result.source == "default"


def test_bad_override_defaults_to_south():
    result = analyze_roof_orientation([], override_azimuth="south")
    assert result.azimuth == 180.0
    assert result.source == "default"


def test_confidence_drops_without_a_dominant_edge():
    trapezoid = orientation.azimuth_confidence([(0, 0), (10, 0), (7, 4), (3, 4)])
    square = orientation.azimuth_confidence([(0, 0), (10, 0), (10, 10), (0, 10)])
    assert trapezoid == 100
    assert square < trapezoid


def test_to_dict_round_trip_fields():
    data = analyze_roof_orientation([(0, 0), (10, 0), (10, 6), (0, 6)],
                                    geographic=False).to_dict()
    assert set(data) == {"azimuth", "direction", "efficiency", "quality", "confidence",
                         "vertex_angles", "source"}
