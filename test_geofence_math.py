"""
Distance, containment and coordinate helpers.
"""

import math

import pytest

from core.exceptions import InvalidCoordinate
from models.coordinate import Coordinate, GeofenceDefinition, GeofenceSource
from services.containment import check
from utils.geofence import (
    accuracy_description,
    destination_point,
    distance,
    format_coordinates,
    google_maps_url,
    validate_coordinate,
)

HQ = Coordinate(latitude=38.9931538759034, longitude=-76.9428334513501)


def _fence(radius: float) -> GeofenceDefinition:
    return GeofenceDefinition(
        name="Head Office", center=HQ, radius_meters=radius, source=GeofenceSource.BRANCH
    )


def test_distance_to_self_is_zero():
    assert distance(HQ, HQ) == 0


def test_distance_is_symmetric():
    other = Coordinate(latitude=40.7128, longitude=-74.0060)
    assert distance(HQ, other) == pytest.approx(distance(other, HQ))


def test_one_kilometre_along_meridian():
    a = Coordinate(latitude=0.0, longitude=0.0)
    b = Coordinate(latitude=0.00899322, longitude=0.0)
    assert distance(a, b) == pytest.approx(1000.0, abs=1.0)


def test_antipodal_points_are_half_circumference():
    a = Coordinate(latitude=0.0, longitude=0.0)
    b = Coordinate(latitude=0.0, longitude=180.0)
    assert distance(a, b) == pytest.approx(math.pi * 6371000, rel=1e-9)


def test_destination_point_round_trips_distance():
    for bearing in (0, 45, 90, 180, 270):
        target = destination_point(HQ, bearing, 500)
        assert distance(HQ, target) == pytest.approx(500, abs=0.01)


def test_destination_point_wraps_longitude():
    near_antimeridian = Coordinate(latitude=0.0, longitude=179.999)
    target = destination_point(near_antimeridian, 90, 1000)
    assert -180 <= target.longitude < 180
    assert target.longitude < 0


@pytest.mark.parametrize(
    "lat,lng",
    [(91, 0), (-90.0001, 0), (0, 180.5), (0, -181), (float("nan"), 0), (0, float("inf"))],
)
def test_out_of_range_coordinates_raise(lat, lng):
    with pytest.raises(InvalidCoordinate) as exc_info:
        distance(Coordinate(latitude=lat, longitude=lng), HQ)
    assert exc_info.value.longitude == lng


def test_range_limits_are_valid():
    validate_coordinate(Coordinate(latitude=90, longitude=180))
    validate_coordinate(Coordinate(latitude=-90, longitude=-180))


def test_center_point_is_inside():
    result = check(HQ, _fence(250))
    assert result.is_within
    assert result.distance_meters == 0
    assert result.radius_meters == 250
    assert result.geofence_name == "Head Office"
    assert result.source == GeofenceSource.BRANCH


def test_boundary_is_inclusive():
    fence = _fence(250)
    on_edge = destination_point(HQ, 90, 250)
    d = distance(on_edge, HQ)
    # Radius set to the exact computed distance so float noise cannot decide
    assert check(on_edge, _fence(d)).is_within
    assert not check(on_edge, _fence(d - 1e-6)).is_within
    assert check(destination_point(HQ, 90, 249.9), fence).is_within
    assert not check(destination_point(HQ, 90, 250.1), fence).is_within


def test_check_rejects_invalid_point():
    with pytest.raises(InvalidCoordinate):
        check(Coordinate(latitude=100, longitude=0), _fence(250))


def test_display_helpers():
    point = Coordinate(latitude=38.9931538759034, longitude=-76.9428334513501)
    assert format_coordinates(point) == "Lat: 38.993154, Long: -76.942833"
    assert format_coordinates(point, with_labels=False) == "38.993154, -76.942833"
    assert google_maps_url(point) == (
        "https://www.google.com/maps?q=38.9931538759034,-76.9428334513501"
    )
    assert accuracy_description(5).startswith("Excellent")
    assert accuracy_description(10).startswith("Good")
    assert accuracy_description(75).startswith("Fair")
    assert accuracy_description(100).startswith("Poor")
