# utils/geofence.py

import math
from math import asin, atan2, cos, degrees, radians, sin, sqrt

from core.exceptions import InvalidCoordinate
from models.coordinate import Coordinate

EARTH_RADIUS_M = 6371000


def validate_coordinate(coord: Coordinate) -> Coordinate:
    lat, lng = coord.latitude, coord.longitude
    if (
        not math.isfinite(lat)
        or not math.isfinite(lng)
        or not -90 <= lat <= 90
        or not -180 <= lng <= 180
    ):
        raise InvalidCoordinate(lat, lng)
    return coord


def haversine_dist(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    R = EARTH_RADIUS_M
    φ1, φ2 = radians(lat1), radians(lat2)
    Δφ = radians(lat2 - lat1)
    Δλ = radians(lng2 - lng1)

    a = sin(Δφ/2)**2 + cos(φ1) * cos(φ2) * sin(Δλ/2)**2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return R * c


def distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two validated coordinates."""
    validate_coordinate(a)
    validate_coordinate(b)
    return haversine_dist(a.latitude, a.longitude, b.latitude, b.longitude)


def destination_point(
    origin: Coordinate, bearing_degrees: float, distance_m: float
) -> Coordinate:
    """
    Point reached by travelling `distance_m` from `origin` along the initial
    great-circle bearing (degrees clockwise from north).
    """
    validate_coordinate(origin)
    δ = distance_m / EARTH_RADIUS_M
    θ = radians(bearing_degrees)
    φ1 = radians(origin.latitude)
    λ1 = radians(origin.longitude)

    φ2 = asin(sin(φ1) * cos(δ) + cos(φ1) * sin(δ) * cos(θ))
    λ2 = λ1 + atan2(sin(θ) * sin(δ) * cos(φ1), cos(δ) - sin(φ1) * sin(φ2))

    # Normalise longitude back into [-180, 180)
    lng = (degrees(λ2) + 540) % 360 - 180
    return Coordinate(latitude=degrees(φ2), longitude=lng)


def format_coordinates(coord: Coordinate, with_labels: bool = True) -> str:
    lat = f"{coord.latitude:.6f}"
    lng = f"{coord.longitude:.6f}"
    return f"Lat: {lat}, Long: {lng}" if with_labels else f"{lat}, {lng}"


def accuracy_description(accuracy_m: float) -> str:
    if accuracy_m < 10:
        return "Excellent (within 10 meters)"
    if accuracy_m < 50:
        return "Good (within 50 meters)"
    if accuracy_m < 100:
        return "Fair (within 100 meters)"
    return "Poor (over 100 meters)"


def google_maps_url(coord: Coordinate) -> str:
    return f"https://www.google.com/maps?q={coord.latitude},{coord.longitude}"
