from models.coordinate import ContainmentResult, Coordinate, GeofenceDefinition
from utils.geofence import distance


def check(point: Coordinate, fence: GeofenceDefinition) -> ContainmentResult:
    """
    Classify `point` against a circular geofence.

    Every check-in, check-out, geofence check and presence tick goes through
    here so the boundary rule is the same everywhere: a point exactly on the
    boundary counts as inside. Raises InvalidCoordinate for an out-of-range
    point or center.
    """
    d = distance(point, fence.center)
    return ContainmentResult(
        is_within=d <= fence.radius_meters,
        distance_meters=d,
        radius_meters=fence.radius_meters,
        geofence_name=fence.name,
        source=fence.source,
    )
