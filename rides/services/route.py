"""
Route representation built from Google encoded polylines.

A route is an ordered list of (lat, lng) points. Besides decoding, it
answers where an arbitrary coordinate projects onto the path and how far
along the path (as a fraction of its total length) that projection lies.
"""

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import polyline

from .exceptions import DegeneratePathError, MalformedPolylineError
from .geometry import DistanceService

LatLng = Tuple[float, float]

POLYLINE_PRECISION = 5

# Encoded polylines only use the printable range '?' (63) to '~' (126)
_MIN_POLYLINE_CHAR = 63
_MAX_POLYLINE_CHAR = 126


@dataclass
class ProjectedPoint:
    """Where a query point lands on a route."""
    latitude: float
    longitude: float
    fraction: float  # 0.0 at the route origin, 1.0 at its destination
    distance_km: float  # from the query point to the projection
    segment_index: int

    @property
    def coords(self) -> LatLng:
        return (self.latitude, self.longitude)


def decode(encoded: str) -> List[LatLng]:
    """
    Decode a Google encoded polyline (1e-5 precision).

    Raises:
        MalformedPolylineError: If the string is not a valid polyline
    """
    if encoded is None:
        raise MalformedPolylineError("Polyline is missing")
    if not isinstance(encoded, str):
        raise MalformedPolylineError(f"Polyline must be a string, got {type(encoded).__name__}")
    if not encoded:
        return []

    for ch in encoded:
        if not _MIN_POLYLINE_CHAR <= ord(ch) <= _MAX_POLYLINE_CHAR:
            raise MalformedPolylineError(f"Invalid polyline character {ch!r}")

    try:
        points = polyline.decode(encoded, POLYLINE_PRECISION)
    except (IndexError, ValueError, TypeError) as e:
        raise MalformedPolylineError(f"Polyline is truncated or corrupt: {e}")

    for lat, lng in points:
        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            raise MalformedPolylineError(f"Decoded coordinate out of range: ({lat}, {lng})")

    return [(lat, lng) for lat, lng in points]


def encode(points: Sequence[LatLng]) -> str:
    """Encode (lat, lng) points as a Google polyline."""
    return polyline.encode([(lat, lng) for lat, lng in points], POLYLINE_PRECISION)


def _project_onto_segment(start: LatLng, end: LatLng, point: LatLng) -> LatLng:
    """
    Perpendicular projection of ``point`` onto the segment, clamped to its
    endpoints.

    Works in a local equirectangular plane centered on the segment, which is
    accurate at the segment lengths a road polyline uses.
    """
    scale = math.cos(math.radians((start[0] + end[0]) / 2))
    seg_x = (end[1] - start[1]) * scale
    seg_y = end[0] - start[0]
    length_sq = seg_x ** 2 + seg_y ** 2
    if length_sq == 0:
        return start

    pt_x = (point[1] - start[1]) * scale
    pt_y = point[0] - start[0]
    t = (pt_x * seg_x + pt_y * seg_y) / length_sq
    t = max(0.0, min(1.0, t))

    return (
        start[0] + t * (end[0] - start[0]),
        start[1] + t * (end[1] - start[1]),
    )


class Route:
    """
    An ordered path of coordinates with cumulative lengths.

    Paths with fewer than two points have no defined projection and are
    rejected with ``DegeneratePathError``.
    """

    def __init__(self, points: Sequence[LatLng]):
        self.points = [(float(lat), float(lng)) for lat, lng in points]
        if len(self.points) < 2:
            raise DegeneratePathError(f"Route needs at least 2 points, got {len(self.points)}")

        self.cumulative_km = [0.0]
        for prev, curr in zip(self.points, self.points[1:]):
            self.cumulative_km.append(
                self.cumulative_km[-1] + DistanceService.distance_between(prev, curr)
            )

    @classmethod
    def from_polyline(cls, encoded: str) -> 'Route':
        return cls(decode(encoded))

    @property
    def total_length_km(self) -> float:
        return self.cumulative_km[-1]

    @property
    def origin(self) -> LatLng:
        return self.points[0]

    @property
    def destination(self) -> LatLng:
        return self.points[-1]

    def closest_point(self, latitude: float, longitude: float) -> ProjectedPoint:
        """
        Find the point on the route closest to the given coordinate.

        Every segment is considered; the projection with the smallest
        Haversine distance wins, and earlier segments win ties.
        """
        query = (latitude, longitude)
        best = None

        for index, (start, end) in enumerate(zip(self.points, self.points[1:])):
            projected = _project_onto_segment(start, end, query)
            distance = DistanceService.distance_between(query, projected)
            if best is None or distance < best[0]:
                best = (distance, index, projected)

        distance, index, projected = best
        total = self.total_length_km
        if total > 0:
            along = self.cumulative_km[index] + DistanceService.distance_between(
                self.points[index], projected
            )
            fraction = min(1.0, along / total)
        else:
            fraction = 0.0

        return ProjectedPoint(
            latitude=projected[0],
            longitude=projected[1],
            fraction=fraction,
            distance_km=distance,
            segment_index=index,
        )


def closest_point_on_path(path: Sequence[LatLng], point: LatLng) -> Tuple[LatLng, float]:
    """
    Project ``point`` onto ``path``.

    Returns:
        Tuple of the projected (lat, lng) and its fraction along the path

    Raises:
        DegeneratePathError: If the path has fewer than two points
    """
    projection = Route(path).closest_point(point[0], point[1])
    return projection.coords, projection.fraction
