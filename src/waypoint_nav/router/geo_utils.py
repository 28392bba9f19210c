# geo_utils.py
# Pure mathematical / geographic helper functions.
# No side effects; only models are imported from the project.

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import shapely
from shapely.geometry import LineString, Point

from .models import Coord


EARTH_RADIUS_M = 6_371_000.0


def haversine_distance(a: Coord, b: Coord) -> float:
    """
    Great-circle distance between two points in metres.

    Args:
        a, b: Coordinates in decimal degrees.

    Returns:
        Distance in metres. Symmetric, 0 for identical points.
    """
    d_lat = math.radians(b.lat - a.lat)
    d_lon = math.radians(b.lon - a.lon)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat))
        * math.cos(math.radians(b.lat))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def calculate_bearing(a: Coord, b: Coord) -> float:
    """
    Forward azimuth (bearing) from a to b in degrees [0, 360).
    Due north is 0, due east is 90.
    """
    rlat1, rlat2 = math.radians(a.lat), math.radians(b.lat)
    d_lon = math.radians(b.lon - a.lon)
    y = math.sin(d_lon) * math.cos(rlat2)
    x = math.cos(rlat1) * math.sin(rlat2) - math.sin(rlat1) * math.cos(rlat2) * math.cos(d_lon)
    return (math.degrees(math.atan2(y, x)) + 360) % 360


# ---------------------------------------------------------------------------
# Polyline projection
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClosestPoint:
    point: Coord
    distance: float      # metres from the query point
    segment_index: int
    along: float = 0.0   # metres along the polyline up to point


def _haversine_array(lon1, lat1, lon2, lat2) -> np.ndarray:
    """Vectorised haversine_distance over numpy arrays, in metres."""
    lon1, lat1, lon2, lat2 = map(np.radians, (lon1, lat1, lon2, lat2))
    h = (
        np.sin((lat2 - lat1) / 2) ** 2
        + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(h), np.sqrt(1 - h))


def project_onto_segment(point: Coord, start: Coord, end: Coord) -> Coord:
    """Project point onto the segment start→end, clamped to its ends."""
    if start == end:
        return start
    segment = LineString([start.to_pair(), end.to_pair()])
    projected = segment.interpolate(segment.project(Point(point.to_pair())))
    return Coord(projected.x, projected.y)


class PolylineIndex:
    """
    A polyline prepared for repeated nearest-point queries.

    The segment geometries and the cumulative great-circle length up to each
    vertex are built once. Every locate() is then a single vectorised
    projection over all segments.

    Args:
        polyline: Ordered vertices of the line, at least one.

    Raises:
        ValueError: if the polyline has no vertices.
    """

    def __init__(self, polyline: Sequence[Coord]) -> None:
        if not polyline:
            raise ValueError("Polyline has no vertices.")

        self.vertices = tuple(polyline)
        coords = np.array([c.to_pair() for c in self.vertices], dtype=float)

        if len(coords) >= 2:
            self._segments = shapely.linestrings(np.stack([coords[:-1], coords[1:]], axis=1))
            lengths = _haversine_array(coords[:-1, 0], coords[:-1, 1], coords[1:, 0], coords[1:, 1])
        else:
            self._segments = None
            lengths = np.zeros(0)

        self._cumulative = np.concatenate([[0.0], np.cumsum(lengths)])
        self.length = float(self._cumulative[-1])

    def __len__(self) -> int:
        return len(self.vertices)

    def locate(self, point: Coord) -> ClosestPoint:
        """Nearest point on the line. Ties go to the lowest segment index."""
        first = self.vertices[0]
        first_dist = haversine_distance(point, first)
        if self._segments is None:
            return ClosestPoint(point=first, distance=first_dist, segment_index=0)

        query = Point(point.to_pair())
        offsets = shapely.line_locate_point(self._segments, query)
        projected = shapely.get_coordinates(shapely.line_interpolate_point(self._segments, offsets))
        dists = _haversine_array(point.lon, point.lat, projected[:, 0], projected[:, 1])

        i = int(np.argmin(dists))
        if not dists[i] < first_dist:
            return ClosestPoint(point=first, distance=first_dist, segment_index=0)

        best = Coord(float(projected[i, 0]), float(projected[i, 1]))
        along = float(self._cumulative[i]) + haversine_distance(self.vertices[i], best)
        return ClosestPoint(point=best, distance=float(dists[i]), segment_index=i, along=along)


def closest_point_on_polyline(point: Coord, polyline: Sequence[Coord]) -> ClosestPoint:
    """
    Nearest point on a polyline, checked segment by segment.

    Builds a throwaway PolylineIndex; keep one around when the same line is
    queried for every GPS sample.

    Args:
        point:    Query coordinate.
        polyline: Ordered vertices of the line.

    Returns:
        ClosestPoint. Ties go to the lowest segment index.

    Raises:
        ValueError: if the polyline has no vertices.
    """
    return PolylineIndex(polyline).locate(point)


def polyline_length(polyline: Sequence[Coord]) -> float:
    """Total great-circle length of a polyline in metres."""
    return sum(
        haversine_distance(polyline[i], polyline[i + 1])
        for i in range(len(polyline) - 1)
    )


def distance_along_polyline(point: Coord, polyline: Sequence[Coord]) -> float:
    """Metres travelled along the polyline up to the projection of point."""
    return closest_point_on_polyline(point, polyline).along


def get_turn_instruction(bearing_diff: float) -> str:
    """
    Human-readable turn instruction derived from the change in bearing.

    Args:
        bearing_diff: Difference between consecutive bearings in degrees.

    Returns:
        Turn instruction string.
    """
    diff = (bearing_diff + 180) % 360 - 180
    if diff > 45:
        return "Turn sharp right"
    elif diff > 10:
        return "Turn right"
    elif diff < -45:
        return "Turn sharp left"
    elif diff < -10:
        return "Turn left"
    return "Go straight"


def compass_direction(bearing: float) -> str:
    """Eight-point compass name for a bearing in degrees."""
    names = ["north", "northeast", "east", "southeast", "south", "southwest", "west", "northwest"]
    return names[int(((bearing % 360) + 22.5) // 45) % 8]
