# progress.py
# Route progress, ETA and waypoint helpers.
# Pure functions; the orchestrator feeds them the current sample.

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from .geo_utils import PolylineIndex, haversine_distance
from .models import Coord, NavigationStep, Waypoint
from .nav_config import FALLBACK_SPEED_KMH


WAYPOINT_WEIGHT = 80.0   # share of progress earned by completed waypoints
SEGMENT_WEIGHT = 20.0    # share earned by distance along the route line


# ---------------------------------------------------------------------------
# Waypoints
# ---------------------------------------------------------------------------

def sort_waypoints(waypoints: Iterable[Waypoint]) -> List[Waypoint]:
    return sorted(waypoints, key=lambda wp: wp.order)


def is_waypoint_done(waypoint: Waypoint, completed_ids: Iterable[str] = ()) -> bool:
    return waypoint.is_completed or waypoint.id in completed_ids


def find_next_waypoint(
    waypoints: Sequence[Waypoint],
    completed_ids: Iterable[str] = (),
) -> Optional[Waypoint]:
    """
    First waypoint by order that is not completed.

    Returns:
        The waypoint, or None if all are completed or the list is empty.
    """
    done = set(completed_ids)
    for wp in sort_waypoints(waypoints):
        if not is_waypoint_done(wp, done):
            return wp
    return None


def is_near_waypoint(position: Coord, waypoint: Waypoint, threshold_m: float = 100.0) -> bool:
    return haversine_distance(position, waypoint.coordinates) <= threshold_m


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

def route_line_fraction(position: Coord, geometry: Optional[Sequence[Coord]]) -> float:
    """Share of the route line already covered, in [0, 1]; 0 without a line."""
    if not geometry or len(geometry) < 2:
        return 0.0
    line = PolylineIndex(geometry)
    if line.length <= 0:
        return 0.0
    return min(1.0, line.locate(position).along / line.length)


def calculate_route_progress(
    position: Coord,
    geometry: Optional[Sequence[Coord]],
    waypoints: Sequence[Waypoint],
    completed_ids: Iterable[str] = (),
    *,
    line_fraction: Optional[float] = None,
) -> float:
    """
    Overall completion percentage in [0, 100].

    Completed waypoints contribute up to 80 %, the projection of the position
    along the route line up to the remaining 20 %. A caller that has already
    projected the position passes line_fraction instead of the geometry work.
    """
    total = len(waypoints)
    if total == 0:
        return 0.0

    done_ids = set(completed_ids)
    done = sum(1 for wp in waypoints if is_waypoint_done(wp, done_ids))
    if done == total:
        return 100.0

    if line_fraction is None:
        line_fraction = route_line_fraction(position, geometry)
    progress = done / total * WAYPOINT_WEIGHT + min(1.0, line_fraction) * SEGMENT_WEIGHT

    return max(0.0, min(100.0, progress))


def get_remaining_distance(
    position: Coord,
    steps: Sequence[NavigationStep],
    current_step_index: int,
) -> float:
    """Sum of step distances from the current step on, minus what is already covered."""
    remaining = sum(step.distance for step in steps[current_step_index:])

    if 0 <= current_step_index < len(steps):
        step = steps[current_step_index]
        to_maneuver = haversine_distance(position, step.maneuver.location)
        if to_maneuver < step.distance:
            remaining -= step.distance - to_maneuver

    return max(0.0, remaining)


# ---------------------------------------------------------------------------
# ETA
# ---------------------------------------------------------------------------

def calculate_eta(
    distance_m: float,
    speed_mps: Optional[float] = None,
    fallback_speed_kmh: float = FALLBACK_SPEED_KMH,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Estimated arrival time for the given distance.

    Args:
        distance_m:         Remaining distance in metres.
        speed_mps:          Current speed; None or 0 uses the fallback.
        fallback_speed_kmh: Speed assumed without a usable GPS speed.
        now:                Reference time, defaults to datetime.now().
    """
    now = now or datetime.now()
    speed = speed_mps if speed_mps and speed_mps > 0 else fallback_speed_kmh * 1000 / 3600
    return now + timedelta(seconds=distance_m / speed)


def format_eta(eta: datetime) -> str:
    """12-hour clock, zero-padded minutes: '2:05 PM', midnight is '12:00 AM'."""
    period = "PM" if eta.hour >= 12 else "AM"
    return f"{eta.hour % 12 or 12}:{eta.minute:02d} {period}"


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{int(round(meters))}m"
    return f"{meters / 1000:.1f}km"


def format_duration(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
