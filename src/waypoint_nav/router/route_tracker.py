# route_tracker.py
# Tracks a position against the active route.
# Everything here is a pure function of (position, route, completed set):
# the orchestrator calls compute_navigation_state() on every GPS update.

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from .geo_utils import ClosestPoint, PolylineIndex, closest_point_on_polyline, haversine_distance
from .models import Coord, NavigationState, NavigationStep, Position, Route
from .nav_config import NavConfig
from .progress import calculate_eta, calculate_route_progress, find_next_waypoint, format_eta

logger = logging.getLogger(__name__)


# A maneuver this far behind the operator still counts as ahead (GPS jitter).
MANEUVER_PASSED_TOLERANCE_M = 5.0


@dataclass(frozen=True)
class StepMatch:
    step_index: int
    distance_to_maneuver: float   # metres


@dataclass(frozen=True)
class PathFix:
    """Everything one sample needs from the path, from a single projection."""
    step: StepMatch
    distance_from_route: Optional[float]   # None without route geometry
    line_fraction: float                    # share of the route line covered, 0..1


# ---------------------------------------------------------------------------
# Step locator
# ---------------------------------------------------------------------------

def _route_line(steps: Sequence[NavigationStep], geometry: Optional[Sequence[Coord]]) -> List[Coord]:
    """The full route geometry, or the step geometries joined end to end."""
    if geometry and len(geometry) >= 2:
        return list(geometry)
    line: List[Coord] = []
    for step in steps:
        for coord in step.geometry:
            if not line or line[-1] != coord:
                line.append(coord)
    return line


class PathIndex:
    """
    One computed path prepared for per-sample tracking.

    Built once per path: the route line index and the offset of every
    maneuver along it. A sample is then projected onto the line once and
    that projection serves the step locator, the off-route check and the
    progress fraction.

    Args:
        steps:    Ordered steps of the path.
        geometry: Full route line; the step geometries are joined if omitted.
    """

    def __init__(
        self,
        steps: Optional[Sequence[NavigationStep]],
        geometry: Optional[Sequence[Coord]] = None,
    ) -> None:
        self._source: Tuple[object, object] = (steps, geometry)
        self.steps: List[NavigationStep] = list(steps or [])
        self.geometry: List[Coord] = list(geometry or [])

        line = _route_line(self.steps, self.geometry)
        self.line: Optional[PolylineIndex] = PolylineIndex(line) if len(line) >= 2 else None
        self.has_route_line = self.line is not None and len(self.geometry) >= 2
        self.maneuver_offsets: Tuple[float, ...] = (
            tuple(self.line.locate(s.maneuver.location).along for s in self.steps)
            if self.line is not None else ()
        )

    @classmethod
    def for_route(cls, route: Route) -> "PathIndex":
        return cls(route.navigation_steps, route.geometry)

    def matches(self, route: Route) -> bool:
        """True while the route still carries the path this index was built from."""
        steps, geometry = self._source
        return (
            steps is route.navigation_steps
            and geometry is route.geometry
            and len(self.steps) == len(route.navigation_steps or [])
            and len(self.geometry) == len(route.geometry or [])
        )

    def track(self, position: Coord) -> PathFix:
        located = self.line.locate(position) if self.line is not None else None
        step = self._match_step(position, located)

        if self.has_route_line:
            distance = located.distance
            fraction = located.along / self.line.length if self.line.length > 0 else 0.0
        elif self.geometry:
            distance = haversine_distance(position, self.geometry[0])
            fraction = 0.0
        else:
            distance = None
            fraction = 0.0
        return PathFix(step=step, distance_from_route=distance, line_fraction=min(1.0, fraction))

    def _match_step(self, position: Coord, located: Optional[ClosestPoint]) -> StepMatch:
        if not self.steps:
            return StepMatch(0, 0.0)

        distances = [haversine_distance(position, s.maneuver.location) for s in self.steps]
        nearest = min(range(len(self.steps)), key=distances.__getitem__)
        if located is None:
            return StepMatch(nearest, distances[nearest])

        travelled = located.along
        chosen = len(self.steps) - 1
        for i, offset in enumerate(self.maneuver_offsets):
            if offset >= travelled - MANEUVER_PASSED_TOLERANCE_M:
                chosen = i
                break

        if nearest < chosen:
            logger.debug(
                f"Nearest maneuver (step {nearest}) is behind the operator; "
                f"using step {chosen} ahead."
            )
        return StepMatch(chosen, distances[chosen])


def find_current_step(
    position: Coord,
    steps: Sequence[NavigationStep],
    geometry: Optional[Sequence[Coord]] = None,
) -> StepMatch:
    """
    Find the active step: the first one whose maneuver is still ahead.

    Position and maneuvers are projected onto the route line and compared by
    distance travelled along it, so a maneuver that was just passed is never
    picked again even if it is still the closest one.

    Args:
        position: Current coordinate.
        steps:    Ordered steps of the current path.
        geometry: Full route line; the step geometries are used if omitted.

    Returns:
        StepMatch with the step index and great-circle distance to its maneuver.
    """
    return PathIndex(steps, geometry).track(position).step


# ---------------------------------------------------------------------------
# Off-route detector
# ---------------------------------------------------------------------------

def is_off_route(
    position: Coord,
    geometry: Optional[Sequence[Coord]],
    threshold_m: float = 100.0,
) -> bool:
    """True if the position is farther than threshold_m from the route line."""
    if not geometry:
        return False
    return closest_point_on_polyline(position, geometry).distance > threshold_m


# ---------------------------------------------------------------------------
# Full derived state
# ---------------------------------------------------------------------------

def compute_navigation_state(
    position: Position,
    route: Route,
    completed_ids: Iterable[str] = (),
    *,
    is_navigating: bool = True,
    is_rerouting: bool = False,
    config: Optional[NavConfig] = None,
    now: Optional[datetime] = None,
    index: Optional[PathIndex] = None,
) -> NavigationState:
    """
    Derive the complete NavigationState for one position sample.

    Does not mutate the route. Calling it twice with the same arguments
    returns equal states. Pass the PathIndex of the route's current path to
    skip rebuilding it; a stale one is ignored.
    """
    config = config or NavConfig()
    here = position.coordinates
    done = set(completed_ids) | {wp.id for wp in route.waypoints if wp.is_completed}

    if index is None or not index.matches(route):
        index = PathIndex.for_route(route)
    fix = index.track(here)

    steps = index.steps
    instruction = steps[fix.step.step_index].instruction if steps else ""

    next_wp = find_next_waypoint(route.waypoints, done)
    if next_wp is not None:
        dist_wp = haversine_distance(here, next_wp.coordinates)
        eta = format_eta(
            calculate_eta(dist_wp, position.speed, config.fallback_speed_kmh, now=now)
        )
    else:
        dist_wp = 0.0
        eta = None

    off_route = fix.distance_from_route is not None and fix.distance_from_route > config.off_route_threshold_m

    return NavigationState(
        is_navigating=is_navigating,
        current_step_index=fix.step.step_index,
        current_instruction=instruction,
        distance_to_next_maneuver=fix.step.distance_to_maneuver,
        next_waypoint=replace(next_wp) if next_wp is not None else None,
        distance_to_next_waypoint=dist_wp,
        eta_to_next_waypoint=eta,
        route_progress=calculate_route_progress(
            here, route.geometry, route.waypoints, done, line_fraction=fix.line_fraction,
        ),
        is_off_route=off_route,
        is_rerouting=is_rerouting,
        completed_waypoint_ids=tuple(wp.id for wp in route.waypoints if wp.id in done),
    )
