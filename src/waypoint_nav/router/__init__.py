# Navigation & route-progress engine.
# Re-exports the public API so callers import from waypoint_nav.router
# without knowing internal file names.

from ..errors import (
    NavigationError,
    PathComputationFailed,
    PositionError,
    PositionPermissionDenied,
    PositionTimeout,
    PositionUnavailable,
    SpeechFailed,
)
from .models import (
    Coord,
    Maneuver,
    NavigationState,
    NavigationStep,
    PathResult,
    Position,
    Route,
    RouteStatus,
    Waypoint,
)
from .nav_config import NavConfig
from .navigator import NavigationSystem
from .path_provider import OSRMPathProvider, PathProvider, StraightLinePathProvider
from .position_source import NmeaPositionSource, PositionSource, SimulatedPositionSource
from .route_tracker import PathIndex, compute_navigation_state

__all__ = [
    "NavigationError", "PathComputationFailed", "PositionError",
    "PositionPermissionDenied", "PositionTimeout", "PositionUnavailable", "SpeechFailed",
    "Coord", "Maneuver", "NavigationState", "NavigationStep", "PathResult",
    "Position", "Route", "RouteStatus", "Waypoint",
    "NavConfig",
    "NavigationSystem",
    "OSRMPathProvider", "PathProvider", "StraightLinePathProvider",
    "NmeaPositionSource", "PositionSource", "SimulatedPositionSource",
    "PathIndex", "compute_navigation_state",
]
