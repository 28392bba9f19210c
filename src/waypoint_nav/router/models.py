# models.py
# Shared data structures and enums used across all modules.
# Coordinates are (lon, lat) pairs, matching GeoJSON and the OSRM wire format.

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Tuple


# ---------------------------------------------------------------------------
# Coordinate / position
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coord:
    """Immutable geographic coordinate, longitude first."""
    lon: float
    lat: float

    @staticmethod
    def from_pair(pair: Sequence[float]) -> "Coord":
        return Coord(float(pair[0]), float(pair[1]))

    def to_pair(self) -> Tuple[float, float]:
        return (self.lon, self.lat)


@dataclass(frozen=True)
class Position:
    """A single fix from the position source."""
    coordinates: Coord
    timestamp: float                  # unix seconds
    speed: Optional[float] = None     # m/s
    heading: Optional[float] = None   # degrees
    accuracy: Optional[float] = None  # metres


# ---------------------------------------------------------------------------
# Waypoints and steps
# ---------------------------------------------------------------------------

@dataclass
class Waypoint:
    """A must-visit stop on a route."""
    id: str
    coordinates: Coord
    order: int
    name: Optional[str] = None
    address: Optional[str] = None
    is_completed: bool = False
    estimated_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "coordinates": list(self.coordinates.to_pair()),
            "order": self.order,
            "name": self.name,
            "address": self.address,
            "is_completed": self.is_completed,
            "estimated_arrival": _iso(self.estimated_arrival),
            "actual_arrival": _iso(self.actual_arrival),
            "notes": self.notes,
        }

    @staticmethod
    def from_dict(d: dict) -> "Waypoint":
        return Waypoint(
            id=str(d["id"]),
            coordinates=Coord.from_pair(d["coordinates"]),
            order=int(d["order"]),
            name=d.get("name"),
            address=d.get("address"),
            is_completed=bool(d.get("is_completed", False)),
            estimated_arrival=_parse_iso(d.get("estimated_arrival")),
            actual_arrival=_parse_iso(d.get("actual_arrival")),
            notes=d.get("notes"),
        )


@dataclass(frozen=True)
class Maneuver:
    type: str                        # "depart" | "turn" | "arrive" | ...
    location: Coord
    modifier: Optional[str] = None   # "left" | "right" | "straight" | ...


@dataclass(frozen=True)
class NavigationStep:
    """A single turn-by-turn instruction. Replaced wholesale on reroute."""
    instruction: str
    distance: float                  # metres to next step
    duration: float                  # seconds to next step
    geometry: Tuple[Coord, ...]
    maneuver: Maneuver

    def to_dict(self) -> dict:
        return {
            "instruction": self.instruction,
            "distance": self.distance,
            "duration": self.duration,
            "geometry": [list(c.to_pair()) for c in self.geometry],
            "maneuver": {
                "type": self.maneuver.type,
                "modifier": self.maneuver.modifier,
                "location": list(self.maneuver.location.to_pair()),
            },
        }

    @staticmethod
    def from_dict(d: dict) -> "NavigationStep":
        m = d["maneuver"]
        return NavigationStep(
            instruction=d.get("instruction", ""),
            distance=float(d.get("distance", 0.0)),
            duration=float(d.get("duration", 0.0)),
            geometry=tuple(Coord.from_pair(c) for c in d.get("geometry", [])),
            maneuver=Maneuver(
                type=m.get("type", ""),
                location=Coord.from_pair(m["location"]),
                modifier=m.get("modifier"),
            ),
        )


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------

class RouteStatus(Enum):
    DRAFT      = "draft"
    PUBLISHED  = "published"
    ACTIVE     = "active"
    COMPLETED  = "completed"
    ARCHIVED   = "archived"


@dataclass
class Route:
    """
    A pre-planned multi-stop route.

    geometry / navigation_steps stay None until a path has been computed once.
    Waypoints are sorted by `order` on construction.
    """
    id: str
    waypoints: List[Waypoint] = field(default_factory=list)
    geometry: Optional[List[Coord]] = None
    navigation_steps: Optional[List[NavigationStep]] = None
    distance: Optional[float] = None              # metres
    estimated_duration: Optional[float] = None    # seconds
    name: Optional[str] = None
    status: RouteStatus = RouteStatus.DRAFT
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    actual_duration: Optional[float] = None       # seconds

    def __post_init__(self) -> None:
        self.waypoints = sorted(self.waypoints, key=lambda wp: wp.order)

    def waypoint(self, waypoint_id: str) -> Optional[Waypoint]:
        for wp in self.waypoints:
            if wp.id == waypoint_id:
                return wp
        return None

    def apply_path(self, path: "PathResult") -> None:
        """Replace geometry, steps and totals with a freshly computed path."""
        self.geometry = list(path.geometry)
        self.navigation_steps = list(path.steps)
        self.distance = path.distance
        self.estimated_duration = path.duration

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "waypoints": [wp.to_dict() for wp in self.waypoints],
            "geometry": [list(c.to_pair()) for c in self.geometry] if self.geometry else None,
            "navigation_steps": (
                [s.to_dict() for s in self.navigation_steps]
                if self.navigation_steps is not None else None
            ),
            "distance": self.distance,
            "estimated_duration": self.estimated_duration,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "actual_duration": self.actual_duration,
        }

    @staticmethod
    def from_dict(d: dict) -> "Route":
        geometry = d.get("geometry")
        steps = d.get("navigation_steps")
        return Route(
            id=str(d["id"]),
            name=d.get("name"),
            status=RouteStatus(d.get("status", RouteStatus.DRAFT.value)),
            waypoints=[Waypoint.from_dict(w) for w in d.get("waypoints", [])],
            geometry=[Coord.from_pair(c) for c in geometry] if geometry else None,
            navigation_steps=(
                [NavigationStep.from_dict(s) for s in steps] if steps is not None else None
            ),
            distance=d.get("distance"),
            estimated_duration=d.get("estimated_duration"),
            started_at=_parse_iso(d.get("started_at")),
            completed_at=_parse_iso(d.get("completed_at")),
            actual_duration=d.get("actual_duration"),
        )


@dataclass(frozen=True)
class PathResult:
    """Returned by a PathProvider for one path computation."""
    geometry: Tuple[Coord, ...]
    distance: float                  # metres
    duration: float                  # seconds
    steps: Tuple[NavigationStep, ...] = ()


# ---------------------------------------------------------------------------
# Derived navigation state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NavigationState:
    """Recomputed from scratch on every position sample."""
    is_navigating: bool = False
    current_step_index: int = 0
    current_instruction: str = ""
    distance_to_next_maneuver: float = 0.0
    next_waypoint: Optional[Waypoint] = None
    distance_to_next_waypoint: float = 0.0
    eta_to_next_waypoint: Optional[str] = None
    route_progress: float = 0.0
    is_off_route: bool = False
    is_rerouting: bool = False
    completed_waypoint_ids: Tuple[str, ...] = ()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
