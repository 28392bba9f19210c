# path_provider.py
# Path computation adapter: talks to OSRM over HTTP and returns a PathResult.
# Knows nothing about navigation state; the reroute controller calls it.

import logging
import os
from typing import List, Optional, Sequence

import requests
from dotenv import load_dotenv

from ..errors import PathComputationFailed
from .geo_utils import calculate_bearing, compass_direction, get_turn_instruction, haversine_distance
from .models import Coord, Maneuver, NavigationStep, PathResult

logger = logging.getLogger(__name__)

# Read OSRM base URL from environment
# Example in .env:
# OSRM_BASE_URL=http://router.project-osrm.org
load_dotenv()
OSRM_BASE_URL = os.getenv("OSRM_BASE_URL")


class PathProvider:
    """Interface: compute a path through the given coordinates, in order."""

    def compute_path(self, coordinates: Sequence[Coord]) -> PathResult:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Instruction text
# ---------------------------------------------------------------------------

def build_instruction(maneuver_type: str, modifier: Optional[str] = None, road_name: Optional[str] = None) -> str:
    """
    Human-readable instruction for an OSRM maneuver.

    Args:
        maneuver_type: OSRM maneuver type ("turn", "depart", "arrive", ...).
        modifier:      Direction modifier ("left", "slight right", ...).
        road_name:     Name of the road after the maneuver.
    """
    onto = f" onto {road_name}" if road_name else ""
    direction = modifier or "straight"

    if maneuver_type == "depart":
        return f"Head out on {road_name}" if road_name else "Depart"
    if maneuver_type == "arrive":
        return "You have arrived at your destination"
    if maneuver_type in ("roundabout", "rotary"):
        return f"Enter the roundabout and exit{onto}"
    if maneuver_type == "merge":
        return f"Merge{onto}"
    if maneuver_type in ("continue", "new name"):
        return f"Continue{onto}"
    if direction == "uturn":
        return "Make a U-turn"
    if direction == "straight":
        return f"Continue straight{onto}"
    return f"Turn {direction}{onto}"


# ---------------------------------------------------------------------------
# OSRM client
# ---------------------------------------------------------------------------

class OSRMPathProvider(PathProvider):
    """
    OSRM /route client returning full geometry and turn-by-turn steps.

    Args:
        base_url: OSRM server; defaults to the OSRM_BASE_URL environment variable.
        profile:  "driving" | "walking" | "cycling".
        timeout:  Seconds to wait for OSRM before giving up.
        session:  Optional requests.Session (connection reuse, tests).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        profile: str = "driving",
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or OSRM_BASE_URL or "").rstrip("/")
        self.profile = profile
        self.timeout = timeout
        self.session = session or requests.Session()

        if not self.base_url:
            raise ValueError("OSRM base URL not set. Set OSRM_BASE_URL in the .env file.")

    @staticmethod
    def format_coordinates(coords: Sequence[Coord]) -> str:
        """Convert coordinates to OSRM format 'lon,lat;lon,lat;...'"""
        return ";".join(f"{c.lon},{c.lat}" for c in coords)

    def compute_path(self, coordinates: Sequence[Coord]) -> PathResult:
        if len(coordinates) < 2:
            raise PathComputationFailed("At least two coordinates are required to compute a path.")

        url = f"{self.base_url}/route/v1/{self.profile}/{self.format_coordinates(coordinates)}"
        try:
            response = self.session.get(
                url,
                params={
                    "steps": "true",
                    "geometries": "geojson",
                    "overview": "full",
                },
                timeout=self.timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise PathComputationFailed(f"OSRM request failed: {e}") from e

        if data.get("code") != "Ok":
            raise PathComputationFailed(f"OSRM error: {data.get('message', data.get('code', 'Unknown error'))}")
        if not data.get("routes"):
            raise PathComputationFailed("OSRM returned no route.")

        result = self.parse_route(data["routes"][0])
        logger.info(f"OSRM path: {len(result.steps)} steps, {result.distance:.0f} m, {result.duration:.0f} s.")
        return result

    @staticmethod
    def parse_route(route: dict) -> PathResult:
        """Normalize one OSRM route object into a PathResult."""
        steps: List[NavigationStep] = []
        for leg in route.get("legs", []):
            for step in leg.get("steps", []):
                m = step["maneuver"]
                road_name = step.get("name") or None
                steps.append(NavigationStep(
                    instruction=build_instruction(m.get("type", ""), m.get("modifier"), road_name),
                    distance=float(step.get("distance", 0.0)),
                    duration=float(step.get("duration", 0.0)),
                    geometry=tuple(Coord.from_pair(c) for c in step.get("geometry", {}).get("coordinates", [])),
                    maneuver=Maneuver(
                        type=m.get("type", ""),
                        location=Coord.from_pair(m["location"]),
                        modifier=m.get("modifier"),
                    ),
                ))

        return PathResult(
            geometry=tuple(Coord.from_pair(c) for c in route.get("geometry", {}).get("coordinates", [])),
            distance=float(route.get("distance", 0.0)),
            duration=float(route.get("duration", 0.0)),
            steps=tuple(steps),
        )


# ---------------------------------------------------------------------------
# Offline straight-line provider
# ---------------------------------------------------------------------------

_TURN_MODIFIERS = {
    "Turn sharp right": "sharp right",
    "Turn right": "right",
    "Turn sharp left": "sharp left",
    "Turn left": "left",
    "Go straight": "straight",
}


class StraightLinePathProvider(PathProvider):
    """
    Connects the coordinates with straight segments; no network needed.

    Emits a depart step, one turn step per intermediate coordinate and an
    arrive step. Useful for demos and when no routing server is reachable.

    Args:
        speed_kmh: Travel speed used for step durations.
    """

    def __init__(self, speed_kmh: float = 40.0) -> None:
        self.speed_mps = speed_kmh * 1000 / 3600

    def compute_path(self, coordinates: Sequence[Coord]) -> PathResult:
        coords = list(coordinates)
        if len(coords) < 2:
            raise PathComputationFailed("At least two coordinates are required to compute a path.")

        steps: List[NavigationStep] = []
        for i in range(len(coords) - 1):
            start, end = coords[i], coords[i + 1]
            bearing = calculate_bearing(start, end)
            length = haversine_distance(start, end)

            if i == 0:
                instruction = f"Head {compass_direction(bearing)}"
                maneuver = Maneuver(type="depart", location=start)
            else:
                prev_bearing = calculate_bearing(coords[i - 1], start)
                instruction = get_turn_instruction(bearing - prev_bearing)
                maneuver = Maneuver(type="turn", location=start, modifier=_TURN_MODIFIERS[instruction])

            steps.append(NavigationStep(
                instruction=instruction,
                distance=length,
                duration=length / self.speed_mps,
                geometry=(start, end),
                maneuver=maneuver,
            ))

        steps.append(NavigationStep(
            instruction=build_instruction("arrive"),
            distance=0.0,
            duration=0.0,
            geometry=(coords[-1],),
            maneuver=Maneuver(type="arrive", location=coords[-1]),
        ))

        total = sum(s.distance for s in steps)
        return PathResult(
            geometry=tuple(coords),
            distance=total,
            duration=total / self.speed_mps,
            steps=tuple(steps),
        )
