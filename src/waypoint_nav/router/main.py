# main.py
# Entry point. Simulates a GPS loop feeding positions into NavigationSystem.
# In production, replace SimulatedPositionSource with an NmeaPositionSource
# reading your GPS receiver.
#
# Uses OSRM when OSRM_BASE_URL is set (see .env), else straight-line paths.

import logging
from typing import List, Optional

from ..speech.tts import Pyttsx3Speech, SpeechService
from .geo_utils import haversine_distance
from .models import Coord, Position, Route, RouteStatus, Waypoint
from .nav_config import NavConfig
from .navigator import NavigationSystem
from .path_provider import OSRM_BASE_URL, OSRMPathProvider, PathProvider, StraightLinePathProvider
from .position_source import SimulatedPositionSource
from .progress import format_distance

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Config: tweak thresholds or paths here, not inside the modules
# ------------------------------------------------------------------
config = NavConfig(
    off_route_threshold_m=100.0,
    arrival_threshold_m=50.0,
    log_dir="logs",
)

# ------------------------------------------------------------------
# Simulation stops (Sydney CBD)
# ------------------------------------------------------------------
DEMO_STOPS = [
    ("Fire Station",     Coord(151.2093, -33.8688)),
    ("Community Center", Coord(151.2100, -33.8670)),
    ("Town Hall",        Coord(151.2110, -33.8650)),
]


def build_demo_route() -> Route:
    waypoints = [
        Waypoint(id=f"wp-{i}", coordinates=coord, order=i, name=name)
        for i, (name, coord) in enumerate(DEMO_STOPS)
    ]
    return Route(id="demo", name="Demo run", waypoints=waypoints, status=RouteStatus.PUBLISHED)


def simulate_track(geometry: List[Coord], points_per_segment: int = 5, speed_mps: float = 10.0) -> List[Position]:
    """Evenly spaced samples along the geometry, ending on its last vertex."""
    samples: List[Position] = []
    t = 0.0
    for start, end in zip(geometry, geometry[1:]):
        step_s = haversine_distance(start, end) / speed_mps / points_per_segment
        for k in range(points_per_segment):
            f = k / points_per_segment
            coord = Coord(start.lon + (end.lon - start.lon) * f, start.lat + (end.lat - start.lat) * f)
            samples.append(Position(coordinates=coord, timestamp=t, speed=speed_mps))
            t += step_s
    if geometry:
        samples.append(Position(coordinates=geometry[-1], timestamp=t, speed=0.0))
    return samples


def main(
    provider: Optional[PathProvider] = None,
    speech: Optional[SpeechService] = None,
    nav_config: Optional[NavConfig] = None,
    interval_s: float = 0.05,
) -> Route:
    nav_config = nav_config or config

    # 1. Pick a path provider
    if provider is None:
        if OSRM_BASE_URL:
            provider = OSRMPathProvider(profile=nav_config.osrm_profile, timeout=nav_config.osrm_timeout_s)
        else:
            provider = StraightLinePathProvider(speed_kmh=nav_config.fallback_speed_kmh)

    # 2. Compute the initial path
    route = build_demo_route()
    route.apply_path(provider.compute_path([wp.coordinates for wp in route.waypoints]))
    print(f"[Nav] Route ready, {len(route.navigation_steps)} steps, {format_distance(route.distance)}.")

    # 3. Boot the engine
    nav = NavigationSystem(
        route,
        path_provider=provider,
        speech=speech,
        config=nav_config,
        on_waypoint_complete=lambda wp: print(f"  ✓  Waypoint reached: {wp.name}"),
        on_route_complete=lambda r: print(f"  ✓  Route complete in {r.actual_duration:.1f}s."),
        on_error=lambda e: print(f"  ⚠  Location error: {e}"),
    )

    source = SimulatedPositionSource(simulate_track(list(route.geometry)), interval_s=interval_s)
    nav.attach(source)
    source.subscribe(lambda p: print(
        f"  GPS ({p.coordinates.lat:.5f}, {p.coordinates.lon:.5f}) → "
        f"[{nav.state.route_progress:5.1f}%] {nav.state.current_instruction} "
        f"({format_distance(nav.state.distance_to_next_maneuver)})"
    ))

    nav.start_navigation()
    print("\n--- GPS Loop Active ---")
    source.run()
    nav.close()

    print("\n--- Session complete ---")
    if nav_config.log_dir:
        print(f"    Log files written to: {nav_config.log_dir}/")
    return route


if __name__ == "__main__":
    # ------------------------------------------------------------------
    # Logging setup: configure once here, all modules inherit
    # ------------------------------------------------------------------
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    speech = None
    if Pyttsx3Speech.is_supported():
        speech = Pyttsx3Speech(rate=config.voice_rate, volume=config.voice_volume,
                               language=config.voice_language)
    try:
        main(speech=speech)
    finally:
        # Let "Route complete" finish before the worker exits
        if speech is not None:
            speech.close()
