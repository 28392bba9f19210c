# waypoint_monitor.py
# Tracks which waypoints are completed and detects arrival.
# Completion itself is deferred by the orchestrator; the pending set keeps a
# waypoint from being queued twice within one pass.

import logging
from datetime import datetime
from typing import Optional, Sequence, Set

from .geo_utils import haversine_distance
from .models import Coord, Waypoint
from .nav_config import NavConfig
from .progress import find_next_waypoint

logger = logging.getLogger(__name__)


class WaypointMonitor:
    """
    Completion bookkeeping for one navigation session.

    Usage:
        monitor = WaypointMonitor(config)
        nxt = monitor.find_next_waypoint(route.waypoints)
        if monitor.check_arrival(position, nxt):
            ...  # queue monitor.mark_completed(nxt, now)
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        self.completed_ids: Set[str] = set()
        self.pending_ids: Set[str] = set()

    def reset(self) -> None:
        self.completed_ids.clear()
        self.pending_ids.clear()

    def is_done(self, waypoint: Waypoint) -> bool:
        return waypoint.is_completed or waypoint.id in self.completed_ids

    def find_next_waypoint(self, waypoints: Sequence[Waypoint]) -> Optional[Waypoint]:
        return find_next_waypoint(waypoints, self.completed_ids)

    def all_completed(self, waypoints: Sequence[Waypoint]) -> bool:
        return bool(waypoints) and all(self.is_done(wp) for wp in waypoints)

    # ------------------------------------------------------------------
    # Arrival
    # ------------------------------------------------------------------

    def check_arrival(self, position: Coord, waypoint: Optional[Waypoint]) -> bool:
        """
        True if the operator just arrived at waypoint and it should be completed.

        The waypoint is moved to the pending set so later samples in the same
        pass do not queue it again.
        """
        if waypoint is None:
            return False
        if self.is_done(waypoint) or waypoint.id in self.pending_ids:
            return False
        if haversine_distance(position, waypoint.coordinates) >= self.config.arrival_threshold_m:
            return False

        self.pending_ids.add(waypoint.id)
        logger.info(f"Arrived near waypoint {waypoint.id} ({waypoint.name or 'unnamed'}).")
        return True

    def can_complete(self, position: Coord, waypoint: Optional[Waypoint]) -> bool:
        """Looser check for completing a waypoint by hand."""
        if waypoint is None or self.is_done(waypoint):
            return False
        dist = haversine_distance(position, waypoint.coordinates)
        return dist <= self.config.manual_complete_threshold_m

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def mark_completed(self, waypoint: Waypoint, now: Optional[datetime] = None) -> bool:
        """
        Mark a waypoint completed exactly once.

        Returns:
            False if it was already completed.
        """
        self.pending_ids.discard(waypoint.id)
        if waypoint.id in self.completed_ids:
            return False

        self.completed_ids.add(waypoint.id)
        if not waypoint.is_completed:
            waypoint.is_completed = True
            waypoint.actual_arrival = now or datetime.now()
        return True
