# nav_logger.py
# Appends navigation events to a JSON-lines session file.

import json
import logging
import os
from datetime import datetime
from typing import Optional

from .models import NavigationState, Position, Route
from .nav_config import NavConfig

# Standard Python logger: configure at app entry point if needed
logger = logging.getLogger(__name__)


class NavLogger:
    """
    Persists navigation events as JSON lines.

    Disabled when config.log_dir is None.

    Args:
        config: NavConfig instance for file paths and directories.
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        if self.enabled:
            os.makedirs(self.config.log_dir, exist_ok=True)

    @property
    def enabled(self) -> bool:
        return self.config.log_dir is not None

    # ------------------------------------------------------------------
    # Session event logging
    # ------------------------------------------------------------------

    def log_event(self, state: NavigationState, position: Position) -> None:
        """
        Append the state derived for one position sample.

        Args:
            state:    NavigationState from compute_navigation_state().
            position: The sample it was derived from.
        """
        self._append({
            "event": "position",
            "lat": position.coordinates.lat,
            "lon": position.coordinates.lon,
            "speed": position.speed,
            "step_index": state.current_step_index,
            "instruction": state.current_instruction,
            "distance_to_maneuver": round(state.distance_to_next_maneuver, 1),
            "next_waypoint": state.next_waypoint.id if state.next_waypoint else None,
            "distance_to_waypoint": round(state.distance_to_next_waypoint, 1),
            "eta": state.eta_to_next_waypoint,
            "progress": round(state.route_progress, 1),
            "off_route": state.is_off_route,
            "rerouting": state.is_rerouting,
        })

    def log_route_event(self, event: str, route: Route, **extra) -> None:
        """Record a lifecycle event: started, waypoint_completed, rerouted, completed, stopped."""
        entry = {
            "event": event,
            "route_id": route.id,
            "status": route.status.value,
            "step_count": len(route.navigation_steps or []),
        }
        entry.update(extra)
        self._append(entry)

    def _append(self, entry: dict) -> None:
        if not self.enabled:
            return
        entry = {"timestamp": datetime.now().isoformat(), **entry}
        try:
            with open(self.config.session_filepath, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except IOError as e:
            logger.error(f"Failed to write event log: {e}")
