# nav_config.py
# All tuneable constants in one place.
# Pass a NavConfig instance to every module that needs settings.

import os
from dataclasses import dataclass
from typing import Optional


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

FALLBACK_SPEED_KMH: float = 40.0        # urban driving speed when GPS gives none
REROUTE_DEBOUNCE_S: float = 2.0

# Voice tiers, metres to the next maneuver
ADVANCE_WINDOW_M: tuple = (150.0, 200.0)
IMMEDIATE_THRESHOLD_M: float = 50.0


# ---------------------------------------------------------------------------
# Main config
# ---------------------------------------------------------------------------

@dataclass
class NavConfig:
    # Progress tracking
    off_route_threshold_m: float = 100.0        # distance from route line → off-route
    arrival_threshold_m: float = 50.0           # auto-complete the next waypoint
    manual_complete_threshold_m: float = 100.0  # operator may complete by hand
    fallback_speed_kmh: float = FALLBACK_SPEED_KMH

    # Rerouting
    reroute_debounce_s: float = REROUTE_DEBOUNCE_S

    # Voice
    voice_enabled: bool = True
    voice_rate: int = 165
    voice_volume: float = 1.0
    voice_language: str = "en-AU"
    advance_window_m: tuple = ADVANCE_WINDOW_M
    immediate_threshold_m: float = IMMEDIATE_THRESHOLD_M

    # Path provider
    osrm_profile: str = "driving"
    osrm_timeout_s: float = 5.0

    # Logging
    log_dir: Optional[str] = None              # None disables the session event log
    session_filename: str = "nav_session.jsonl"

    @property
    def session_filepath(self) -> Optional[str]:
        if self.log_dir is None:
            return None
        return os.path.join(self.log_dir, self.session_filename)
