# announcer.py
# Decides whether and what to speak for each position sample.
# Dedup state lives in plain attributes so it can be inspected and reset.

import logging
from concurrent.futures import Future
from typing import Optional

from ..speech.tts import PRIORITY_HIGH, PRIORITY_LOW, SpeechService
from .models import NavigationStep, Waypoint
from .nav_config import NavConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Phrasing
# ---------------------------------------------------------------------------

def format_instruction_for_voice(instruction: str, distance: Optional[float] = None) -> str:
    """
    Natural spoken form of an instruction, prefixed with the distance.

    Args:
        instruction: e.g. "Turn left onto Main St".
        distance:    Metres to the maneuver, None for the bare instruction.
    """
    if distance is None:
        return instruction
    if distance < 50:
        return f"{instruction} now"
    if distance < 100:
        return f"In {int(round(distance))} meters, {instruction.lower()}"
    if distance < 1000:
        return f"In {int(round(distance / 10.0)) * 10} meters, {instruction.lower()}"
    return f"In {distance / 1000:.1f} kilometers, {instruction.lower()}"


def waypoint_arrival_text(name: Optional[str] = None) -> str:
    if name:
        return f"Arriving at {name}"
    return "Arriving at waypoint"


OFF_ROUTE_TEXT = "You are off the planned route. Calculating alternative route."
ROUTE_COMPLETE_TEXT = "You have reached your final destination. Route complete!"
NAVIGATION_STARTED_TEXT = "Navigation started"


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class AnnouncementScheduler:
    """
    Two-tier step announcements plus one-off event announcements.

    Each announce_* method returns the text it spoke, or None when nothing
    was due. Dedup attributes are updated even when voice is disabled.

    Args:
        speech: Speech service; None mutes all output.
        config: NavConfig with voice settings and tier distances.
    """

    def __init__(self, speech: Optional[SpeechService] = None, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        self.speech = speech
        self.enabled = self.config.voice_enabled
        self.reset()

    def reset(self) -> None:
        self.last_advance_step: int = -1
        self.last_immediate_step: int = -1
        self.last_announced_waypoint: Optional[str] = None
        self.off_route_announced: bool = False
        self.route_complete_announced: bool = False

    def reset_steps(self) -> None:
        """Called after a new path replaced the steps."""
        self.last_advance_step = -1
        self.last_immediate_step = -1
        self.off_route_announced = False

    # ------------------------------------------------------------------
    # Step tiers
    # ------------------------------------------------------------------

    def announce_step(
        self,
        step_index: int,
        step: Optional[NavigationStep],
        distance: float,
    ) -> Optional[str]:
        if step is None or not step.instruction:
            return None

        if distance < self.config.immediate_threshold_m:
            if step_index == self.last_immediate_step:
                return None
            self.last_immediate_step = step_index
            self.last_advance_step = step_index
            return self._say(format_instruction_for_voice(step.instruction, distance), PRIORITY_HIGH)

        low, high = self.config.advance_window_m
        if low < distance < high and step_index not in (self.last_advance_step, self.last_immediate_step):
            self.last_advance_step = step_index
            return self._say(format_instruction_for_voice(step.instruction, distance), PRIORITY_LOW)

        return None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def announce_navigation_started(self) -> Optional[str]:
        return self._say(NAVIGATION_STARTED_TEXT, PRIORITY_HIGH)

    def announce_waypoint_arrival(self, waypoint: Waypoint) -> Optional[str]:
        if waypoint.id == self.last_announced_waypoint:
            return None
        self.last_announced_waypoint = waypoint.id
        return self._say(waypoint_arrival_text(waypoint.name), PRIORITY_HIGH)

    def announce_off_route(self) -> Optional[str]:
        if self.off_route_announced:
            return None
        self.off_route_announced = True
        return self._say(OFF_ROUTE_TEXT, PRIORITY_HIGH)

    def clear_off_route(self) -> None:
        self.off_route_announced = False

    def announce_route_complete(self) -> Optional[str]:
        if self.route_complete_announced:
            return None
        self.route_complete_announced = True
        return self._say(ROUTE_COMPLETE_TEXT, PRIORITY_HIGH)

    def cancel(self) -> None:
        if self.speech is None:
            return
        try:
            self.speech.cancel()
        except Exception as e:
            logger.debug(f"Speech cancel failed: {e}")

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _say(self, text: str, priority: str) -> Optional[str]:
        if not self.enabled or self.speech is None:
            logger.debug(f"[voice muted] {text}")
            return text

        logger.info(f"[voice:{priority}] {text}")
        try:
            fut = self.speech.speak(text, priority)
        except Exception as e:
            logger.debug(f"Speech failed: {e}")
            return text
        if isinstance(fut, Future):
            fut.add_done_callback(_log_speech_result)
        return text


def _log_speech_result(fut: Future) -> None:
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        logger.debug(f"Speech failed: {exc}")
