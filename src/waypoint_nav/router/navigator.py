# navigator.py
# Public entry point for the navigation engine.
# Owns the session state and wires the specialist modules together.

import logging
import threading
from collections import deque
from dataclasses import replace
from datetime import datetime
from functools import partial
from typing import Callable, Deque, List, Optional

from ..speech.tts import SpeechService
from .announcer import AnnouncementScheduler
from ..errors import PathComputationFailed, PositionError
from .models import Coord, NavigationState, PathResult, Position, Route, RouteStatus, Waypoint
from .nav_config import NavConfig
from .nav_logger import NavLogger
from .path_provider import PathProvider
from .position_source import PositionSource
from .reroute import RerouteController, RerouteState
from .route_tracker import PathIndex, compute_navigation_state
from .waypoint_monitor import WaypointMonitor

logger = logging.getLogger(__name__)


class NavigationSystem:
    """
    High-level navigation facade for one session.

    Typical lifecycle:
        nav = NavigationSystem(route, path_provider=OSRMPathProvider())
        nav.start_navigation()

        # GPS loop (or nav.attach(source)):
        state = nav.update(position)

    Every sample is handled run-to-completion: the NavigationState is derived
    from (position, route, completed set), then the queued side effects
    (voice, waypoint completion, reroute) are drained before update() returns.

    Args:
        route:                The route to follow; geometry/steps may be None.
        path_provider:        Computes new paths when rerouting.
        speech:               Voice output; None mutes announcements.
        config:               Optional NavConfig; defaults to NavConfig().
        on_waypoint_complete: Called with each completed Waypoint.
        on_route_complete:    Called with the Route once all waypoints are done.
        on_error:             Called with PositionError from an attached source.
        clock:                Returns the current datetime.
        timer_factory:        Debounce timer factory, threading.Timer by default.
        executor:             Runs path computations off the sample thread.
    """

    def __init__(
        self,
        route: Route,
        path_provider: Optional[PathProvider] = None,
        speech: Optional[SpeechService] = None,
        config: Optional[NavConfig] = None,
        on_waypoint_complete: Optional[Callable[[Waypoint], None]] = None,
        on_route_complete: Optional[Callable[[Route], None]] = None,
        on_error: Optional[Callable[[PositionError], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        timer_factory: Callable = threading.Timer,
        executor=None,
    ) -> None:
        self.config = config or NavConfig()
        self._route = route
        self._clock = clock or datetime.now
        self._lock = threading.RLock()

        self.on_waypoint_complete = on_waypoint_complete
        self.on_route_complete = on_route_complete
        self.on_error = on_error

        # Specialist modules
        self._monitor = WaypointMonitor(self.config)
        self._announcer = AnnouncementScheduler(speech, self.config)
        self._reroute = RerouteController(
            path_provider,
            request_coordinates=self._reroute_coordinates,
            on_started=self._on_reroute_started,
            on_rerouted=self._on_rerouted,
            on_failed=self._on_reroute_failed,
            debounce_s=self.config.reroute_debounce_s,
            timer_factory=timer_factory,
            executor=executor,
            lock=self._lock,
        )
        self._logger = NavLogger(self.config)

        # Session state
        self._navigating = False
        self._position: Optional[Position] = None
        self._state = NavigationState()
        self._location_error: Optional[PositionError] = None
        self._effects: Deque[Callable[[], object]] = deque()
        self._dirty = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._path_index: Optional[PathIndex] = None

    # ------------------------------------------------------------------
    # Navigation control
    # ------------------------------------------------------------------

    def start_navigation(self) -> None:
        """Reset dedup state and begin reacting to position samples."""
        with self._lock:
            self._monitor.reset()
            self._monitor.completed_ids.update(wp.id for wp in self._route.waypoints if wp.is_completed)
            self._announcer.reset()
            self._reroute.cancel()
            self._effects.clear()

            self._navigating = True
            self._route.status = RouteStatus.ACTIVE
            if self._route.started_at is None:
                self._route.started_at = self._clock()

            if self._route.navigation_steps:
                self._announcer.announce_navigation_started()

            self._refresh_state()
            self._logger.log_route_event("started", self._route)
            logger.info(
                f"Navigation started on route {self._route.id}: "
                f"{len(self._route.waypoints)} waypoints, {len(self._route.navigation_steps or [])} steps."
            )

    def stop_navigation(self) -> None:
        """Forcibly end the session; no timer or reroute callback fires afterwards."""
        with self._lock:
            self._navigating = False
            self._reroute.cancel()
            self._effects.clear()
            self._announcer.cancel()
            self._refresh_state()
            self._logger.log_route_event("stopped", self._route)
            logger.info("Navigation stopped by user.")

    def close(self) -> None:
        """
        Detach and release the reroute worker.

        An active session is stopped first. A session that already finished
        its route is left alone so its last announcements can play out.
        """
        self.detach()
        if self._navigating:
            self.stop_navigation()
        self._reroute.shutdown()

    # ------------------------------------------------------------------
    # Position source
    # ------------------------------------------------------------------

    def attach(self, source: PositionSource) -> None:
        """Subscribe to a position source; samples go straight to update()."""
        self.detach()
        self._unsubscribe = source.subscribe(self.update, self._on_position_error)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_position_error(self, error: PositionError) -> None:
        with self._lock:
            self._location_error = error
        logger.error(f"Location error ({type(error).__name__}): {error}")
        if self.on_error:
            self.on_error(error)

    # ------------------------------------------------------------------
    # GPS update: call this on every position fix
    # ------------------------------------------------------------------

    def update(self, position: Position) -> NavigationState:
        """
        Process a new position sample and return the derived state.

        Ignored (current state returned) while navigation is not active.

        The ETA is taken relative to the injected clock, not to
        position.timestamp, so replaying the same sample gives an equal state
        only when the clock reads the same minute.
        """
        with self._lock:
            self._position = position
            self._location_error = None
            if not self._navigating:
                return self._state

            state = self._derive(position)
            self._state = state
            self._queue_effects(state, position)
            self._drain_effects()
            if self._dirty:
                self._refresh_state()

            self._logger.log_event(self._state, position)
            return self._state

    def _derive(self, position: Position) -> NavigationState:
        if self._path_index is None or not self._path_index.matches(self._route):
            self._path_index = PathIndex.for_route(self._route)
            logger.debug(f"Path index rebuilt: {len(self._path_index.steps)} steps.")
        return compute_navigation_state(
            position,
            self._route,
            self._monitor.completed_ids,
            is_navigating=self._navigating,
            is_rerouting=self._reroute.is_rerouting,
            config=self.config,
            now=self._clock(),
            index=self._path_index,
        )

    def _refresh_state(self) -> None:
        self._dirty = False
        if self._position is not None:
            self._state = self._derive(self._position)
        else:
            next_wp = self._monitor.find_next_waypoint(self._route.waypoints)
            self._state = replace(
                self._state,
                is_navigating=self._navigating,
                is_rerouting=self._reroute.is_rerouting,
                next_waypoint=replace(next_wp) if next_wp is not None else None,
                completed_waypoint_ids=tuple(
                    wp.id for wp in self._route.waypoints if self._monitor.is_done(wp)
                ),
            )

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _queue_effects(self, state: NavigationState, position: Position) -> None:
        steps = self._route.navigation_steps or []
        step = steps[state.current_step_index] if steps else None
        self._effects.append(partial(
            self._announcer.announce_step,
            state.current_step_index,
            step,
            state.distance_to_next_maneuver,
        ))

        next_wp = self._monitor.find_next_waypoint(self._route.waypoints)
        if self._monitor.check_arrival(position.coordinates, next_wp):
            self._effects.append(partial(self._complete, next_wp.id))

        if self._route.geometry:
            if not state.is_off_route:
                self._effects.append(self._announcer.clear_off_route)
            self._effects.append(partial(self._reroute.observe, state.is_off_route))

    def _drain_effects(self) -> None:
        while self._effects:
            effect = self._effects.popleft()
            effect()

    # ------------------------------------------------------------------
    # Waypoints
    # ------------------------------------------------------------------

    def complete_waypoint(self, waypoint_id: str) -> bool:
        """
        Mark a waypoint completed (manual or automatic).

        Returns:
            False if the id is unknown or the waypoint was already completed.
        """
        with self._lock:
            completed = self._complete(waypoint_id)
            self._refresh_state()
            return completed

    def skip_to_next_waypoint(self) -> Optional[Waypoint]:
        """Complete the next waypoint without the proximity check."""
        with self._lock:
            next_wp = self._monitor.find_next_waypoint(self._route.waypoints)
            if next_wp is None:
                return None
            logger.info(f"Skipping waypoint {next_wp.id}.")
            self._complete(next_wp.id)
            self._refresh_state()
            return next_wp

    def can_complete_waypoint(self, position: Optional[Position] = None) -> bool:
        """True if the operator is close enough to complete the next waypoint by hand."""
        with self._lock:
            position = position or self._position
            if position is None:
                return False
            next_wp = self._monitor.find_next_waypoint(self._route.waypoints)
            return self._monitor.can_complete(position.coordinates, next_wp)

    def _complete(self, waypoint_id: str) -> bool:
        waypoint = self._route.waypoint(waypoint_id)
        if waypoint is None:
            logger.warning(f"Unknown waypoint id: {waypoint_id}")
            return False
        if not self._monitor.mark_completed(waypoint, self._clock()):
            return False

        self._dirty = True
        logger.info(f"Waypoint {waypoint.id} ({waypoint.name or 'unnamed'}) completed.")
        self._logger.log_route_event("waypoint_completed", self._route, waypoint_id=waypoint.id)
        self._announcer.announce_waypoint_arrival(waypoint)
        if self.on_waypoint_complete:
            self.on_waypoint_complete(waypoint)

        if self._monitor.all_completed(self._route.waypoints):
            self._finish_route()
        return True

    def _finish_route(self) -> None:
        now = self._clock()
        self._navigating = False
        self._reroute.cancel()
        self._effects.clear()

        route = self._route
        route.status = RouteStatus.COMPLETED
        route.completed_at = now
        route.actual_duration = (now - (route.started_at or now)).total_seconds()

        self._announcer.announce_route_complete()
        self._logger.log_route_event("completed", route, actual_duration=route.actual_duration)
        logger.info(f"Route {route.id} complete in {route.actual_duration:.0f}s.")
        if self.on_route_complete:
            self.on_route_complete(route)

    # ------------------------------------------------------------------
    # Rerouting
    # ------------------------------------------------------------------

    def reroute(self) -> bool:
        """
        Recompute the path from the current position now.

        Returns:
            False without a position or remaining waypoint, or while a
            reroute is already in flight.
        """
        with self._lock:
            coords = self._reroute_coordinates()
            if not coords:
                return False
            return self._reroute.request(coords)

    def _reroute_coordinates(self) -> Optional[List[Coord]]:
        if not self._navigating or self._position is None:
            return None
        remaining = [wp.coordinates for wp in self._route.waypoints if not self._monitor.is_done(wp)]
        if not remaining:
            return None
        return [self._position.coordinates] + remaining

    def _on_reroute_started(self) -> None:
        self._announcer.announce_off_route()
        self._state = replace(self._state, is_rerouting=True)

    def _on_rerouted(self, path: PathResult) -> None:
        self._route.apply_path(path)
        self._dirty = True
        self._announcer.reset_steps()
        self._refresh_state()
        self._logger.log_route_event("rerouted", self._route, distance=path.distance)

    def _on_reroute_failed(self, error: PathComputationFailed) -> None:
        self._state = replace(self._state, is_rerouting=False)
        self._logger.log_route_event("reroute_failed", self._route, error=str(error))

    # ------------------------------------------------------------------
    # Convenience read-only properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> NavigationState:
        return self._state

    @property
    def route(self) -> Route:
        return self._route

    @property
    def position(self) -> Optional[Position]:
        return self._position

    @property
    def is_active(self) -> bool:
        return self._navigating

    @property
    def location_error(self) -> Optional[PositionError]:
        return self._location_error

    @property
    def reroute_state(self) -> RerouteState:
        return self._reroute.state

    @property
    def reroute_controller(self) -> RerouteController:
        return self._reroute

    @property
    def announcer(self) -> AnnouncementScheduler:
        return self._announcer

    @property
    def monitor(self) -> WaypointMonitor:
        return self._monitor
