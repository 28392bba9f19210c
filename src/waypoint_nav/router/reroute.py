# reroute.py
# Debounced rerouting: Idle → ArmedOffRoute → Rerouting → Idle.
# At most one path computation is in flight; off-route triggers that arrive
# meanwhile are ignored, not queued.

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from enum import Enum
from functools import partial
from typing import Callable, List, Optional, Sequence

from ..errors import PathComputationFailed
from .models import Coord, PathResult

logger = logging.getLogger(__name__)


class RerouteState(Enum):
    IDLE       = "idle"
    ARMED      = "armed_off_route"
    REROUTING  = "rerouting"


# ---------------------------------------------------------------------------
# Timer
# ---------------------------------------------------------------------------

class DebounceTimer:
    """
    Cancellable one-shot timer.

    start() restarts the countdown. A callback belonging to a cancelled or
    restarted countdown is dropped even if the underlying timer already fired.

    Args:
        delay_s:       Countdown in seconds.
        callback:      Called with no arguments when the countdown elapses.
        timer_factory: threading.Timer compatible factory (interval, function).
    """

    def __init__(
        self,
        delay_s: float,
        callback: Callable[[], None],
        timer_factory: Callable = threading.Timer,
    ) -> None:
        self.delay_s = delay_s
        self._callback = callback
        self._factory = timer_factory
        self._timer = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        with self._lock:
            self._cancel_locked()
            timer = self._factory(self.delay_s, partial(self._fire, self._generation))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        self._callback()


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class RerouteController:
    """
    Debounces off-route detection and drives the path provider.

    Args:
        path_provider:       Object with compute_path(coords) → PathResult.
        request_coordinates: Returns [position, *remaining waypoints] when the
                             debounce elapses, or None if no request is possible.
        on_started:          Called when a path request is submitted.
        on_rerouted:         Called with the new PathResult.
        on_failed:           Called with PathComputationFailed; prior path is kept.
        debounce_s:          Seconds off-route before rerouting.
        timer_factory:       Passed to DebounceTimer.
        executor:            Runs compute_path; a single-worker pool by default.
        lock:                Shared with the orchestrator so callbacks never
                             interleave with a sample pass.
    """

    def __init__(
        self,
        path_provider,
        *,
        request_coordinates: Optional[Callable[[], Optional[List[Coord]]]] = None,
        on_started: Optional[Callable[[], None]] = None,
        on_rerouted: Optional[Callable[[PathResult], None]] = None,
        on_failed: Optional[Callable[[PathComputationFailed], None]] = None,
        debounce_s: float = 2.0,
        timer_factory: Callable = threading.Timer,
        executor: Optional[Executor] = None,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self.path_provider = path_provider
        self._request_coordinates = request_coordinates
        self._on_started = on_started
        self._on_rerouted = on_rerouted
        self._on_failed = on_failed
        self._executor = executor
        self._owns_executor = executor is None
        self._lock = lock or threading.RLock()
        self._generation = 0

        self.state = RerouteState.IDLE
        self.timer = DebounceTimer(debounce_s, self._on_debounce_elapsed, timer_factory)

    @property
    def is_rerouting(self) -> bool:
        return self.state == RerouteState.REROUTING

    # ------------------------------------------------------------------
    # Per-sample input
    # ------------------------------------------------------------------

    def observe(self, off_route: bool) -> None:
        with self._lock:
            if self.state == RerouteState.REROUTING:
                return
            if off_route and self.state == RerouteState.IDLE:
                self.state = RerouteState.ARMED
                self.timer.start()
                logger.info(f"Off route, rerouting in {self.timer.delay_s:.1f}s unless back on route.")
            elif not off_route and self.state == RerouteState.ARMED:
                self.timer.cancel()
                self.state = RerouteState.IDLE
                logger.info("Back on route, reroute cancelled.")

    def _on_debounce_elapsed(self) -> None:
        with self._lock:
            if self.state != RerouteState.ARMED:
                return
            if self.path_provider is None:
                logger.warning("Still off route but no path provider configured.")
                self.state = RerouteState.IDLE
                return
            coords = self._request_coordinates() if self._request_coordinates else None
            if not coords:
                logger.warning("Debounce elapsed but no reroute request could be built.")
                self.state = RerouteState.IDLE
                return
            self._submit(coords)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request(self, coords: Sequence[Coord]) -> bool:
        """
        Start a path computation now.

        Returns:
            False if one is already in flight or no provider is configured.
        """
        with self._lock:
            if self.state == RerouteState.REROUTING:
                logger.debug("Reroute already in flight, request ignored.")
                return False
            if self.path_provider is None:
                logger.warning("No path provider configured, cannot reroute.")
                return False
            self.timer.cancel()
            self._submit(coords)
            return True

    def cancel(self) -> None:
        """Cancel the debounce timer and drop any in-flight result."""
        with self._lock:
            self.timer.cancel()
            self._generation += 1
            self.state = RerouteState.IDLE

    def shutdown(self) -> None:
        self.cancel()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="reroute")
        return self._executor

    def _submit(self, coords: Sequence[Coord]) -> None:
        # caller holds self._lock
        self.state = RerouteState.REROUTING
        generation = self._generation
        logger.info(f"Rerouting through {len(coords)} coordinates.")
        if self._on_started:
            self._on_started()

        try:
            future = self._get_executor().submit(self.path_provider.compute_path, list(coords))
        except RuntimeError as e:
            self.state = RerouteState.IDLE
            self._fail(PathComputationFailed(f"Could not schedule path computation: {e}"))
            return
        future.add_done_callback(partial(self._on_path_done, generation))

    def _on_path_done(self, generation: int, future: Future) -> None:
        with self._lock:
            if generation != self._generation:
                logger.info("Discarding reroute result from a cancelled session.")
                return
            self.state = RerouteState.IDLE

            if future.cancelled():
                self._fail(PathComputationFailed("Path computation was cancelled."))
                return
            exc = future.exception()
            if exc is not None:
                if not isinstance(exc, PathComputationFailed):
                    exc = PathComputationFailed(str(exc))
                self._fail(exc)
                return

            result = future.result()
            logger.info(f"Reroute succeeded: {len(result.steps)} steps, {result.distance:.0f} m.")
            if self._on_rerouted:
                self._on_rerouted(result)

    def _fail(self, error: PathComputationFailed) -> None:
        logger.warning(f"Rerouting failed: {error}")
        if self._on_failed:
            self._on_failed(error)
