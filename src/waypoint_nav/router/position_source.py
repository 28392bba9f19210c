# position_source.py
# Live position feeds.
# A source pushes Position samples (or PositionError) to its subscribers;
# the orchestrator never polls.

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional, Tuple, Union

import pynmea2

from ..errors import PositionError, PositionPermissionDenied, PositionTimeout, PositionUnavailable
from .models import Coord, Position

logger = logging.getLogger(__name__)

KNOTS_TO_MPS = 0.514444

PositionCallback = Callable[[Position], None]
ErrorCallback = Callable[[PositionError], None]


class PositionSource:
    """
    Subscribable stream of position samples.

    Usage:
        unsubscribe = source.subscribe(on_position, on_error)
        source.start()     # or source.run() to replay synchronously
        ...
        unsubscribe()
    """

    def __init__(self) -> None:
        self._subscribers: List[Tuple[PositionCallback, Optional[ErrorCallback]]] = []
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def subscribe(
        self,
        on_position: PositionCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Callable[[], None]:
        entry = (on_position, on_error)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def run(self) -> None:
        raise NotImplementedError

    def start(self) -> None:
        """Run the feed on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name=type(self).__name__, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _emit_position(self, position: Position) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for on_position, _ in subscribers:
            on_position(position)

    def _emit_error(self, error: PositionError) -> None:
        logger.warning(f"Position error: {error}")
        with self._lock:
            subscribers = list(self._subscribers)
        for _, on_error in subscribers:
            if on_error is not None:
                on_error(error)


# ---------------------------------------------------------------------------
# Simulated feed
# ---------------------------------------------------------------------------

class SimulatedPositionSource(PositionSource):
    """
    Replays a fixed list of samples, e.g. for demos and tests.

    Args:
        samples:    Position objects; a PositionError in the list is emitted as an error.
        interval_s: Pause between samples.
    """

    def __init__(self, samples: Iterable[Union[Position, PositionError]], interval_s: float = 0.0) -> None:
        super().__init__()
        self.samples = list(samples)
        self.interval_s = interval_s

    def run(self) -> None:
        for sample in self.samples:
            if self._stop.is_set():
                break
            if isinstance(sample, PositionError):
                self._emit_error(sample)
            else:
                self._emit_position(sample)
            if self.interval_s > 0:
                self._stop.wait(self.interval_s)


# ---------------------------------------------------------------------------
# NMEA feed
# ---------------------------------------------------------------------------

class NmeaPositionSource(PositionSource):
    """
    Parses GGA / RMC sentences from any line stream (serial port, file, socket).

    RMC carries speed and course; GGA samples reuse the last RMC values.
    A lost fix is reported once as PositionUnavailable until a fix returns.

    Args:
        lines: Iterable of NMEA sentences, str or bytes.
        clock: Timestamp source for sentences without a date.
    """

    def __init__(self, lines: Iterable[Union[str, bytes]], clock: Callable[[], float] = time.time) -> None:
        super().__init__()
        self.lines = lines
        self.clock = clock
        self._speed: Optional[float] = None
        self._heading: Optional[float] = None
        self._has_fix = True

    def run(self) -> None:
        try:
            for raw in self.lines:
                if self._stop.is_set():
                    break
                self.handle_line(raw)
        except PermissionError as e:
            self._emit_error(PositionPermissionDenied(str(e)))
        except TimeoutError as e:
            self._emit_error(PositionTimeout(str(e)))
        except OSError as e:
            self._emit_error(PositionUnavailable(str(e)))

    def handle_line(self, raw: Union[str, bytes]) -> Optional[Position]:
        """Parse one sentence; emits and returns the Position if it carries a fix."""
        line = raw.decode("ascii", errors="replace") if isinstance(raw, bytes) else raw
        line = line.strip()
        if not line.startswith("$"):
            return None

        try:
            msg = pynmea2.parse(line)
        except pynmea2.ParseError as e:
            logger.debug(f"Skipping malformed NMEA sentence: {e}")
            return None

        sentence = getattr(msg, "sentence_type", "")
        if sentence == "RMC":
            return self._handle_rmc(msg)
        if sentence == "GGA":
            return self._handle_gga(msg)
        return None

    def _handle_rmc(self, msg) -> Optional[Position]:
        if msg.status != "A":
            self._lost_fix("RMC status void, no fix.")
            return None

        self._speed = float(msg.spd_over_grnd) * KNOTS_TO_MPS if msg.spd_over_grnd is not None else None
        self._heading = float(msg.true_course) if msg.true_course is not None else None

        timestamp = self.clock()
        try:
            stamp = msg.datetime
            if stamp is not None:
                timestamp = stamp.timestamp()
        except (TypeError, ValueError, AttributeError):
            pass

        return self._fix(msg.longitude, msg.latitude, timestamp)

    def _handle_gga(self, msg) -> Optional[Position]:
        try:
            quality = int(msg.gps_qual or 0)
        except (TypeError, ValueError):
            quality = 0
        if quality == 0:
            self._lost_fix("GGA fix quality 0, no fix.")
            return None
        return self._fix(msg.longitude, msg.latitude, self.clock())

    def _fix(self, lon: float, lat: float, timestamp: float) -> Position:
        if not self._has_fix:
            logger.info("GPS fix reacquired.")
        self._has_fix = True
        position = Position(
            coordinates=Coord(float(lon), float(lat)),
            timestamp=timestamp,
            speed=self._speed,
            heading=self._heading,
        )
        self._emit_position(position)
        return position

    def _lost_fix(self, reason: str) -> None:
        if self._has_fix:
            self._has_fix = False
            self._emit_error(PositionUnavailable(reason))
