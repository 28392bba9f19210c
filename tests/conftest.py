import sys
from concurrent.futures import Executor, Future
from datetime import datetime, timedelta
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from waypoint_nav.errors import PathComputationFailed
from waypoint_nav.router.models import Coord, Route, Waypoint
from waypoint_nav.router.nav_config import NavConfig
from waypoint_nav.router.path_provider import PathProvider, StraightLinePathProvider
from waypoint_nav.speech.tts import SpeechService, _done_future


# Sydney CBD stops
FIRE_STATION = Coord(151.2093, -33.8688)
COMMUNITY_CENTER = Coord(151.2100, -33.8670)
TOWN_HALL = Coord(151.2110, -33.8650)
FAR_AWAY = Coord(151.3000, -33.9000)     # ~12 km from the stops


# ---------------------------------------------------------------------------
# Timers and executors
# ---------------------------------------------------------------------------

class FakeTimer:
    """threading.Timer stand-in; fire() runs the function on the test thread."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


class FakeTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def last(self):
        return self.timers[-1]


class InlineExecutor(Executor):
    """Runs the submitted call immediately and returns a finished future."""

    def __init__(self):
        self.calls = 0

    def submit(self, fn, *args, **kwargs):
        self.calls += 1
        fut = Future()
        try:
            fut.set_result(fn(*args, **kwargs))
        except Exception as e:
            fut.set_exception(e)
        return fut


class DeferredExecutor(Executor):
    """Holds submitted calls until run_next() is called."""

    def __init__(self):
        self.pending = []
        self.calls = 0

    def submit(self, fn, *args, **kwargs):
        self.calls += 1
        fut = Future()
        self.pending.append((fn, args, kwargs, fut))
        return fut

    def run_next(self):
        fn, args, kwargs, fut = self.pending.pop(0)
        try:
            fut.set_result(fn(*args, **kwargs))
        except Exception as e:
            fut.set_exception(e)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class RecordingSpeech(SpeechService):
    def __init__(self):
        self.spoken = []
        self.cancels = 0

    def speak(self, text, priority="low"):
        self.spoken.append((text, priority))
        return _done_future()

    def cancel(self):
        self.cancels += 1

    @property
    def texts(self):
        return [text for text, _ in self.spoken]


class ScriptedPathProvider(PathProvider):
    """Records every request; computes straight-line paths unless told to fail."""

    def __init__(self, fail=False):
        self.fail = fail
        self.requests = []
        self._inner = StraightLinePathProvider()

    def compute_path(self, coordinates):
        self.requests.append(list(coordinates))
        if self.fail:
            raise PathComputationFailed("no route found")
        return self._inner.compute_path(coordinates)


class StepClock:
    """datetime.now replacement advancing a fixed step per call."""

    def __init__(self, start=datetime(2024, 5, 1, 9, 0, 0), step_s=1.0):
        self.now = start
        self.step = timedelta(seconds=step_s)

    def __call__(self):
        current = self.now
        self.now += self.step
        return current


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config():
    return NavConfig()


@pytest.fixture
def waypoints():
    return [
        Waypoint(id="wp-0", coordinates=FIRE_STATION, order=0, name="Fire Station"),
        Waypoint(id="wp-1", coordinates=COMMUNITY_CENTER, order=1, name="Community Center"),
        Waypoint(id="wp-2", coordinates=TOWN_HALL, order=2, name="Town Hall"),
    ]


@pytest.fixture
def route(waypoints):
    r = Route(id="r-1", name="Morning run", waypoints=waypoints)
    r.apply_path(StraightLinePathProvider().compute_path([wp.coordinates for wp in r.waypoints]))
    return r


@pytest.fixture
def speech():
    return RecordingSpeech()


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def clock():
    return StepClock()
