from waypoint_nav.errors import PathComputationFailed
from waypoint_nav.router.reroute import DebounceTimer, RerouteController, RerouteState

from conftest import (
    COMMUNITY_CENTER,
    FAR_AWAY,
    DeferredExecutor,
    InlineExecutor,
    ScriptedPathProvider,
)


COORDS = [FAR_AWAY, COMMUNITY_CENTER]


# ---------------------------------------------------------------------------
# DebounceTimer
# ---------------------------------------------------------------------------

def test_debounce_timer_fires_callback(timers):
    fired = []
    timer = DebounceTimer(2.0, lambda: fired.append(True), timers)

    timer.start()
    assert timer.active
    assert timers.last.interval == 2.0
    assert timers.last.daemon and timers.last.started

    timers.last.fire()
    assert fired == [True]
    assert not timer.active


def test_debounce_timer_restart_drops_stale_countdown(timers):
    fired = []
    timer = DebounceTimer(2.0, lambda: fired.append(True), timers)

    timer.start()
    timer.start()
    assert timers.timers[0].cancelled

    timers.timers[0].fire()       # already elapsed before cancel took effect
    assert fired == []
    timers.timers[1].fire()
    assert fired == [True]


def test_debounce_timer_cancel(timers):
    fired = []
    timer = DebounceTimer(2.0, lambda: fired.append(True), timers)
    timer.start()
    timer.cancel()
    timers.last.fire()
    assert fired == []
    assert not timer.active


# ---------------------------------------------------------------------------
# RerouteController
# ---------------------------------------------------------------------------

class Recorder:
    def __init__(self):
        self.started = 0
        self.results = []
        self.failures = []

    def on_started(self):
        self.started += 1

    def on_rerouted(self, result):
        self.results.append(result)

    def on_failed(self, error):
        self.failures.append(error)


def _controller(timers, provider, executor, coords=COORDS):
    rec = Recorder()
    controller = RerouteController(
        provider,
        request_coordinates=lambda: coords,
        on_started=rec.on_started,
        on_rerouted=rec.on_rerouted,
        on_failed=rec.on_failed,
        debounce_s=2.0,
        timer_factory=timers,
        executor=executor,
    )
    return controller, rec


def test_off_route_arms_then_back_on_route_disarms(timers):
    provider = ScriptedPathProvider()
    controller, rec = _controller(timers, provider, InlineExecutor())

    controller.observe(True)
    assert controller.state == RerouteState.ARMED
    assert provider.requests == []

    controller.observe(False)
    assert controller.state == RerouteState.IDLE
    assert timers.last.cancelled

    timers.last.fire()
    assert provider.requests == []
    assert rec.started == 0


def test_sustained_off_route_reroutes_after_debounce(timers):
    provider = ScriptedPathProvider()
    controller, rec = _controller(timers, provider, InlineExecutor())

    controller.observe(True)
    controller.observe(True)
    assert len(timers.timers) == 1

    timers.last.fire()
    assert provider.requests == [COORDS]
    assert rec.started == 1
    assert len(rec.results) == 1
    assert controller.state == RerouteState.IDLE


def test_no_concurrent_path_computations(timers):
    provider = ScriptedPathProvider()
    executor = DeferredExecutor()
    controller, rec = _controller(timers, provider, executor)

    controller.observe(True)
    timers.last.fire()
    assert controller.state == RerouteState.REROUTING
    assert controller.is_rerouting

    controller.observe(True)
    controller.observe(False)
    assert controller.request(COORDS) is False
    assert executor.calls == 1
    assert len(timers.timers) == 1

    executor.run_next()
    assert controller.state == RerouteState.IDLE
    assert len(rec.results) == 1

    controller.observe(True)
    assert controller.state == RerouteState.ARMED


def test_failure_is_recovered(timers):
    controller, rec = _controller(timers, ScriptedPathProvider(fail=True), InlineExecutor())

    controller.observe(True)
    timers.last.fire()

    assert controller.state == RerouteState.IDLE
    assert rec.results == []
    assert len(rec.failures) == 1
    assert isinstance(rec.failures[0], PathComputationFailed)


def test_unexpected_provider_error_is_wrapped(timers):
    class Exploding(ScriptedPathProvider):
        def compute_path(self, coordinates):
            raise KeyError("routes")

    controller, rec = _controller(timers, Exploding(), InlineExecutor())
    assert controller.request(COORDS)
    assert isinstance(rec.failures[0], PathComputationFailed)
    assert controller.state == RerouteState.IDLE


def test_cancel_drops_in_flight_result(timers):
    executor = DeferredExecutor()
    controller, rec = _controller(timers, ScriptedPathProvider(), executor)

    controller.observe(True)
    timers.last.fire()
    controller.cancel()
    assert controller.state == RerouteState.IDLE

    executor.run_next()
    assert rec.results == []
    assert rec.failures == []


def test_debounce_without_request_returns_to_idle(timers):
    provider = ScriptedPathProvider()
    controller, rec = _controller(timers, provider, InlineExecutor(), coords=None)

    controller.observe(True)
    timers.last.fire()
    assert controller.state == RerouteState.IDLE
    assert provider.requests == []


def test_request_without_provider(timers):
    controller, _ = _controller(timers, None, InlineExecutor())
    assert controller.request(COORDS) is False


def test_shutdown_executor_reports_failure(timers):
    class ClosedExecutor(InlineExecutor):
        def submit(self, fn, *args, **kwargs):
            raise RuntimeError("cannot schedule new futures after shutdown")

    controller, rec = _controller(timers, ScriptedPathProvider(), ClosedExecutor())
    controller.request(COORDS)
    assert controller.state == RerouteState.IDLE
    assert len(rec.failures) == 1
