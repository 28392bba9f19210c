import pytest

from waypoint_nav.router.announcer import (
    NAVIGATION_STARTED_TEXT,
    OFF_ROUTE_TEXT,
    ROUTE_COMPLETE_TEXT,
    AnnouncementScheduler,
    format_instruction_for_voice,
    waypoint_arrival_text,
)
from waypoint_nav.router.models import Coord, Maneuver, NavigationStep, Waypoint
from waypoint_nav.router.nav_config import NavConfig
from waypoint_nav.speech.tts import PRIORITY_HIGH, PRIORITY_LOW

from conftest import RecordingSpeech


def _step(text="Turn left onto George St"):
    return NavigationStep(text, 200.0, 20.0, (), Maneuver("turn", Coord(0.0, 0.0), "left"))


@pytest.fixture
def scheduler(speech):
    return AnnouncementScheduler(speech, NavConfig())


# ---------------------------------------------------------------------------
# Phrasing
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("distance, expected", [
    (None, "Turn left"),
    (30, "Turn left now"),
    (75, "In 75 meters, turn left"),
    (183, "In 180 meters, turn left"),
    (1500, "In 1.5 kilometers, turn left"),
])
def test_format_instruction_for_voice(distance, expected):
    assert format_instruction_for_voice("Turn left", distance) == expected


def test_waypoint_arrival_text():
    assert waypoint_arrival_text("Town Hall") == "Arriving at Town Hall"
    assert waypoint_arrival_text(None) == "Arriving at waypoint"


# ---------------------------------------------------------------------------
# Step tiers
# ---------------------------------------------------------------------------

def test_immediate_tier_fires_once_per_step(scheduler, speech):
    assert scheduler.announce_step(1, _step(), 30.0) == "Turn left onto George St now"
    assert scheduler.announce_step(1, _step(), 20.0) is None
    assert speech.spoken == [("Turn left onto George St now", PRIORITY_HIGH)]

    scheduler.announce_step(2, _step("Turn right"), 10.0)
    assert speech.spoken[-1] == ("Turn right now", PRIORITY_HIGH)


def test_advance_tier_then_immediate(scheduler, speech):
    scheduler.announce_step(3, _step(), 180.0)
    scheduler.announce_step(3, _step(), 170.0)
    scheduler.announce_step(3, _step(), 40.0)

    assert speech.spoken == [
        ("In 180 meters, turn left onto george st", PRIORITY_LOW),
        ("Turn left onto George St now", PRIORITY_HIGH),
    ]


@pytest.mark.parametrize("distance", [300.0, 200.0, 150.0, 100.0, 50.0])
def test_no_announcement_outside_tiers(scheduler, speech, distance):
    assert scheduler.announce_step(0, _step(), distance) is None
    assert speech.spoken == []


def test_advance_tier_skipped_after_immediate(scheduler, speech):
    scheduler.announce_step(0, _step(), 10.0)
    scheduler.announce_step(0, _step(), 180.0)
    assert len(speech.spoken) == 1


def test_step_without_instruction_is_silent(scheduler, speech):
    assert scheduler.announce_step(0, None, 10.0) is None
    assert scheduler.announce_step(0, _step(""), 10.0) is None
    assert speech.spoken == []


def test_reset_steps_allows_reannouncing(scheduler, speech):
    scheduler.announce_step(0, _step(), 10.0)
    scheduler.reset_steps()
    scheduler.announce_step(0, _step(), 10.0)
    assert len(speech.spoken) == 2


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

def test_waypoint_arrival_once_per_id(scheduler, speech):
    wp = Waypoint(id="a", coordinates=Coord(0.0, 0.0), order=0, name="Depot")
    scheduler.announce_waypoint_arrival(wp)
    scheduler.announce_waypoint_arrival(wp)
    assert speech.spoken == [("Arriving at Depot", PRIORITY_HIGH)]


def test_off_route_announced_once_until_cleared(scheduler, speech):
    scheduler.announce_off_route()
    scheduler.announce_off_route()
    scheduler.clear_off_route()
    scheduler.announce_off_route()
    assert speech.texts == [OFF_ROUTE_TEXT, OFF_ROUTE_TEXT]


def test_route_complete_and_started(scheduler, speech):
    scheduler.announce_navigation_started()
    scheduler.announce_route_complete()
    scheduler.announce_route_complete()
    assert speech.texts == [NAVIGATION_STARTED_TEXT, ROUTE_COMPLETE_TEXT]


def test_disabled_voice_still_tracks_dedup(speech):
    scheduler = AnnouncementScheduler(speech, NavConfig(voice_enabled=False))
    assert scheduler.announce_step(4, _step(), 10.0) == "Turn left onto George St now"
    assert scheduler.last_immediate_step == 4
    assert speech.spoken == []


def test_no_speech_service_is_muted():
    scheduler = AnnouncementScheduler(None)
    assert scheduler.announce_off_route() == OFF_ROUTE_TEXT
    scheduler.cancel()


def test_speech_errors_are_swallowed():
    class BrokenSpeech(RecordingSpeech):
        def speak(self, text, priority="low"):
            raise RuntimeError("audio device busy")

        def cancel(self):
            raise RuntimeError("audio device busy")

    scheduler = AnnouncementScheduler(BrokenSpeech())
    assert scheduler.announce_route_complete() == ROUTE_COMPLETE_TEXT
    scheduler.cancel()
