from unittest import mock

import pytest
import requests

from waypoint_nav.errors import PathComputationFailed
from waypoint_nav.router import path_provider
from waypoint_nav.router.geo_utils import polyline_length
from waypoint_nav.router.models import Coord
from waypoint_nav.router.path_provider import (
    OSRMPathProvider,
    StraightLinePathProvider,
    build_instruction,
)

from conftest import COMMUNITY_CENTER, FIRE_STATION, TOWN_HALL


OSRM_RESPONSE = {
    "code": "Ok",
    "routes": [{
        "distance": 452.3,
        "duration": 61.7,
        "geometry": {
            "type": "LineString",
            "coordinates": [[151.2093, -33.8688], [151.2096, -33.8679], [151.2110, -33.8650]],
        },
        "legs": [{
            "steps": [
                {
                    "distance": 100.2,
                    "duration": 14.0,
                    "name": "George Street",
                    "geometry": {"coordinates": [[151.2093, -33.8688], [151.2096, -33.8679]]},
                    "maneuver": {"type": "depart", "location": [151.2093, -33.8688]},
                },
                {
                    "distance": 352.1,
                    "duration": 47.7,
                    "name": "Park Street",
                    "geometry": {"coordinates": [[151.2096, -33.8679], [151.2110, -33.8650]]},
                    "maneuver": {"type": "turn", "modifier": "left", "location": [151.2096, -33.8679]},
                },
                {
                    "distance": 0.0,
                    "duration": 0.0,
                    "name": "",
                    "geometry": {"coordinates": [[151.2110, -33.8650]]},
                    "maneuver": {"type": "arrive", "location": [151.2110, -33.8650]},
                },
            ],
        }],
    }],
}


def _session(payload=None, error=None):
    session = mock.Mock()
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value.json.return_value = payload
    return session


# ---------------------------------------------------------------------------
# OSRM client
# ---------------------------------------------------------------------------

def test_osrm_request_format():
    session = _session(OSRM_RESPONSE)
    provider = OSRMPathProvider("http://osrm.local/", profile="walking", timeout=3.0, session=session)

    provider.compute_path([FIRE_STATION, TOWN_HALL])

    url = session.get.call_args[0][0]
    kwargs = session.get.call_args[1]
    assert url == "http://osrm.local/route/v1/walking/151.2093,-33.8688;151.211,-33.865"
    assert kwargs["params"] == {"steps": "true", "geometries": "geojson", "overview": "full"}
    assert kwargs["timeout"] == 3.0


def test_osrm_response_is_normalised():
    provider = OSRMPathProvider("http://osrm.local", session=_session(OSRM_RESPONSE))
    result = provider.compute_path([FIRE_STATION, TOWN_HALL])

    assert result.distance == 452.3
    assert result.duration == 61.7
    assert result.geometry[0] == Coord(151.2093, -33.8688)
    assert [s.instruction for s in result.steps] == [
        "Head out on George Street",
        "Turn left onto Park Street",
        "You have arrived at your destination",
    ]
    assert result.steps[1].maneuver.modifier == "left"
    assert result.steps[1].maneuver.location == Coord(151.2096, -33.8679)
    assert result.steps[2].geometry == (Coord(151.2110, -33.8650),)


@pytest.mark.parametrize("payload", [
    {"code": "NoRoute", "message": "Impossible route between points"},
    {"code": "Ok", "routes": []},
])
def test_osrm_errors_raise_path_computation_failed(payload):
    provider = OSRMPathProvider("http://osrm.local", session=_session(payload))
    with pytest.raises(PathComputationFailed):
        provider.compute_path([FIRE_STATION, TOWN_HALL])


def test_osrm_network_error_is_wrapped():
    session = _session(error=requests.ConnectionError("connection refused"))
    provider = OSRMPathProvider("http://osrm.local", session=session)
    with pytest.raises(PathComputationFailed, match="connection refused"):
        provider.compute_path([FIRE_STATION, TOWN_HALL])


def test_osrm_needs_two_coordinates():
    provider = OSRMPathProvider("http://osrm.local", session=_session(OSRM_RESPONSE))
    with pytest.raises(PathComputationFailed):
        provider.compute_path([FIRE_STATION])


def test_osrm_requires_base_url(monkeypatch):
    monkeypatch.setattr(path_provider, "OSRM_BASE_URL", None)
    with pytest.raises(ValueError):
        OSRMPathProvider()


@pytest.mark.parametrize("args, expected", [
    (("turn", "right", "King St"), "Turn right onto King St"),
    (("turn", "uturn", None), "Make a U-turn"),
    (("depart", None, None), "Depart"),
    (("roundabout", None, "Oxford St"), "Enter the roundabout and exit onto Oxford St"),
    (("new name", None, "Elizabeth St"), "Continue onto Elizabeth St"),
    (("end of road", None, None), "Continue straight"),
])
def test_build_instruction(args, expected):
    assert build_instruction(*args) == expected


# ---------------------------------------------------------------------------
# Straight-line provider
# ---------------------------------------------------------------------------

def test_straight_line_path():
    coords = [FIRE_STATION, COMMUNITY_CENTER, TOWN_HALL]
    result = StraightLinePathProvider(speed_kmh=36.0).compute_path(coords)

    assert result.geometry == tuple(coords)
    assert [s.maneuver.type for s in result.steps] == ["depart", "turn", "arrive"]
    assert result.steps[0].instruction.startswith("Head ")
    assert result.steps[1].maneuver.location == COMMUNITY_CENTER
    assert result.distance == pytest.approx(polyline_length(coords))
    assert result.duration == pytest.approx(result.distance / 10.0)


def test_straight_line_needs_two_coordinates():
    with pytest.raises(PathComputationFailed):
        StraightLinePathProvider().compute_path([FIRE_STATION])
