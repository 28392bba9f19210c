# waypoint-nav: turn-by-turn navigation along a pre-planned multi-stop route.

__version__ = "0.1.0"
