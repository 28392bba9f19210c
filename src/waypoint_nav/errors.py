# errors.py
# Exception types raised or surfaced by the navigation engine.


class NavigationError(Exception):
    """Base class for navigation engine errors."""
    pass


# ---------------------------------------------------------------------------
# Position source: surfaced verbatim, navigation cannot proceed without a fix
# ---------------------------------------------------------------------------

class PositionError(NavigationError):
    """The position source delivered an error instead of a sample."""
    code: int = 0

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class PositionPermissionDenied(PositionError):
    """Permission to read the location was denied."""
    code = 1


class PositionUnavailable(PositionError):
    """No position fix is available."""
    code = 2


class PositionTimeout(PositionError):
    """Timed out waiting for a position fix."""
    code = 3


# ---------------------------------------------------------------------------
# Recovered locally
# ---------------------------------------------------------------------------

class PathComputationFailed(NavigationError):
    """The path provider could not compute a route. Prior geometry is kept."""
    pass


class SpeechFailed(NavigationError):
    """A voice announcement could not be spoken. Always swallowed."""
    pass
