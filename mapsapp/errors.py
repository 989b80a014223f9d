"""Error taxonomy for the tracking session and its REST helpers."""


class MapsAppError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(MapsAppError):
    """Configuration values failed validation."""


class PermissionDenied(MapsAppError):
    """Location permission was denied or blocked for this session."""


class PositionUnavailable(MapsAppError):
    """The location provider reported an error for a fix."""

    def __init__(self, message: str = "position unavailable", code: int | None = None) -> None:
        self.code = code
        super().__init__(message)


class PositionTimeout(PositionUnavailable):
    """No first fix arrived within the configured timeout."""


class ChannelDisconnected(MapsAppError):
    """The realtime channel is not connected."""


class NearbyQueryFailed(MapsAppError):
    """A nearby query (REST or realtime) did not produce a usable result."""


class ProfileSaveFailed(MapsAppError):
    """A profile write was rejected; ``message`` is safe to show to the user."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)
