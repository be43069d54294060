class TrailSafeError(Exception):
    """Base class for device-side errors shown to the hiker."""


class LocationPermissionDenied(TrailSafeError):
    pass


class TrackingUnavailable(LocationPermissionDenied):
    """The location provider could not start continuous updates."""


class NoActiveCheckIn(TrailSafeError):
    pass


class InvalidCheckIn(TrailSafeError):
    pass


class HikeAlreadyActive(TrailSafeError):
    pass


class NoActiveHike(TrailSafeError):
    pass


class HikeApiError(TrailSafeError):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code
