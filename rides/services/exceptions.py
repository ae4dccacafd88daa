"""
Errors raised inside the matching and notification pipeline.

None of these are allowed to reach the request that created a posting;
the background runner logs them and moves on.
"""


class MatchingError(Exception):
    """Base class for matching pipeline errors."""
    pass


class MalformedPolylineError(MatchingError):
    """Raised when an encoded route polyline cannot be decoded."""
    pass


class DegeneratePathError(MatchingError):
    """Raised when a route has fewer than two points."""
    pass


class SpatialQueryError(MatchingError):
    """Raised when the posting store fails to answer a candidate query."""
    pass


class NotificationDispatchError(MatchingError):
    """Raised when the notification sink fails for one recipient."""

    def __init__(self, user_id, message):
        super().__init__(message)
        self.user_id = user_id
