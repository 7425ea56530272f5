"""Error taxonomy for swipe and match operations."""


class MatchingError(Exception):
    """Base class for all matching errors."""


class RateLimitExceeded(MatchingError):
    """Admission control denied the action. Retryable after the window."""

    def __init__(self, action: str, retry_after: float | None = None) -> None:
        self.action = action
        self.retry_after = retry_after
        message = f"Rate limit exceeded for {action}"
        if retry_after is not None:
            message += f", retry after {retry_after:.0f}s"
        super().__init__(message)


class RateLimitServiceUnavailable(MatchingError):
    """The centralized rate-limit counter could not be reached."""


class PersistenceFailure(MatchingError):
    """A store read or write failed. Nothing was recorded; safe to retry."""


class TelemetryFailure(MatchingError):
    """An event could not be emitted. Logged and discarded."""


class InvalidSwipe(MatchingError):
    """The swipe request is malformed (e.g. a user swiping on themselves)."""


class ProfileNotFound(MatchingError):
    """No profile exists for the requested user id."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"Profile not found: {user_id}")


class MatchNotFound(MatchingError):
    """No match exists for the requested id."""

    def __init__(self, match_id: str) -> None:
        self.match_id = match_id
        super().__init__(f"Match not found: {match_id}")


class NotMatchParticipant(MatchingError):
    """The user is not one of the two parties of the match."""
