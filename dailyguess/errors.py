"""Domain exceptions for the daily challenge engine.

Each exception carries the HTTP status and a stable error code; the routing
layer turns them into JSON responses in a single exception handler.
"""
from typing import Optional


class ChallengeError(Exception):
    """Base class for all challenge engine errors."""

    status_code = 400
    code = "challenge_error"

    def __init__(self, message: str, progress: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.progress = progress


class InsufficientContent(ChallengeError):
    """The catalog has fewer active items than one day's challenge needs."""

    status_code = 503
    code = "insufficient_content"


class InvalidRoundId(ChallengeError):
    """Round id is malformed or belongs to another day."""

    code = "invalid_round_id"


class InvalidRoundIndex(InvalidRoundId):
    """Round index is outside the day's range."""

    code = "invalid_round_index"


class RoundNotUnlocked(ChallengeError):
    """The requested round is ahead of the session's current round."""

    status_code = 409
    code = "round_not_unlocked"


class SessionAlreadyCompleted(ChallengeError):
    """The user already finished today's challenge."""

    status_code = 409
    code = "session_already_completed"


class SessionNotStarted(ChallengeError):
    """A round result was submitted for a session that does not exist."""

    status_code = 409
    code = "session_not_started"


class CategoryNotWhitelisted(ChallengeError):
    """A free-text guess names a category missing from the directory."""

    status_code = 422
    code = "category_not_whitelisted"


class ConcurrentUpdateError(ChallengeError):
    """A record kept changing underneath a compare-and-set update."""

    status_code = 409
    code = "concurrent_update"


class StoreError(ChallengeError):
    """The key-value store could not be read or written."""

    status_code = 503
    code = "store_unavailable"
