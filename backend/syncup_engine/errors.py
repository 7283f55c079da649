"""
Exceptions raised by the matchmaking engine.

Scoring never raises for missing input; see ``MatchResult.degraded``.
"""


class MatchmakingError(Exception):
    """Base class for every error the engine surfaces to callers."""


class ProfileNotFound(MatchmakingError):
    def __init__(self, profile_id):
        super().__init__(f"Profile not found: {profile_id}")
        self.profile_id = profile_id


class InvalidSelfReference(MatchmakingError):
    def __init__(self, profile_id):
        super().__init__(f"Profile {profile_id} cannot act on itself")
        self.profile_id = profile_id


class ConnectionBlocked(MatchmakingError):
    """The target has passed the requester, so the request is refused."""

    def __init__(self, from_id, to_id):
        super().__init__(f"{to_id} has passed {from_id}; request blocked")
        self.from_id = from_id
        self.to_id = to_id


class RequestNotPending(MatchmakingError):
    def __init__(self, of_id, from_id):
        super().__init__(f"No pending request from {from_id} to {of_id}")
        self.of_id = of_id
        self.from_id = from_id


class StoreConflict(MatchmakingError):
    """Concurrent relationship updates kept conflicting after all retries."""


class InvalidAnswerPayload(MatchmakingError, ValueError):
    pass


class ConfigError(MatchmakingError, ValueError):
    pass
