"""Error taxonomy shared by the mission engine and cycle clock."""
from __future__ import annotations


class HeroCycleError(RuntimeError):
    """Base class for errors surfaced to callers of the game layer."""

    retryable = False


class ValidationError(HeroCycleError, ValueError):
    """Raised when input is missing or malformed."""


class DuplicateSubmissionError(HeroCycleError):
    """Raised when a player has already submitted a mission."""

    def __init__(self, username: str, mission_id: str) -> None:
        super().__init__(f"{username} has already submitted mission {mission_id}")
        self.username = username
        self.mission_id = mission_id


class NotFoundError(HeroCycleError, LookupError):
    """Raised when a referenced mission or submission does not exist."""


class ConfigurationError(HeroCycleError):
    """Raised when required singleton state has not been set up."""


class StoreUnavailableError(HeroCycleError):
    """Raised when the row store cannot be reached; the whole call may be retried."""

    retryable = True


__all__ = [
    "HeroCycleError",
    "ValidationError",
    "DuplicateSubmissionError",
    "NotFoundError",
    "ConfigurationError",
    "StoreUnavailableError",
]
