# predictor_api/errors.py
from __future__ import annotations

from typing import Optional


class PredictorError(Exception):
    """Base for every error the room engine reports to its caller."""

    default_code = "Error"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(PredictorError):
    """Bad input shape or range. User-correctable; no state change."""

    default_code = "ValidationError"


class AuthorizationError(PredictorError):
    """Admin PIN check failed."""

    default_code = "AuthorizationError"


class NotFoundError(PredictorError):
    """Unknown match or player id."""

    default_code = "NotFound"


class StateConflictError(PredictorError):
    """Operation not valid for the current innings/match state."""

    default_code = "StateConflict"


class FeedSyncError(PredictorError):
    """Raised when a schedule/toss feed fetch or parse fails."""

    default_code = "FeedSyncError"
