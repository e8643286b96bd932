"""
Custom exception classes
"""
from fastapi import HTTPException


# ============================================================================
# HTTP errors raised by the operator endpoints
# ============================================================================

class JudgmentNotFoundError(HTTPException):
    """Raised when no stored judgment has the requested JID"""
    def __init__(self, jid: str):
        super().__init__(
            status_code=404,
            detail=f"Judgment {jid} not found"
        )


class SyncAlreadyRunningHTTPError(HTTPException):
    """Raised when a manual trigger arrives while a run is active"""
    def __init__(self, active_job: str | None = None):
        super().__init__(
            status_code=409,
            detail={
                "status": "already_running",
                "message": "A sync job is already running, check /status later",
                "active_job": active_job,
            }
        )


class ServiceWindowClosedHTTPError(HTTPException):
    """Raised when a manual trigger arrives outside the registry service window"""
    def __init__(self, window: str):
        super().__init__(
            status_code=409,
            detail={
                "status": "service_window_closed",
                "message": f"Judicial registry only accepts requests during {window}",
            }
        )


class InvalidQueryError(HTTPException):
    """Raised when search parameters are inconsistent"""
    def __init__(self, reason: str):
        super().__init__(
            status_code=400,
            detail=f"Invalid query: {reason}"
        )


# ============================================================================
# Pipeline errors
# ============================================================================

class JudicialApiError(Exception):
    """Base class for failures talking to the judicial registry"""


class AuthError(JudicialApiError):
    """Credential exchange failed or the registry rejected the token. Fatal to a run."""


class FetchError(JudicialApiError):
    """A list/detail/search request failed and will not be retried any further"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientFetchError(FetchError):
    """Network error, timeout, 5xx or 429: worth retrying"""


class ParseError(Exception):
    """Registry content could not be interpreted"""


class ListShapeError(ParseError):
    """The changed-id list response did not match any known shape"""


class PersistenceError(Exception):
    """Local store write failed. Fatal to a run."""


class ServiceWindowClosed(Exception):
    """
    Guard condition, not a failure: the registry is outside its service window
    and no override was given. No run row is created or failed for it.
    """


class SyncAlreadyRunning(Exception):
    """Another sync or backfill holds the single-flight latch"""


class InvalidRunTransition(Exception):
    """A sync run was asked to leave a terminal state"""
