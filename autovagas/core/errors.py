"""
Error taxonomy for the scraping and auto-apply engine.
"""

from typing import Optional


class AutovagasError(Exception):
    """Base class for all engine errors."""


class LoginFailed(AutovagasError):
    """Wrong credentials or an interactive challenge that could not be resolved.

    Surfaced to the caller as-is and never retried automatically.
    """


class NoActiveSession(AutovagasError):
    def __init__(self, platform_name: str):
        super().__init__(f"No active {platform_name} session found. Please login first.")
        self.platform_name = platform_name


class PlatformError(AutovagasError):
    """Non-2xx response from a job platform."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class SessionInvalid(PlatformError):
    """Platform answered 401/403 for the session's credentials."""


class SessionRateLimited(PlatformError):
    """Platform answered 429."""


class ApplyNotSupported(AutovagasError):
    """Listing does not expose a direct-apply mechanism."""


class AdapterParseError(AutovagasError):
    """Unexpected response shape. Adapters convert this into degraded listings."""


class JobNotFound(AutovagasError):
    pass


class ConfigValidationError(AutovagasError):
    pass


# Errors that must not be retried by the job queue.
PERMANENT_ERRORS = (LoginFailed, NoActiveSession, ApplyNotSupported, SessionInvalid)
