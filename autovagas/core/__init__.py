"""
Core building blocks shared by every other subpackage.

Modules:
- config: environment driven settings
- logging_config: console + rotating file logging
- errors: engine exception taxonomy
- models: sessions, jobs, actions, listings, auto-apply records
- database: SQLite schema and connection helper
"""

from .config import AppConfig, config, get_config
from .errors import (
    AutovagasError,
    LoginFailed,
    NoActiveSession,
    PlatformError,
    SessionInvalid,
    SessionRateLimited,
    ApplyNotSupported,
    AdapterParseError,
    JobNotFound,
    ConfigValidationError,
)

__all__ = [
    "AppConfig",
    "config",
    "get_config",
    "AutovagasError",
    "LoginFailed",
    "NoActiveSession",
    "PlatformError",
    "SessionInvalid",
    "SessionRateLimited",
    "ApplyNotSupported",
    "AdapterParseError",
    "JobNotFound",
    "ConfigValidationError",
]
