"""
Domain exceptions raised by the scheduler, analytics and platform layers.

Routes translate these into ApiException responses; the post scheduler
records PlatformError and friends on the post instead of raising them.

Hierarchy:
    Exception
    +-- SmapError
        +-- ValidationError
        |   +-- PlatformNotConnectedError
        +-- NotFoundError
        +-- InvalidTransitionError
        +-- PlatformError
        |   +-- TokenExpiredError
        +-- ConfigurationError
"""
from typing import Optional


class SmapError(Exception):
    """Base exception for all SMAP errors."""

    pass


class ValidationError(SmapError):
    """Raised when input validation fails before any state change."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class PlatformNotConnectedError(ValidationError):
    """Raised when the user has no active connection for a platform."""

    def __init__(self, platform: str, message: Optional[str] = None):
        self.platform = platform
        label = platform.capitalize()
        super().__init__(message or f"{label} account not connected. Please connect your {label} account first.")


class NotFoundError(SmapError):
    """Raised when a post, user or connection does not exist."""

    def __init__(self, resource: str, id: Optional[object] = None):
        self.resource = resource
        self.id = id
        super().__init__(f"{resource} not found" if id is None else f"{resource} '{id}' not found")


class InvalidTransitionError(SmapError):
    """Raised when a scheduled post cannot move to the requested status."""

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move post from '{current}' to '{target}'")


class PlatformError(SmapError):
    """Raised when an external platform call fails or returns garbage."""

    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        self.platform = platform
        self.status_code = status_code
        super().__init__(message)


class TokenExpiredError(PlatformError):
    """Raised when a stored platform token is no longer accepted."""

    def __init__(self, platform: str):
        super().__init__(
            platform,
            f"{platform.capitalize()} token expired. Please reconnect your account.",
            status_code=401,
        )


class ConfigurationError(SmapError):
    """Raised when a required credential or setting is missing."""

    pass
