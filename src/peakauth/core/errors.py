"""
Exception hierarchy for the peakauth package.

Every failure of a login attempt is raised as a LoginError subclass so callers
can tell a rejected password (not worth retrying) from a transient failure.
"""

from typing import Optional, Sequence


class PeakAuthError(Exception):
    """Base exception for all peakauth errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status {self.status_code})"
        return self.message


class ConfigurationError(PeakAuthError):
    """Raised when configuration values are missing or invalid."""
    pass


class LoginError(PeakAuthError):
    """Raised when a login attempt fails for any reason."""

    retryable = True


class LaunchFailure(LoginError):
    """The headless browser could not be launched."""
    pass


class FieldNotFoundFailure(LoginError):
    """A required form field or control was not found."""

    def __init__(self, message: str, selectors: Sequence[str] = ()):
        super().__init__(message)
        self.selectors = tuple(selectors)


class InvalidCredentialsFailure(LoginError):
    """The platform rejected the supplied credentials."""

    retryable = False


class TimeoutFailure(LoginError):
    """The login attempt did not settle before the overall timeout."""
    pass


class IncompleteDataFailure(TimeoutFailure):
    """The timeout elapsed after only part of the authentication data arrived."""

    def __init__(self, message: str, missing: Sequence[str] = ()):
        super().__init__(message)
        self.missing = tuple(missing)


class RefreshFailure(PeakAuthError):
    """A token refresh attempt failed. Never raised past the refresh coordinator."""
    pass


class CleanupFailure(PeakAuthError):
    """Releasing a resource failed during logout. Logged, never propagated."""
    pass
