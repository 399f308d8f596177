"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class P1doksCliError(Exception):
    """Base exception for all application-specific errors."""


class AuthenticationError(P1doksCliError):
    """Raised when signing in to P1Doks fails."""


class IdentityProviderError(AuthenticationError):
    """Raised when the identity provider rejects an authentication exchange."""

    def __init__(
        self, message: str, error_type: str | None = None, status: int | None = None
    ):
        super().__init__(message)
        self.error_type = error_type
        self.status = status


class RefreshExpiredError(AuthenticationError):
    """
    Raised when a saved refresh token is rejected.

    Recoverable: collect the password again and re-authenticate.
    """


class TokenExpiredError(AuthenticationError):
    """
    Raised when an authenticated request is still rejected after one refresh.

    The session cannot recover without a full password sign-in.
    """

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


class ConfigurationError(P1doksCliError):
    """Raised for issues related to settings or preference loading."""
