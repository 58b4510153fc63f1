"""
Exception hierarchy for the user credential lifecycle.

Storage faults are absorbed inside the store; everything else propagates to the
caller requesting a token.
"""

from __future__ import annotations


class LarkAuthError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(LarkAuthError):
    """Raised when the application id/secret pair has not been supplied."""


class OAuthFlowError(LarkAuthError):
    """Raised when an interactive authorization attempt does not yield a code."""


class UserDeniedError(OAuthFlowError):
    """The platform redirected back with an ``error`` parameter."""

    def __init__(self, error: str) -> None:
        super().__init__(f"OAuth authorization failed: {error}")
        self.error = error


class CsrfValidationError(OAuthFlowError):
    """The callback carried no code or a state value that does not match."""

    def __init__(self, message: str = "Invalid authorization code or state.") -> None:
        super().__init__(message)


class CallbackTimeoutError(OAuthFlowError, TimeoutError):
    """No callback arrived before the attempt deadline."""


class PortConflictError(OAuthFlowError):
    """The callback listener could not bind its configured port."""

    def __init__(self, port: int, cause: OSError) -> None:
        super().__init__(f"Callback server failed to start on port {port}: {cause}")
        self.port = port
        self.cause = cause


class TokenExchangeError(LarkAuthError):
    """Raised when the token endpoint rejects a request."""

    def __init__(self, message: str, *, platform_code: int | None = None) -> None:
        super().__init__(message)
        self.platform_code = platform_code


class ExchangeError(TokenExchangeError):
    """Authorization code exchange failed."""


class RefreshError(TokenExchangeError):
    """Refresh token exchange failed."""


class StoreReadError(LarkAuthError):
    """The credential file exists but could not be read or parsed."""


__all__ = [
    "CallbackTimeoutError",
    "ConfigurationError",
    "CsrfValidationError",
    "ExchangeError",
    "LarkAuthError",
    "OAuthFlowError",
    "PortConflictError",
    "RefreshError",
    "StoreReadError",
    "TokenExchangeError",
    "UserDeniedError",
]
