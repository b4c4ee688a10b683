from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for token-authority exceptions mapped to HTTP responses.

    Each exception class defines both an HTTP ``status_code`` and a stable
    ``error_code``:
    - unauthorized (401)
    - forbidden (403)
    - server_error (500)
    - service_unavailable (503)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"


class TokenError(AuthenticationError):
    """A presented token was rejected.

    ``reason`` names the failed check for internal logging only; the public
    validation API never exposes it to callers.
    """

    reason: str = "invalid_token"


class MalformedEnvelopeError(TokenError):
    """Token is not a three-part base64url envelope with a JSON header."""
    reason = "malformed_envelope"


class InvalidSignatureError(TokenError):
    """Wrong algorithm header or MAC mismatch."""
    reason = "invalid_signature"


class MalformedClaimsError(TokenError):
    """Payload is not a claim set of the expected shape."""
    reason = "malformed_claims"


class TokenExpiredError(TokenError):
    reason = "expired"


class TokenBlacklistedError(TokenError):
    reason = "blacklisted"


class TokenNotCurrentError(TokenError):
    """Token is not the one currently registered for the user."""
    reason = "not_current"


class ForbiddenError(ServiceError):
    """Access denied - insufficient authority (403)."""
    status_code = 403
    error_code = "forbidden"


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "server_error"


class RegistryUnavailableError(ServerError):
    """The key-value registry could not be reached (503)."""
    status_code = 503
    error_code = "service_unavailable"


__all__ = [
    "ServiceError",
    "AuthenticationError",
    "TokenError",
    "MalformedEnvelopeError",
    "InvalidSignatureError",
    "MalformedClaimsError",
    "TokenExpiredError",
    "TokenBlacklistedError",
    "TokenNotCurrentError",
    "ForbiddenError",
    "ServerError",
    "RegistryUnavailableError",
]
