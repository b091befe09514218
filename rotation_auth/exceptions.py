"""
Exception taxonomy for the Rotation Auth service.

Every failure the core can report is an ``AuthCoreError`` carrying an
``ErrorCode``. The HTTP layer maps the code to a response; the core itself
never retries any of them.
"""
import enum


class ErrorCode(enum.Enum):
    """Error codes with their HTTP status and message key."""
    INVALID_REQUEST = (400, "invalid_request")
    MISSING_CLIENT_PLATFORM_HEADER = (400, "missing_client_platform_header")
    INVALID_CLIENT_PLATFORM = (400, "invalid_client_platform")
    INVALID_CREDENTIALS = (401, "invalid_credentials")
    TOKEN_MISSING = (401, "token_missing")
    TOKEN_EXPIRED = (401, "token_expired")
    INVALID_TOKEN = (401, "invalid_token")
    SERVICE_UNAVAILABLE = (503, "service_unavailable")

    def __init__(self, http_status: int, message_key: str):
        self.http_status = http_status
        self.message_key = message_key


class AuthCoreError(Exception):
    """Base exception for all authentication core errors."""
    error_code = ErrorCode.INVALID_REQUEST

    def __init__(self, message: str = None):
        super().__init__(message or self.error_code.message_key)

    @property
    def http_status(self) -> int:
        return self.error_code.http_status


class InvalidCredentialsError(AuthCoreError):
    """Exception raised for an unknown user or a password mismatch."""
    error_code = ErrorCode.INVALID_CREDENTIALS


class TokenError(AuthCoreError):
    """Base exception for token-related errors."""
    error_code = ErrorCode.INVALID_TOKEN


class TokenMissingError(TokenError):
    """Exception raised when no token was supplied where one is required."""
    error_code = ErrorCode.TOKEN_MISSING


class TokenExpiredError(TokenError):
    """
    Exception raised when a correctly signed token is past its expiry.

    The verified claims stay available on ``claims`` so callers that tolerate
    expiry (logout) can still use them.
    """
    error_code = ErrorCode.TOKEN_EXPIRED

    def __init__(self, message: str = None, claims=None):
        super().__init__(message)
        self.claims = claims


class TokenInvalidError(TokenError):
    """Exception raised for bad signatures, wrong issuer, malformed claims or registry mismatch."""
    error_code = ErrorCode.INVALID_TOKEN


class RegistryUnavailableError(AuthCoreError):
    """Exception raised when the session registry cannot be reached."""
    error_code = ErrorCode.SERVICE_UNAVAILABLE


class ClientPlatformError(AuthCoreError):
    """Exception raised when the client platform header is absent or unsupported."""
    error_code = ErrorCode.INVALID_CLIENT_PLATFORM

    def __init__(self, message: str = None, error_code: ErrorCode = None):
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)
