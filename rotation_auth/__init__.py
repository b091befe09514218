"""
Rotation Auth.

This package provides the token-rotation authentication core:
- Credential verification against stored bcrypt hashes
- Access and refresh JWT issuance and parsing
- Refresh token rotation with reuse detection
- Per-session (family) revocation through a server-side registry
"""

__version__ = "0.1.0"

# Export config and errors first to avoid circular imports
from rotation_auth.config import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    JwtConfig,
    build_jwt_config,
    get_jwt_config,
)
from rotation_auth.exceptions import (
    AuthCoreError,
    ErrorCode,
    InvalidCredentialsError,
    RegistryUnavailableError,
    TokenError,
    TokenExpiredError,
    TokenInvalidError,
    TokenMissingError,
)

# Export codec and registry next as the orchestrators depend on them
from rotation_auth.token import (
    Claims,
    ParseExpired,
    ParseInvalid,
    ParseOk,
    TokenCodec,
    TokenPair,
)
from rotation_auth.registry import (
    InMemorySessionRegistry,
    RedisSessionRegistry,
    SessionRegistry,
    create_session_registry,
    make_registry_key,
)

# Export orchestrators last
from rotation_auth.rotation import RotationCoordinator, SessionState
from rotation_auth.revocation import RevocationHandler, extract_bearer_token
from rotation_auth.auth import (
    AuthenticationManager,
    CredentialRecord,
    CredentialStore,
    CredentialVerifier,
    SqlCredentialStore,
    build_auth_manager,
)

__all__ = [
    # Config
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
    "JwtConfig",
    "build_jwt_config",
    "get_jwt_config",

    # Errors
    "AuthCoreError",
    "ErrorCode",
    "InvalidCredentialsError",
    "RegistryUnavailableError",
    "TokenError",
    "TokenExpiredError",
    "TokenInvalidError",
    "TokenMissingError",

    # Token codec
    "Claims",
    "ParseExpired",
    "ParseInvalid",
    "ParseOk",
    "TokenCodec",
    "TokenPair",

    # Session registry
    "InMemorySessionRegistry",
    "RedisSessionRegistry",
    "SessionRegistry",
    "create_session_registry",
    "make_registry_key",

    # Orchestration
    "RotationCoordinator",
    "SessionState",
    "RevocationHandler",
    "extract_bearer_token",
    "AuthenticationManager",
    "CredentialRecord",
    "CredentialStore",
    "CredentialVerifier",
    "SqlCredentialStore",
    "build_auth_manager",
]
