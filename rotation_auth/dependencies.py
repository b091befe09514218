"""
Dependency injection for the Rotation Auth service.

This module provides FastAPI dependency functions that hand the HTTP layer
its authentication manager, the current access token claims and the
normalized client platform.
"""
import logging
import threading
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rotation_auth.auth import AuthenticationManager, build_auth_manager
from rotation_auth.config import settings
from rotation_auth.exceptions import ClientPlatformError, ErrorCode, TokenMissingError
from rotation_auth.token import Claims

logger = logging.getLogger(__name__)

PLATFORM_WEB = "web"
PLATFORM_APP = "app"
SUPPORTED_PLATFORMS = (PLATFORM_WEB, PLATFORM_APP)

# Security scheme for JWT tokens
security = HTTPBearer(auto_error=False)

_auth_manager: Optional[AuthenticationManager] = None
_auth_manager_lock = threading.Lock()


# PUBLIC_INTERFACE
def get_auth_manager() -> AuthenticationManager:
    """
    Get the process-wide authentication manager, building it on first use.

    Returns:
        AuthenticationManager wired from settings.
    """
    global _auth_manager
    if _auth_manager is None:
        # Sync endpoints run in a threadpool; build exactly one manager
        with _auth_manager_lock:
            if _auth_manager is None:
                _auth_manager = build_auth_manager(settings)
    return _auth_manager


# PUBLIC_INTERFACE
def get_client_platform(request: Request) -> str:
    """
    Read and validate the client platform header.

    Args:
        request: FastAPI request object.

    Returns:
        ``web`` or ``app``.

    Raises:
        ClientPlatformError: If the header is absent or has an unsupported value.
    """
    platform = request.headers.get(settings.CLIENT_PLATFORM_HEADER)
    if platform is None or not platform.strip():
        raise ClientPlatformError(
            f"{settings.CLIENT_PLATFORM_HEADER} header is required",
            error_code=ErrorCode.MISSING_CLIENT_PLATFORM_HEADER,
        )

    normalized = platform.strip().lower()
    if normalized not in SUPPORTED_PLATFORMS:
        raise ClientPlatformError(f"Unsupported client platform: {platform}")

    logger.debug(f"Client platform {normalized} for {request.method} {request.url.path}")
    return normalized


# PUBLIC_INTERFACE
def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    manager: AuthenticationManager = Depends(get_auth_manager),
) -> Claims:
    """
    Get the claims of the access token on the current request.

    Args:
        credentials: HTTP Authorization credentials.
        manager: Authentication manager.

    Returns:
        Verified access token claims.

    Raises:
        TokenMissingError: If no bearer token is present.
        TokenExpiredError: If the access token has expired.
        TokenInvalidError: If the token is not a valid access token.
    """
    if not credentials:
        raise TokenMissingError("Not authenticated")
    return manager.authenticate_access(credentials.credentials)
