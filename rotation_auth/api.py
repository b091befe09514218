"""
API router and Pydantic models for the Rotation Auth service.

This module provides the FastAPI router with the login, refresh, logout and
session endpoints. Delivery of the refresh token depends on the client
platform: ``web`` clients get it only as an HttpOnly cookie, ``app`` clients
get it in the response body.
"""
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field

from rotation_auth.auth import AuthenticationManager
from rotation_auth.config import settings
from rotation_auth.dependencies import (PLATFORM_WEB, get_auth_manager,
                                        get_client_platform, get_current_claims)
from rotation_auth.exceptions import TokenMissingError
from rotation_auth.token import Claims, TokenPair

# Create API router
router = APIRouter(tags=["authentication"])


# Pydantic models for request/response
class LoginRequest(BaseModel):
    """Request model for login."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1, description="User identifier")
    password: str = Field(..., min_length=1, description="User password")


class TokenRefreshRequest(BaseModel):
    """Request model for token refresh."""
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(None, alias="refreshToken", description="JWT refresh token")


class TokenResponse(BaseModel):
    """Token pair as returned to the client."""
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken", description="JWT access token")
    refresh_token: Optional[str] = Field(None, alias="refreshToken", description="JWT refresh token")
    token_type: str = Field("bearer", alias="tokenType", description="Token type")


class SessionResponse(BaseModel):
    """Session information for the presented access token."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    family_id: str = Field(..., alias="familyId")
    expires_at: int = Field(..., alias="expiresAt", description="Access token expiry (epoch seconds)")
    state: str = Field(..., description="Registry state of the session family")


class ApiResponse(BaseModel):
    """Common response envelope."""
    status: bool = Field(..., description="Whether the request succeeded")
    code: int = Field(..., description="HTTP status code")
    message: Optional[str] = Field(None, description="Success or error message")
    data: Optional[Any] = Field(None, description="Response payload")

    @classmethod
    def ok(cls, data: Any = None, message: str = "success") -> "ApiResponse":
        return cls(status=True, code=status.HTTP_200_OK, message=message, data=data)

    @classmethod
    def error(cls, code: int, message: str) -> "ApiResponse":
        return cls(status=False, code=code, message=message or None, data=None)


def _refresh_cookie_max_age(manager: AuthenticationManager) -> int:
    return manager.config.refresh_ttl_seconds


def _set_refresh_cookie(response: Response, refresh_token: str, manager: AuthenticationManager) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        max_age=_refresh_cookie_max_age(manager),
        path="/",
        secure=settings.REFRESH_COOKIE_SECURE,
        httponly=True,
        samesite="strict",
    )


def _token_payload(
    tokens: TokenPair,
    platform: str,
    response: Response,
    manager: AuthenticationManager,
) -> dict:
    """Deliver a token pair according to the client platform."""
    if platform == PLATFORM_WEB:
        _set_refresh_cookie(response, tokens.refresh_token, manager)
        body = TokenResponse(access_token=tokens.access_token, token_type=tokens.token_type)
    else:
        body = TokenResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
        )
    return body.model_dump(by_alias=True)


def _has_text(value: Optional[str]) -> bool:
    return value is not None and bool(value.strip())


# API endpoints
@router.post(
    "/login",
    response_model=ApiResponse,
    status_code=status.HTTP_200_OK,
    responses={
        400: {"model": ApiResponse, "description": "Missing or invalid client platform"},
        401: {"model": ApiResponse, "description": "Invalid credentials"},
        503: {"model": ApiResponse, "description": "Session registry unavailable"},
    },
    summary="Authenticate user and get tokens",
    description="Authenticate with user id and password and open a new session family.",
)
def login(
    login_data: LoginRequest,
    response: Response,
    platform: str = Depends(get_client_platform),
    manager: AuthenticationManager = Depends(get_auth_manager),
):
    """
    Authenticate a user and issue an access/refresh token pair.

    Args:
        login_data: User login credentials.
        response: Response used to set the refresh cookie for web clients.
        platform: Normalized client platform.
        manager: Authentication manager.

    Returns:
        ApiResponse with the tokens.
    """
    tokens = manager.login(login_data.user_id, login_data.password)
    return ApiResponse.ok(_token_payload(tokens, platform, response, manager))


@router.post(
    "/refresh",
    response_model=ApiResponse,
    status_code=status.HTTP_200_OK,
    responses={
        400: {"model": ApiResponse, "description": "Missing or invalid client platform"},
        401: {"model": ApiResponse, "description": "Missing, expired, invalid or reused refresh token"},
        503: {"model": ApiResponse, "description": "Session registry unavailable"},
    },
    summary="Rotate the refresh token",
    description="Exchange the current refresh token for a new access/refresh pair in the same session family.",
)
def refresh(
    request: Request,
    response: Response,
    refresh_data: Optional[TokenRefreshRequest] = Body(None),
    platform: str = Depends(get_client_platform),
    manager: AuthenticationManager = Depends(get_auth_manager),
):
    """
    Rotate a refresh token.

    Web clients are read cookie first, app clients body first; either falls
    back to the other source.

    Args:
        request: FastAPI request object.
        response: Response used to set the rotated cookie for web clients.
        refresh_data: Optional body carrying the refresh token.
        platform: Normalized client platform.
        manager: Authentication manager.

    Returns:
        ApiResponse with the new tokens.
    """
    from_cookie = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    from_body = refresh_data.refresh_token if refresh_data else None

    if platform == PLATFORM_WEB:
        refresh_token = from_cookie if _has_text(from_cookie) else from_body
    else:
        refresh_token = from_body if _has_text(from_body) else from_cookie

    if not _has_text(refresh_token):
        raise TokenMissingError("Refresh token is required")

    tokens = manager.refresh(refresh_token)
    return ApiResponse.ok(_token_payload(tokens, platform, response, manager))


@router.post(
    "/logout",
    response_model=ApiResponse,
    status_code=status.HTTP_200_OK,
    responses={
        400: {"model": ApiResponse, "description": "Missing or invalid client platform"},
        401: {"model": ApiResponse, "description": "Missing or invalid token"},
        503: {"model": ApiResponse, "description": "Session registry unavailable"},
    },
    summary="Log out of the current session",
    description="Revoke the session family of the bearer token. Expired access tokens are accepted.",
)
def logout(
    response: Response,
    authorization: Optional[str] = Header(None),
    platform: str = Depends(get_client_platform),
    manager: AuthenticationManager = Depends(get_auth_manager),
):
    """
    Revoke the session family identified by the Authorization header.

    Args:
        response: Response used to clear the refresh cookie for web clients.
        authorization: Authorization header value.
        platform: Normalized client platform.
        manager: Authentication manager.

    Returns:
        ApiResponse confirming the logout.
    """
    manager.logout(authorization)

    if platform == PLATFORM_WEB:
        response.delete_cookie(
            key=settings.REFRESH_COOKIE_NAME,
            path="/",
            secure=settings.REFRESH_COOKIE_SECURE,
            httponly=True,
            samesite="strict",
        )

    return ApiResponse.ok(message="Logged out")


@router.get(
    "/session",
    response_model=ApiResponse,
    status_code=status.HTTP_200_OK,
    responses={
        401: {"model": ApiResponse, "description": "Missing, expired or invalid access token"},
        503: {"model": ApiResponse, "description": "Session registry unavailable"},
    },
    summary="Describe the current session",
    description="Return the user and session family of the presented access token.",
)
def current_session(
    claims: Claims = Depends(get_current_claims),
    manager: AuthenticationManager = Depends(get_auth_manager),
):
    """
    Describe the session behind the presented access token.

    Args:
        claims: Verified access token claims.
        manager: Authentication manager.

    Returns:
        ApiResponse with the session information.
    """
    state = manager.rotation.state_of(claims.sub, claims.fid)
    body = SessionResponse(
        user_id=claims.sub,
        family_id=claims.fid,
        expires_at=claims.exp,
        state=state.value,
    )
    return ApiResponse.ok(body.model_dump(by_alias=True))
