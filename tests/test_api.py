"""
Tests for the API endpoints.

This module tests the FastAPI endpoints for login, token refresh, logout and
session inspection provided by the rotation_auth.api module, including the
platform dependent delivery of the refresh token.
"""
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest
from fastapi import status

from main import app
from rotation_auth import dependencies
from rotation_auth.auth import AuthenticationManager, CredentialVerifier
from rotation_auth.dependencies import get_auth_manager
from rotation_auth.exceptions import RegistryUnavailableError
from rotation_auth.registry import SessionRegistry

LOGIN_URL = "/api/auth/login"
REFRESH_URL = "/api/auth/refresh"
LOGOUT_URL = "/api/auth/logout"
SESSION_URL = "/api/auth/session"


def login(client, headers):
    response = client.post(
        LOGIN_URL,
        json={"userId": "alice", "password": "secret1"},
        headers=headers,
    )
    assert response.status_code == status.HTTP_200_OK
    return response


def cookie_attributes(response):
    """Split the refresh cookie's Set-Cookie header into its value and attributes."""
    header = response.headers.get("set-cookie")
    assert header is not None
    parts = [part.strip() for part in header.split(";")]
    name, _, value = parts[0].partition("=")
    attributes = {}
    for part in parts[1:]:
        key, _, attr_value = part.partition("=")
        attributes[key.lower()] = attr_value
    return name, value, attributes


# Login

def test_login_app_client(client, test_user, app_headers):
    """Test login for an app client returns both tokens in the body."""
    response = login(client, app_headers)

    # Verify response
    body = response.json()
    assert body["status"] is True
    assert body["code"] == 200
    assert body["message"] == "success"
    assert body["data"]["accessToken"]
    assert body["data"]["refreshToken"]
    assert body["data"]["tokenType"] == "bearer"
    assert "set-cookie" not in response.headers


def test_login_web_client(client, test_user, web_headers, jwt_config):
    """Test login for a web client sets the refresh token as an HttpOnly cookie."""
    response = login(client, web_headers)

    # Verify response
    data = response.json()["data"]
    assert data["accessToken"]
    assert data["refreshToken"] is None

    name, value, attributes = cookie_attributes(response)
    assert name == "refreshToken"
    assert value
    assert "httponly" in attributes
    assert "secure" in attributes
    assert attributes["samesite"].lower() == "strict"
    assert attributes["path"] == "/"
    assert int(attributes["max-age"]) == jwt_config.refresh_ttl_days * 86400


def test_login_platform_header_is_case_insensitive(client, test_user):
    response = login(client, {"X-Client-Platform": "  APP "})
    assert response.json()["data"]["refreshToken"]


def test_login_without_platform_header(client, test_user):
    """Test login without the client platform header."""
    response = client.post(LOGIN_URL, json={"userId": "alice", "password": "secret1"})

    # Verify response
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    body = response.json()
    assert body["status"] is False
    assert body["code"] == 400
    assert body["message"] == "missing_client_platform_header"
    assert body["data"] is None


def test_login_with_unsupported_platform(client, test_user):
    response = client.post(
        LOGIN_URL,
        json={"userId": "alice", "password": "secret1"},
        headers={"X-Client-Platform": "desktop"},
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "invalid_client_platform"


def test_login_invalid_password(client, test_user, app_headers):
    """Test login with an invalid password."""
    response = client.post(
        LOGIN_URL,
        json={"userId": "alice", "password": "wrong"},
        headers=app_headers,
    )

    # Verify response
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "invalid_credentials"
    assert response.headers["www-authenticate"] == (
        'Bearer error="invalid_token", error_description="invalid_credentials"'
    )


def test_login_unknown_user(client, test_user, app_headers):
    response = client.post(
        LOGIN_URL,
        json={"userId": "bob", "password": "secret1"},
        headers=app_headers,
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "invalid_credentials"


def test_login_requires_password(client, test_user, app_headers):
    response = client.post(LOGIN_URL, json={"userId": "alice"}, headers=app_headers)
    assert response.status_code == 422


# Refresh

def test_refresh_app_client(client, test_user, app_headers):
    """Test refresh token rotation for an app client."""
    tokens = login(client, app_headers).json()["data"]

    response = client.post(
        REFRESH_URL,
        json={"refreshToken": tokens["refreshToken"]},
        headers=app_headers,
    )

    # Verify response
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["refreshToken"] != tokens["refreshToken"]
    assert data["accessToken"]


def test_refresh_token_reuse(client, test_user, app_headers):
    """Test that a rotated refresh token cannot be used again."""
    tokens = login(client, app_headers).json()["data"]
    first = client.post(REFRESH_URL, json={"refreshToken": tokens["refreshToken"]}, headers=app_headers)
    assert first.status_code == status.HTTP_200_OK

    response = client.post(REFRESH_URL, json={"refreshToken": tokens["refreshToken"]}, headers=app_headers)

    # Verify response
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "invalid_token"
    assert response.headers["www-authenticate"] == (
        'Bearer error="invalid_token", error_description="invalid_token"'
    )


def test_refresh_web_client_uses_cookie(client, test_user, web_headers):
    """Test that web clients refresh from the cookie and get a rotated cookie back."""
    _, refresh_token, _ = cookie_attributes(login(client, web_headers))

    response = client.post(
        REFRESH_URL,
        headers={**web_headers, "Cookie": f"refreshToken={refresh_token}"},
    )

    # Verify response
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["refreshToken"] is None
    _, rotated, attributes = cookie_attributes(response)
    assert rotated and rotated != refresh_token
    assert "httponly" in attributes


def test_refresh_web_client_prefers_cookie(client, test_user, web_headers):
    _, refresh_token, _ = cookie_attributes(login(client, web_headers))

    response = client.post(
        REFRESH_URL,
        json={"refreshToken": "garbage"},
        headers={**web_headers, "Cookie": f"refreshToken={refresh_token}"},
    )

    assert response.status_code == status.HTTP_200_OK


def test_refresh_app_client_prefers_body(client, test_user, app_headers):
    tokens = login(client, app_headers).json()["data"]

    response = client.post(
        REFRESH_URL,
        json={"refreshToken": tokens["refreshToken"]},
        headers={**app_headers, "Cookie": "refreshToken=garbage"},
    )

    assert response.status_code == status.HTTP_200_OK


def test_refresh_app_client_falls_back_to_cookie(client, test_user, app_headers):
    tokens = login(client, app_headers).json()["data"]

    response = client.post(
        REFRESH_URL,
        headers={**app_headers, "Cookie": f"refreshToken={tokens['refreshToken']}"},
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["refreshToken"]


def test_refresh_without_token(client, app_headers):
    """Test refresh without a refresh token."""
    response = client.post(REFRESH_URL, headers=app_headers)

    # Verify response
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "token_missing"


def test_refresh_with_blank_token(client, app_headers):
    response = client.post(REFRESH_URL, json={"refreshToken": "   "}, headers=app_headers)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "token_missing"


def test_refresh_with_expired_token(client, test_user, app_headers, clock, jwt_config):
    tokens = login(client, app_headers).json()["data"]
    clock.advance(jwt_config.refresh_ttl_seconds)

    response = client.post(REFRESH_URL, json={"refreshToken": tokens["refreshToken"]}, headers=app_headers)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "token_expired"


def test_refresh_with_access_token(client, test_user, app_headers):
    tokens = login(client, app_headers).json()["data"]

    response = client.post(REFRESH_URL, json={"refreshToken": tokens["accessToken"]}, headers=app_headers)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "invalid_token"


# Logout

def test_logout_then_refresh(client, test_user, app_headers):
    """Test that a refresh token stops working after logout."""
    tokens = login(client, app_headers).json()["data"]

    response = client.post(
        LOGOUT_URL,
        headers={**app_headers, "Authorization": f"Bearer {tokens['accessToken']}"},
    )

    # Verify response
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["status"] is True
    assert body["message"] == "Logged out"

    response = client.post(REFRESH_URL, json={"refreshToken": tokens["refreshToken"]}, headers=app_headers)
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "invalid_token"


def test_logout_with_expired_access_token(client, test_user, app_headers, clock, jwt_config):
    """Test that logout accepts an expired access token and can be repeated."""
    tokens = login(client, app_headers).json()["data"]
    clock.advance(jwt_config.access_ttl_seconds + 1)
    headers = {**app_headers, "Authorization": f"Bearer {tokens['accessToken']}"}

    assert client.post(LOGOUT_URL, headers=headers).status_code == status.HTTP_200_OK
    assert client.post(LOGOUT_URL, headers=headers).status_code == status.HTTP_200_OK


def test_web_logout_clears_cookie(client, test_user, web_headers):
    access_token = login(client, web_headers).json()["data"]["accessToken"]

    response = client.post(
        LOGOUT_URL,
        headers={**web_headers, "Authorization": f"Bearer {access_token}"},
    )

    assert response.status_code == status.HTTP_200_OK
    name, _, attributes = cookie_attributes(response)
    assert name == "refreshToken"
    assert attributes["max-age"] == "0"


def test_logout_without_authorization(client, app_headers):
    response = client.post(LOGOUT_URL, headers=app_headers)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "token_missing"


def test_logout_with_invalid_token(client, app_headers):
    response = client.post(LOGOUT_URL, headers={**app_headers, "Authorization": "Bearer garbage"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "invalid_token"


# Session

def test_session_state_follows_logout(client, test_user, app_headers):
    """Test that the session endpoint reports the family as revoked after logout."""
    tokens = login(client, app_headers).json()["data"]
    auth_header = {"Authorization": f"Bearer {tokens['accessToken']}"}

    response = client.get(SESSION_URL, headers=auth_header)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["userId"] == "alice"
    assert data["familyId"]
    assert data["state"] == "active"

    client.post(LOGOUT_URL, headers={**app_headers, **auth_header})

    # The access token stays usable until it expires
    response = client.get(SESSION_URL, headers=auth_header)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["state"] == "revoked"


def test_session_rejects_refresh_token(client, test_user, app_headers):
    tokens = login(client, app_headers).json()["data"]

    response = client.get(SESSION_URL, headers={"Authorization": f"Bearer {tokens['refreshToken']}"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "invalid_token"


def test_session_without_token(client):
    response = client.get(SESSION_URL)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "token_missing"


def test_session_with_expired_token(client, test_user, app_headers, clock, jwt_config):
    tokens = login(client, app_headers).json()["data"]
    clock.advance(jwt_config.access_ttl_seconds)

    response = client.get(SESSION_URL, headers={"Authorization": f"Bearer {tokens['accessToken']}"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["message"] == "token_expired"


# Registry outage

@pytest.fixture
def unavailable_registry_client(client, codec, credential_store):
    """Client whose authentication manager talks to an unreachable registry."""
    registry = MagicMock(spec=SessionRegistry)
    for method in ("put", "get", "delete", "compare_and_swap", "ttl"):
        getattr(registry, method).side_effect = RegistryUnavailableError("down")
    registry.ping.return_value = False

    manager = AuthenticationManager(CredentialVerifier(credential_store), codec, registry)
    app.dependency_overrides[get_auth_manager] = lambda: manager
    return client


def test_login_with_registry_down(unavailable_registry_client, test_user, app_headers):
    """Test that a registry outage is reported as 503."""
    response = unavailable_registry_client.post(
        LOGIN_URL,
        json={"userId": "alice", "password": "secret1"},
        headers=app_headers,
    )

    # Verify response
    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["message"] == "service_unavailable"


def test_refresh_with_registry_down(unavailable_registry_client, codec, app_headers):
    refresh_token = codec.issue_refresh("alice", "family-1", "jti-1")

    response = unavailable_registry_client.post(
        REFRESH_URL,
        json={"refreshToken": refresh_token},
        headers=app_headers,
    )

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["message"] == "service_unavailable"


def test_health_with_registry_down(unavailable_registry_client):
    response = unavailable_registry_client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "degraded"


# Health

def test_health_check(client):
    """Test the health check endpoint."""
    response = client.get("/health")

    # Verify response
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "ok"
    assert data["registry"] == "ok"
    assert data["version"]


# Authentication challenge

def test_challenge_without_token(client, app_headers):
    """A request without a token gets a bare Bearer challenge."""
    response = client.post(LOGOUT_URL, headers=app_headers)

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.headers["www-authenticate"] == "Bearer"


def test_challenge_for_expired_token(client, test_user, app_headers, clock, jwt_config):
    tokens = login(client, app_headers).json()["data"]
    clock.advance(jwt_config.access_ttl_seconds)

    response = client.get(SESSION_URL, headers={"Authorization": f"Bearer {tokens['accessToken']}"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.headers["www-authenticate"] == (
        'Bearer error="invalid_token", error_description="token_expired"'
    )


def test_no_challenge_on_registry_outage(unavailable_registry_client, test_user, app_headers):
    response = unavailable_registry_client.post(
        LOGIN_URL,
        json={"userId": "alice", "password": "secret1"},
        headers=app_headers,
    )

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert "www-authenticate" not in response.headers


# Dependencies

def test_auth_manager_is_built_once_under_concurrency():
    """Concurrent first requests share a single authentication manager."""
    built = []

    def slow_build(settings):
        time.sleep(0.05)
        manager = object()
        built.append(manager)
        return manager

    with patch.object(dependencies, "_auth_manager", None), \
            patch.object(dependencies, "build_auth_manager", side_effect=slow_build):
        with ThreadPoolExecutor(max_workers=8) as executor:
            managers = list(executor.map(lambda _: dependencies.get_auth_manager(), range(8)))

    assert len(built) == 1
    assert all(manager is built[0] for manager in managers)
