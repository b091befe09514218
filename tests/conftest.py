"""
Test fixtures for the Rotation Auth service.

This module provides pytest fixtures for the in-memory database, a controllable
clock, the token codec, the session registry, the authentication manager and
the FastAPI test client.
"""
import os

# Configure the environment before any application module reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REGISTRY_BACKEND"] = "memory"
os.environ["LOG_LEVEL"] = "DEBUG"

import jwt
import pytest
from fastapi.testclient import TestClient

from rotation_auth.auth import AuthenticationManager, CredentialVerifier, SqlCredentialStore
from rotation_auth.config.jwt_config import build_jwt_config
from rotation_auth.database import Database
from rotation_auth.dependencies import get_auth_manager
from rotation_auth.models import User
from rotation_auth.registry import InMemorySessionRegistry
from rotation_auth.token import TokenCodec
from main import app

TEST_SECRET = "rotation-auth-test-signing-secret-0123456789abcdef"
TEST_ISSUER = "rotation-auth-test"
ACCESS_TTL_MINUTES = 15
REFRESH_TTL_DAYS = 14


class FrozenClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sign_payload(payload, config):
    """Sign an arbitrary payload with the test key, bypassing the codec."""
    return jwt.encode(payload, config.signing_key, algorithm=config.algorithm)


@pytest.fixture(scope="function")
def clock():
    """Create a frozen clock."""
    return FrozenClock()


@pytest.fixture(scope="session")
def jwt_config():
    """Create the JWT configuration used by the tests."""
    return build_jwt_config(
        issuer=TEST_ISSUER,
        secret=TEST_SECRET,
        access_ttl_minutes=ACCESS_TTL_MINUTES,
        refresh_ttl_days=REFRESH_TTL_DAYS,
    )


@pytest.fixture(scope="function")
def codec(jwt_config, clock):
    """Create a token codec driven by the frozen clock."""
    return TokenCodec(jwt_config, clock=clock)


@pytest.fixture(scope="function")
def registry(clock):
    """Create an empty in-memory session registry."""
    return InMemorySessionRegistry(clock=clock)


@pytest.fixture(scope="function")
def database():
    """Create an in-memory test database."""
    db = Database("sqlite://", echo=False)
    db.create_all()
    yield db
    db.drop_all()


@pytest.fixture(scope="function")
def credential_store(database):
    """Create a credential store on the test database."""
    return SqlCredentialStore(database)


@pytest.fixture(scope="function")
def test_user(database):
    """Create the test user alice with password secret1."""
    with database.session_scope() as session:
        user = User(user_id="alice")
        user.set_password("secret1")
        session.add(user)
    return {"user_id": "alice", "password": "secret1"}


@pytest.fixture(scope="function")
def auth_manager(codec, registry, credential_store):
    """Create an authentication manager from the test collaborators."""
    return AuthenticationManager(
        verifier=CredentialVerifier(credential_store),
        codec=codec,
        registry=registry,
    )


@pytest.fixture(scope="function")
def user_tokens(auth_manager, test_user):
    """Log the test user in."""
    return auth_manager.login(test_user["user_id"], test_user["password"])


@pytest.fixture(scope="function")
def client(auth_manager):
    """Create a FastAPI test client using the test authentication manager."""
    app.dependency_overrides[get_auth_manager] = lambda: auth_manager

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def app_headers():
    """Headers of a native app client."""
    return {"X-Client-Platform": "app"}


@pytest.fixture(scope="function")
def web_headers():
    """Headers of a browser client."""
    return {"X-Client-Platform": "web"}
