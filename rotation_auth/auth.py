"""
Authentication functionality for the Rotation Auth service.

This module verifies credentials against the user store and exposes the three
operations callers use: login, refresh and logout. Login creates a new session
family; refresh and logout are delegated to the rotation coordinator and the
revocation handler.
"""
import abc
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from rotation_auth.config.jwt_config import TOKEN_TYPE_ACCESS, JwtConfig, get_jwt_config
from rotation_auth.config.settings import Settings, get_settings
from rotation_auth.database import Database, get_database
from rotation_auth.exceptions import InvalidCredentialsError, TokenInvalidError
from rotation_auth.models import User
from rotation_auth.registry import SessionRegistry, create_session_registry
from rotation_auth.revocation import RevocationHandler, extract_bearer_token
from rotation_auth.rotation import RotationCoordinator
from rotation_auth.security import PasswordManager, default_password_manager
from rotation_auth.token import Claims, TokenCodec, TokenPair, generate_token_id

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialRecord:
    """Read-only view of a stored credential."""
    user_id: str
    password_hash: str


class CredentialStore(abc.ABC):
    """Lookup of credential records by user id."""

    # PUBLIC_INTERFACE
    @abc.abstractmethod
    def find_by_user_id(self, user_id: str) -> Optional[CredentialRecord]:
        """Return the credential record for ``user_id``, or None if there is none."""


class SqlCredentialStore(CredentialStore):
    """Credential store backed by the ``users`` table."""

    def __init__(self, database: Optional[Database] = None):
        """
        Initialize the store.

        Args:
            database: Database to query. If None, the default database is used.
        """
        self._database = database

    @property
    def database(self) -> Database:
        return self._database or get_database()

    def find_by_user_id(self, user_id: str) -> Optional[CredentialRecord]:
        with self.database.session_scope() as session:
            user = session.query(User).filter(User.user_id == user_id).first()
            if user is None:
                return None
            return CredentialRecord(user_id=user.user_id, password_hash=user.hashed_password)


class CredentialVerifier:
    """Checks a user id and plaintext password against the stored hash."""

    def __init__(
        self,
        store: CredentialStore,
        password_manager: Optional[PasswordManager] = None,
    ):
        self.store = store
        self.password_manager = password_manager or default_password_manager

    # PUBLIC_INTERFACE
    def authenticate(self, user_id: str, password: str) -> CredentialRecord:
        """
        Authenticate a user.

        Args:
            user_id: Login identifier.
            password: Plain text password.

        Returns:
            The matching credential record.

        Raises:
            InvalidCredentialsError: If the user is unknown or the password does not match.
        """
        if not user_id or not password:
            raise InvalidCredentialsError("User id and password are required")

        record = self.store.find_by_user_id(user_id)
        if record is None:
            logger.warning(f"Login failed: unknown user {user_id}")
            raise InvalidCredentialsError("Invalid credentials")

        if not self.password_manager.verify_password(password, record.password_hash):
            logger.warning(f"Login failed: password mismatch for user {user_id}")
            raise InvalidCredentialsError("Invalid credentials")

        return record


class AuthenticationManager:
    """
    Entry point for login, refresh and logout.

    All collaborators are injected; ``build_auth_manager`` wires the defaults
    from settings.
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        codec: TokenCodec,
        registry: SessionRegistry,
        rotation: Optional[RotationCoordinator] = None,
        revocation: Optional[RevocationHandler] = None,
    ):
        self.verifier = verifier
        self.codec = codec
        self.registry = registry
        self.rotation = rotation or RotationCoordinator(codec, registry)
        self.revocation = revocation or RevocationHandler(codec, registry)

    @property
    def config(self) -> JwtConfig:
        return self.codec.config

    # PUBLIC_INTERFACE
    def login(self, user_id: str, password: str) -> TokenPair:
        """
        Authenticate a user and open a new session family.

        Args:
            user_id: Login identifier.
            password: Plain text password.

        Returns:
            Access and refresh tokens of the new family.

        Raises:
            InvalidCredentialsError: If authentication fails.
            RegistryUnavailableError: If the registry cannot be reached.
        """
        user = self.verifier.authenticate(user_id, password)

        family_id = generate_token_id()
        jti = generate_token_id()

        refresh_token = self.codec.issue_refresh(user.user_id, family_id, jti)
        access_token = self.codec.issue_access(user.user_id, family_id)

        self.registry.put(user.user_id, family_id, jti, self.config.refresh_ttl_seconds)

        logger.info(f"User {user.user_id} logged in; opened family {family_id}")
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    # PUBLIC_INTERFACE
    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange the current refresh token of a family for a new pair.

        See ``RotationCoordinator.refresh``.
        """
        return self.rotation.refresh(refresh_token)

    # PUBLIC_INTERFACE
    def logout(self, bearer_token: Optional[str]) -> None:
        """
        Revoke the session family of the presented token.

        See ``RevocationHandler.logout``.
        """
        self.revocation.logout(bearer_token)

    # PUBLIC_INTERFACE
    def authenticate_access(self, bearer_token: Optional[str]) -> Claims:
        """
        Verify an access token presented on a protected call.

        Access tokens are not checked against the registry; they remain
        usable until they expire.

        Args:
            bearer_token: ``Bearer <token>`` header value or the raw token.

        Returns:
            The access token claims.

        Raises:
            TokenMissingError: If no token was supplied.
            TokenExpiredError: If the token has expired.
            TokenInvalidError: If the token does not verify or is not an access token.
        """
        token = extract_bearer_token(bearer_token)
        claims = self.codec.parse(token)
        if claims.typ != TOKEN_TYPE_ACCESS:
            raise TokenInvalidError("Invalid token type. Expected access token")
        if not claims.fid:
            raise TokenInvalidError("Token does not identify a session")
        return claims


# PUBLIC_INTERFACE
def build_auth_manager(
    settings: Optional[Settings] = None,
    registry: Optional[SessionRegistry] = None,
    store: Optional[CredentialStore] = None,
    clock: Optional[Callable[[], float]] = None,
) -> AuthenticationManager:
    """
    Wire an AuthenticationManager from settings.

    Args:
        settings: Settings to read. Defaults to the global settings.
        registry: Session registry. Defaults to the configured backend.
        store: Credential store. Defaults to the SQL store on the default database.
        clock: Time source for token timestamps and in-memory registry expiry.

    Returns:
        A ready AuthenticationManager.
    """
    settings = settings or get_settings()
    codec = TokenCodec(get_jwt_config(settings), clock=clock)
    registry = registry or create_session_registry(settings, clock=clock)
    verifier = CredentialVerifier(store or SqlCredentialStore())
    rotation = RotationCoordinator(
        codec,
        registry,
        compare_and_swap=settings.REGISTRY_COMPARE_AND_SWAP,
        revoke_family_on_reuse=settings.REVOKE_FAMILY_ON_REUSE,
    )
    return AuthenticationManager(
        verifier=verifier,
        codec=codec,
        registry=registry,
        rotation=rotation,
        revocation=RevocationHandler(codec, registry),
    )
