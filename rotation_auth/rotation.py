"""
Refresh token rotation for the Rotation Auth service.

Each refresh token is single-use. A refresh succeeds only when the presented
token's jti is the one the session registry currently holds for its family;
the family then moves to a fresh jti and the presented token is dead. A
family is in one of two states:

    ACTIVE(jti) --refresh--> ACTIVE(jti')
    ACTIVE(jti) --logout / registry expiry--> REVOKED

REVOKED is terminal; only a new login creates a new family.

Concurrent refreshes with the same valid token are not locked: by default the
later registry write wins and the other caller holds a refresh token that is
already stale. With ``compare_and_swap`` enabled the registry update is atomic
and the losing request is rejected instead.
"""
import enum
import logging

from rotation_auth.config.jwt_config import TOKEN_TYPE_REFRESH
from rotation_auth.exceptions import TokenInvalidError, TokenMissingError
from rotation_auth.registry import SessionRegistry
from rotation_auth.token import TokenCodec, TokenPair, generate_token_id

# Configure logger
logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    """Registry-side state of a session family."""
    ACTIVE = "active"
    REVOKED = "revoked"


class RotationCoordinator:
    """Exchanges a current refresh token for a new access/refresh pair."""

    def __init__(
        self,
        codec: TokenCodec,
        registry: SessionRegistry,
        compare_and_swap: bool = False,
        revoke_family_on_reuse: bool = False,
    ):
        """
        Initialize the coordinator.

        Args:
            codec: Token codec used to parse and issue tokens.
            registry: Session registry holding the current jti per family.
            compare_and_swap: Update the registry atomically against the
                presented jti instead of overwriting it.
            revoke_family_on_reuse: Delete the family when a stale refresh
                token of a still-active family is presented.
        """
        self.codec = codec
        self.registry = registry
        self.compare_and_swap = compare_and_swap
        self.revoke_family_on_reuse = revoke_family_on_reuse

    # PUBLIC_INTERFACE
    def state_of(self, user_id: str, family_id: str) -> SessionState:
        """
        Get the registry state of a session family.

        Raises:
            RegistryUnavailableError: If the registry cannot be reached.
        """
        if self.registry.get(user_id, family_id) is None:
            return SessionState.REVOKED
        return SessionState.ACTIVE

    # PUBLIC_INTERFACE
    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Rotate a refresh token.

        Args:
            refresh_token: The refresh token presented by the client.

        Returns:
            A new token pair in the same family.

        Raises:
            TokenMissingError: If no token was supplied.
            TokenExpiredError: If the refresh token is past its expiry.
            TokenInvalidError: If the token does not verify, is not a refresh
                token, or is not the family's current token.
            RegistryUnavailableError: If the registry cannot be reached.
        """
        if not refresh_token or not refresh_token.strip():
            raise TokenMissingError("Refresh token is required")

        claims = self.codec.parse(refresh_token.strip())

        if claims.typ != TOKEN_TYPE_REFRESH:
            logger.warning(f"Refresh attempted with a '{claims.typ}' token for subject {claims.sub}")
            raise TokenInvalidError("Invalid token type. Expected refresh token")

        if not claims.fid or not claims.jti:
            logger.warning(f"Refresh token for subject {claims.sub} lacks fid or jti")
            raise TokenInvalidError("Refresh token does not identify a session")

        user_id, family_id, jti = claims.sub, claims.fid, claims.jti

        stored_jti = self.registry.get(user_id, family_id)
        if stored_jti is None:
            logger.warning(f"Refresh for revoked or expired family {family_id} of user {user_id}")
            raise TokenInvalidError("Session has been revoked or has expired")

        if stored_jti != jti:
            logger.warning(f"Stale refresh token reused for family {family_id} of user {user_id}")
            if self.revoke_family_on_reuse:
                self.registry.delete(user_id, family_id)
                logger.warning(f"Revoked family {family_id} of user {user_id} after refresh token reuse")
            raise TokenInvalidError("Refresh token has already been used")

        new_jti = generate_token_id()
        access_token = self.codec.issue_access(user_id, family_id)
        new_refresh_token = self.codec.issue_refresh(user_id, family_id, new_jti)
        ttl_seconds = self.codec.config.refresh_ttl_seconds

        if self.compare_and_swap:
            if not self.registry.compare_and_swap(user_id, family_id, jti, new_jti, ttl_seconds):
                logger.warning(f"Concurrent refresh lost the race for family {family_id} of user {user_id}")
                raise TokenInvalidError("Refresh token has already been used")
        else:
            self.registry.put(user_id, family_id, new_jti, ttl_seconds)

        logger.info(f"Rotated refresh token for family {family_id} of user {user_id}")
        return TokenPair(access_token=access_token, refresh_token=new_refresh_token)

