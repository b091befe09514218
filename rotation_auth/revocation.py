"""
Session revocation (logout) for the Rotation Auth service.

Access tokens are stateless and cannot be blacklisted; logout removes the
family's registry entry so no refresh token of that session can be used
again. The client is expected to discard its access token.
"""
import logging
from typing import Optional

from rotation_auth.exceptions import TokenInvalidError, TokenMissingError
from rotation_auth.registry import SessionRegistry
from rotation_auth.token import ParseExpired, ParseInvalid, TokenCodec

# Configure logger
logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


# PUBLIC_INTERFACE
def extract_bearer_token(value: Optional[str]) -> str:
    """
    Extract the token from an Authorization header value or a raw token.

    Accepts ``Bearer <token>`` (scheme matched case-insensitively) or a bare
    token.

    Args:
        value: Header value or raw token.

    Returns:
        The token string.

    Raises:
        TokenMissingError: If no token is present.
    """
    if value is None or not value.strip():
        raise TokenMissingError("Authorization token is required")

    parts = value.strip().split(None, 1)
    if len(parts) == 1:
        if parts[0].lower() == BEARER_SCHEME:
            raise TokenMissingError("Authorization token is required")
        return parts[0]

    scheme, token = parts
    if scheme.lower() != BEARER_SCHEME or not token.strip():
        raise TokenMissingError("Bearer token is required")
    return token.strip()


class RevocationHandler:
    """Revokes the session family a token belongs to."""

    def __init__(self, codec: TokenCodec, registry: SessionRegistry):
        self.codec = codec
        self.registry = registry

    # PUBLIC_INTERFACE
    def logout(self, bearer_token: Optional[str]) -> None:
        """
        Revoke the session family identified by a token.

        Either an access or a refresh token of the family may be presented.
        An expired token is accepted as long as its signature and issuer
        verify. Revoking an already revoked family succeeds.

        Args:
            bearer_token: ``Bearer <token>`` header value or the raw token.

        Raises:
            TokenMissingError: If no token was supplied.
            TokenInvalidError: If the token does not verify or carries no family id.
            RegistryUnavailableError: If the registry cannot be reached.
        """
        token = extract_bearer_token(bearer_token)

        result = self.codec.decode(token)
        if isinstance(result, ParseInvalid):
            logger.warning(f"Logout rejected: {result.reason}")
            raise TokenInvalidError(f"Invalid token: {result.reason}")
        if isinstance(result, ParseExpired):
            logger.debug("Logout with an expired token; revoking its family anyway")

        claims = result.claims
        if not claims.fid or not claims.fid.strip():
            logger.warning(f"Logout token for subject {claims.sub} carries no family id")
            raise TokenInvalidError("Token does not identify a session")

        self.registry.delete(claims.sub, claims.fid)
        logger.info(f"Revoked family {claims.fid} of user {claims.sub}")
