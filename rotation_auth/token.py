"""
JWT token codec for the Rotation Auth service.

This module signs and parses the two token kinds the service issues:
short-lived access tokens (``typ=at``) and rotating refresh tokens (``typ=rt``).
Both carry the same closed claim set; only refresh token ids are tracked
server-side (see ``rotation_auth.registry``).
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

import jwt
from jwt.exceptions import InvalidTokenError

from rotation_auth.config.jwt_config import (TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH,
                                             TOKEN_TYPES, JwtConfig)
from rotation_auth.exceptions import TokenExpiredError, TokenInvalidError

# Configure logger
logger = logging.getLogger(__name__)

# Claims every token must carry; fid and jti are checked by the callers that need them
REQUIRED_CLAIMS = ["sub", "iss", "iat", "exp", "typ"]

Clock = Callable[[], float]


# PUBLIC_INTERFACE
def generate_token_id() -> str:
    """Generate a random, globally unique identifier for a jti or family id."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Claims:
    """Typed view of a verified token payload."""
    sub: str
    iss: str
    iat: int
    exp: int
    typ: str
    jti: Optional[str] = None
    fid: Optional[str] = None

    @property
    def is_access(self) -> bool:
        return self.typ == TOKEN_TYPE_ACCESS

    @property
    def is_refresh(self) -> bool:
        return self.typ == TOKEN_TYPE_REFRESH

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "sub": self.sub,
            "iss": self.iss,
            "iat": self.iat,
            "exp": self.exp,
            "typ": self.typ,
        }
        if self.jti is not None:
            payload["jti"] = self.jti
        if self.fid is not None:
            payload["fid"] = self.fid
        return payload


@dataclass(frozen=True)
class ParseOk:
    """Signature, issuer and expiry all verified."""
    claims: Claims


@dataclass(frozen=True)
class ParseExpired:
    """Signature and issuer verified, but the token is past ``exp``."""
    claims: Claims


@dataclass(frozen=True)
class ParseInvalid:
    """The token could not be verified; no claims are available."""
    reason: str


ParseResult = Union[ParseOk, ParseExpired, ParseInvalid]


@dataclass(frozen=True)
class TokenPair:
    """An access token and the refresh token issued alongside it."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"

    def to_dict(self) -> Dict[str, str]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
        }


def _claims_from_payload(payload: Dict[str, Any]) -> Claims:
    """
    Build typed claims from a signature-verified payload.

    Raises:
        ValueError: If a claim has the wrong type or the token type is unknown.
    """
    typ = payload.get("typ")
    if typ not in TOKEN_TYPES:
        raise ValueError(f"Unrecognized token type: {typ!r}")

    for name in ("iat", "exp"):
        value = payload.get(name)
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"Claim '{name}' must be an integer timestamp")

    for name in ("sub", "iss"):
        if not isinstance(payload.get(name), str):
            raise ValueError(f"Claim '{name}' must be a string")

    for name in ("jti", "fid"):
        value = payload.get(name)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"Claim '{name}' must be a string")

    return Claims(
        sub=payload["sub"],
        iss=payload["iss"],
        iat=payload["iat"],
        exp=payload["exp"],
        typ=typ,
        jti=payload.get("jti"),
        fid=payload.get("fid"),
    )


class TokenCodec:
    """
    Signs and parses compact JWS tokens with a single process-wide key.

    The codec holds no mutable state: the key and lifetimes come from an
    immutable ``JwtConfig`` and the current time from the injected clock.
    """

    def __init__(self, config: JwtConfig, clock: Optional[Clock] = None):
        """
        Initialize the codec.

        Args:
            config: JWT configuration with the derived signing key.
            clock: Callable returning the current time in epoch seconds.
        """
        self.config = config
        self._clock = clock or time.time

    def now(self) -> int:
        """Current time as whole epoch seconds."""
        return int(self._clock())

    # PUBLIC_INTERFACE
    def issue_access(self, subject: str, fid: str) -> str:
        """
        Create a signed access token.

        The token gets a fresh random jti that is never persisted; access
        tokens are revoked only through their family.

        Args:
            subject: User identifier.
            fid: Family id of the originating session.

        Returns:
            Compact JWS string.
        """
        return self._encode(subject, TOKEN_TYPE_ACCESS, generate_token_id(), fid)

    # PUBLIC_INTERFACE
    def issue_refresh(self, subject: str, family_id: str, jti: str) -> str:
        """
        Create a signed refresh token.

        Args:
            subject: User identifier.
            family_id: Family id of the session.
            jti: Token id that the session registry will hold for this family.

        Returns:
            Compact JWS string.
        """
        return self._encode(subject, TOKEN_TYPE_REFRESH, jti, family_id)

    def _encode(self, subject: str, token_type: str, jti: str, fid: str) -> str:
        if not subject:
            raise ValueError("Token subject cannot be empty")

        issued_at = self.now()
        expires_at = issued_at + int(self.config.get_token_expiry(token_type).total_seconds())

        token_data = {
            "sub": str(subject),
            "iss": self.config.issuer,
            "iat": issued_at,
            "exp": expires_at,
            "typ": token_type,
            "jti": jti,
            "fid": fid,
        }

        encoded_token = jwt.encode(
            token_data,
            self.config.signing_key,
            algorithm=self.config.algorithm,
        )
        logger.debug(f"Issued {token_type} token for subject {subject} in family {fid}")
        return encoded_token

    # PUBLIC_INTERFACE
    def decode(self, token: str) -> ParseResult:
        """
        Verify a token and classify the outcome.

        Expiry is checked after signature and issuer verification, so an
        expired token still exposes its claims.

        Args:
            token: Compact JWS string.

        Returns:
            ParseOk, ParseExpired or ParseInvalid.
        """
        if not token or not isinstance(token, str):
            return ParseInvalid("Token cannot be empty")

        try:
            payload = jwt.decode(
                token,
                self.config.signing_key,
                algorithms=[self.config.algorithm],
                issuer=self.config.issuer,
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": REQUIRED_CLAIMS,
                },
            )
        except InvalidTokenError as e:
            logger.debug(f"Token verification failed: {str(e)}")
            return ParseInvalid(str(e))

        try:
            claims = _claims_from_payload(payload)
        except ValueError as e:
            logger.debug(f"Token claims rejected: {str(e)}")
            return ParseInvalid(str(e))

        if claims.exp <= self.now():
            return ParseExpired(claims)
        return ParseOk(claims)

    # PUBLIC_INTERFACE
    def parse(self, token: str) -> Claims:
        """
        Verify a token and return its claims.

        Args:
            token: Compact JWS string.

        Returns:
            Verified claims.

        Raises:
            TokenExpiredError: If the token is past its expiry. The claims are
                attached to the exception.
            TokenInvalidError: For any other verification failure.
        """
        result = self.decode(token)
        if isinstance(result, ParseOk):
            return result.claims
        if isinstance(result, ParseExpired):
            raise TokenExpiredError("Token has expired", claims=result.claims)
        raise TokenInvalidError(f"Invalid token: {result.reason}")
