"""
JWT configuration for the Rotation Auth service.

This module turns the raw JWT settings into one immutable ``JwtConfig`` value.
The signing key is derived here exactly once and then passed to the token
codec, so no module reads the secret from global state at signing time.
"""
import base64
import binascii
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from rotation_auth.config.settings import Settings, get_settings

# Token settings
TOKEN_TYPE_ACCESS = "at"
TOKEN_TYPE_REFRESH = "rt"
TOKEN_TYPES = (TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH)

SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")

# HS256 needs at least 256 bits of key material
MIN_SIGNING_KEY_BYTES = 32

SECONDS_PER_MINUTE = 60
SECONDS_PER_DAY = 86400


class ConfigurationError(ValueError):
    """Exception raised when the JWT configuration cannot be used."""
    pass


@dataclass(frozen=True)
class JwtConfig:
    """Immutable JWT configuration shared by the codec and the orchestrators."""
    issuer: str
    signing_key: bytes
    access_ttl_minutes: int
    refresh_ttl_days: int
    algorithm: str = "HS256"

    def __repr__(self) -> str:
        return (
            f"JwtConfig(issuer={self.issuer!r}, algorithm={self.algorithm!r}, "
            f"access_ttl_minutes={self.access_ttl_minutes}, refresh_ttl_days={self.refresh_ttl_days})"
        )

    @property
    def access_ttl_seconds(self) -> int:
        return self.access_ttl_minutes * SECONDS_PER_MINUTE

    @property
    def refresh_ttl_seconds(self) -> int:
        return self.refresh_ttl_days * SECONDS_PER_DAY

    # PUBLIC_INTERFACE
    def get_token_expiry(self, token_type: str) -> timedelta:
        """
        Get token expiry time based on token type.

        Args:
            token_type: Type of token (at or rt).

        Returns:
            Timedelta representing token expiry time.
        """
        if token_type == TOKEN_TYPE_ACCESS:
            return timedelta(seconds=self.access_ttl_seconds)
        elif token_type == TOKEN_TYPE_REFRESH:
            return timedelta(seconds=self.refresh_ttl_seconds)
        else:
            raise ValueError(f"Invalid token type: {token_type}")


# PUBLIC_INTERFACE
def derive_signing_key(raw_secret: str) -> bytes:
    """
    Normalize a configured secret into HMAC key bytes.

    A secret that decodes cleanly as standard base64 is used in decoded form;
    anything else is used as its UTF-8 bytes.

    Args:
        raw_secret: Secret string from configuration.

    Returns:
        Key bytes.

    Raises:
        ConfigurationError: If the secret is empty or the key is too short.
    """
    if not raw_secret:
        raise ConfigurationError("JWT signing secret must not be empty")

    try:
        key = base64.b64decode(raw_secret, validate=True)
    except (binascii.Error, ValueError):
        key = raw_secret.encode("utf-8")

    if len(key) < MIN_SIGNING_KEY_BYTES:
        raise ConfigurationError(
            f"JWT signing key is {len(key) * 8} bits; at least {MIN_SIGNING_KEY_BYTES * 8} bits are required"
        )
    return key


# PUBLIC_INTERFACE
def build_jwt_config(
    issuer: str,
    secret: str,
    access_ttl_minutes: int,
    refresh_ttl_days: int,
    algorithm: str = "HS256",
) -> JwtConfig:
    """
    Build a validated JwtConfig from plain values.

    Raises:
        ConfigurationError: If any value is unusable.
    """
    if not issuer:
        raise ConfigurationError("JWT issuer must not be empty")
    if access_ttl_minutes <= 0 or refresh_ttl_days <= 0:
        raise ConfigurationError("Token lifetimes must be positive")
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ConfigurationError(f"Unsupported JWT algorithm: {algorithm}")

    return JwtConfig(
        issuer=issuer,
        signing_key=derive_signing_key(secret),
        access_ttl_minutes=access_ttl_minutes,
        refresh_ttl_days=refresh_ttl_days,
        algorithm=algorithm,
    )


# PUBLIC_INTERFACE
def get_jwt_config(settings: Optional[Settings] = None) -> JwtConfig:
    """
    Get the JWT configuration derived from application settings.

    Args:
        settings: Settings to read. Defaults to the global settings.

    Returns:
        JwtConfig instance.
    """
    settings = settings or get_settings()
    return build_jwt_config(
        issuer=settings.JWT_ISSUER,
        secret=settings.JWT_SECRET_KEY,
        access_ttl_minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
        refresh_ttl_days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS,
        algorithm=settings.JWT_ALGORITHM,
    )
