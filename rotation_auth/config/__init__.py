"""
Configuration package for the Rotation Auth service.

This package provides the application settings and the derived JWT configuration.
"""

from rotation_auth.config.jwt_config import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    ConfigurationError,
    JwtConfig,
    build_jwt_config,
    derive_signing_key,
    get_jwt_config,
)
from rotation_auth.config.settings import Settings, settings, get_settings

__all__ = [
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
    "ConfigurationError",
    "JwtConfig",
    "build_jwt_config",
    "derive_signing_key",
    "get_jwt_config",
    "Settings",
    "settings",
    "get_settings",
]
