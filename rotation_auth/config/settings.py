"""
Centralized configuration management for the Rotation Auth service.

This module provides a centralized configuration system using Pydantic BaseSettings
for managing JWT, session registry, database, HTTP and logging settings.
Every value can be overridden from the environment or a ``.env`` file.
"""
import json
import os
import secrets
from typing import Annotated, Any, List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

REGISTRY_BACKEND_REDIS = "redis"
REGISTRY_BACKEND_MEMORY = "memory"


class Settings(BaseSettings):
    """
    Settings class for all application configuration.

    Values are read once at process start; nothing in the package mutates them.
    """
    # Application settings
    APP_NAME: str = "Rotation Auth"
    APP_DESCRIPTION: str = "Token-rotation authentication core with server-side session families"
    APP_VERSION: str = "0.1.0"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # API settings
    API_PREFIX: str = "/api"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = False

    # CORS settings
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(default=["*"])

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS_ORIGINS from a comma separated string or JSON list."""
        if isinstance(v, str) and v.startswith("["):
            return json.loads(v)
        elif isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, list):
            return v
        raise ValueError(v)

    # JWT settings
    JWT_ISSUER: str = "rotation-auth"
    JWT_SECRET_KEY: str = Field(default_factory=lambda: secrets.token_urlsafe(48))
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=30, gt=0)
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=14, gt=0)

    # Session registry settings
    REGISTRY_BACKEND: str = REGISTRY_BACKEND_REDIS
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0
    REGISTRY_KEY_PREFIX: str = "RT"
    REGISTRY_COMPARE_AND_SWAP: bool = False
    REVOKE_FAMILY_ON_REUSE: bool = False

    @field_validator("REGISTRY_BACKEND")
    @classmethod
    def check_registry_backend(cls, v: str) -> str:
        """Only the redis and in-memory registries exist."""
        v = v.strip().lower()
        if v not in (REGISTRY_BACKEND_REDIS, REGISTRY_BACKEND_MEMORY):
            raise ValueError(f"Unsupported registry backend: {v}")
        return v

    # HTTP adapter settings
    CLIENT_PLATFORM_HEADER: str = "X-Client-Platform"
    REFRESH_COOKIE_NAME: str = "refreshToken"
    REFRESH_COOKIE_SECURE: bool = True

    # Database settings
    DATABASE_URL: Optional[str] = None
    DATABASE_ECHO: bool = False

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_url(cls, v: Optional[str]) -> Any:
        """Set default SQLite database URL if not provided."""
        if isinstance(v, str) and v:
            return v

        # Default to SQLite database in project root
        base_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
        return f"sqlite:///{os.path.join(base_dir, 'auth.db')}"

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
        "validate_default": True,
    }


# Create a global settings instance
settings = Settings()


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """
    Get the application settings.

    Returns:
        Settings: The application settings instance.
    """
    return settings
