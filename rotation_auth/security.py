"""
Password hashing for the Rotation Auth service.

Hashes are produced and checked by passlib's bcrypt scheme. The comparison is
constant-time inside the hash primitive; nothing here compares hashes directly.
"""
import logging
from typing import Optional

from passlib.context import CryptContext

# Configure logging
logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class PasswordManager:
    """
    Password management utilities.

    Provides functionality for hashing and verifying passwords.
    """

    def __init__(self, context: Optional[CryptContext] = None):
        """
        Initialize the password manager.

        Args:
            context: Optional passlib context. Defaults to the bcrypt context.
        """
        self.context = context or pwd_context

    # PUBLIC_INTERFACE
    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password to hash.

        Returns:
            Hashed password string.
        """
        if not password:
            raise ValueError("Password cannot be empty")
        return self.context.hash(password)

    # PUBLIC_INTERFACE
    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against a hash.

        Malformed or unknown hashes count as a mismatch.

        Args:
            plain_password: Plain text password to verify.
            hashed_password: Hashed password to compare against.

        Returns:
            True if the password matches the hash, False otherwise.
        """
        if not plain_password or not hashed_password:
            return False
        try:
            return self.context.verify(plain_password, hashed_password)
        except (ValueError, TypeError) as e:
            logger.warning(f"Password hash could not be verified: {str(e)}")
            return False

    # PUBLIC_INTERFACE
    def needs_rehash(self, hashed_password: str) -> bool:
        """
        Check if a password hash needs to be updated.

        Args:
            hashed_password: Hashed password to check.

        Returns:
            True if the password should be rehashed, False otherwise.
        """
        return self.context.needs_update(hashed_password)


# Create default instance for common use
default_password_manager = PasswordManager()
