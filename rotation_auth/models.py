"""
SQLAlchemy models for the Rotation Auth service.

Only the credential side of the user record lives here; everything else about
a user belongs to the user-record service.
"""
import datetime

from sqlalchemy import Column, DateTime, Integer, String

from rotation_auth.database import Base
from rotation_auth.security import default_password_manager


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class User(Base):
    """
    User credential record.

    ``user_id`` is the stable login identifier and the ``sub`` of every token.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def set_password(self, password: str) -> None:
        """
        Hash and set the user password.

        Args:
            password: Plain text password to hash and store.
        """
        self.hashed_password = default_password_manager.hash_password(password)

    def __repr__(self) -> str:
        """String representation of the User object."""
        return f"<User(id={self.id}, user_id={self.user_id})>"
