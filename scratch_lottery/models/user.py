"""Scratch Lottery - User model."""

from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel


class UserRole(str, Enum):
    """User roles for access control."""

    USER = "user"
    ADMIN = "admin"


class User(SQLModel, table=True):
    """User model - identity supplied by the authentication layer.

    Attributes:
        id: Auto-increment primary key
        external_id: Identity provider user id (unique)
        username: Display name
        role: user or admin
    """

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    external_id: str = Field(max_length=64, unique=True, index=True)
    username: str = Field(default="", max_length=128)
    role: UserRole = Field(default=UserRole.USER)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
