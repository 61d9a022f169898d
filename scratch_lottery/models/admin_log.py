"""Scratch Lottery - Admin audit log model."""

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


class AdminLog(SQLModel, table=True):
    """Audit record of an administrator action.

    Attributes:
        admin_id: Acting administrator
        action: Action name, e.g. 'adjust_points'
        target_type: Kind of entity acted on, e.g. 'user'
        target_id: Id of that entity
        details: Action-specific JSON payload
    """

    __tablename__ = "admin_logs"

    id: int | None = Field(default=None, primary_key=True)
    admin_id: int = Field(foreign_key="users.id", index=True)
    action: str = Field(max_length=64, index=True)
    target_type: str = Field(max_length=64)
    target_id: int | None = Field(default=None)
    details: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=sa.Column(sa.JSON, nullable=False),
    )

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
