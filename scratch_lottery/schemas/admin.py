"""Admin schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AdjustPointsRequest(BaseModel):
    amount: int = Field(..., description="Signed change, positive adds points")
    description: str = Field(default="", max_length=256)


class AdjustPointsResponse(BaseModel):
    user_id: int
    old_balance: int
    new_balance: int


class AdminLogResponse(BaseModel):
    id: int
    admin_id: int
    action: str
    target_type: str
    target_id: int | None = None
    details: dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True
