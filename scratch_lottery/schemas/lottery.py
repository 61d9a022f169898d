"""Lottery catalog schemas - Request/Response DTOs."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from scratch_lottery.models.lottery import GameType, LotteryTypeStatus, PrizePoolStatus

MAX_TICKETS_PER_PURCHASE = 10


class PrizeLevelInput(BaseModel):
    """Prize level definition. ``level`` 0 is reserved for "no win"."""

    level: int = Field(..., ge=1, description="Rank, lower is higher value")
    name: str = Field(default="", max_length=64)
    prize_amount: int = Field(..., ge=0)
    quantity: int = Field(..., gt=0)


class CreateLotteryTypeRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: str = ""
    price: int = Field(..., gt=0, description="Points per ticket")
    max_prize: int = Field(..., gt=0)
    game_type: GameType = GameType.NUMBER_MATCH
    cover_image: str = ""
    rules_config: dict[str, Any] | None = None
    prize_levels: list[PrizeLevelInput] = Field(default_factory=list)


class CreatePrizePoolRequest(BaseModel):
    lottery_type_id: int
    total_tickets: int = Field(..., gt=0)
    return_rate: float = Field(default=0.0, ge=0)


class PurchaseRequest(BaseModel):
    lottery_type_id: int
    quantity: int = Field(default=1, ge=1, le=MAX_TICKETS_PER_PURCHASE)


class PrizeLevelResponse(BaseModel):
    id: int
    level: int
    name: str
    prize_amount: int
    quantity: int
    remaining: int

    class Config:
        from_attributes = True


class PrizePoolResponse(BaseModel):
    id: int
    lottery_type_id: int
    total_tickets: int
    sold_tickets: int
    claimed_prizes: int
    return_rate: float
    status: PrizePoolStatus
    created_at: datetime

    class Config:
        from_attributes = True


class LotteryTypeResponse(BaseModel):
    """Catalog entry with the active pool's remaining stock."""

    id: int
    name: str
    description: str
    price: int
    max_prize: int
    game_type: GameType
    cover_image: str
    status: LotteryTypeStatus
    stock: int = 0
    created_at: datetime

    class Config:
        from_attributes = True


class LotteryTypeDetailResponse(LotteryTypeResponse):
    rules_config: dict[str, Any] | None = None
    prize_levels: list[PrizeLevelResponse] = Field(default_factory=list)


class UpdateLotteryTypeStatusRequest(BaseModel):
    status: LotteryTypeStatus = Field(..., description="available or disabled")
