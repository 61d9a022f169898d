"""Scratch Lottery - Lottery catalog, prize inventory and ticket models.

This module defines:
1. LotteryType (彩票类型) - catalog entry with price and game rules
2. PrizeLevel (奖级) - one payout tier with a finite quantity
3. PrizePool (奖池) - a finite batch of tickets for one lottery type
4. Ticket (彩票) - a sold ticket whose outcome is fixed and encrypted at purchase
"""

from datetime import datetime
from enum import Enum
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


class GameType(str, Enum):
    """Presentation variant of a lottery type."""

    NUMBER_MATCH = "number_match"  # 数字匹配型
    SYMBOL_MATCH = "symbol_match"  # 符号匹配型
    AMOUNT_SUM = "amount_sum"  # 金额累加型
    MULTIPLIER = "multiplier"  # 翻倍型
    PATTERN = "pattern"  # 图案型


class LotteryTypeStatus(str, Enum):
    AVAILABLE = "available"
    SOLD_OUT = "sold_out"
    DISABLED = "disabled"


class PrizePoolStatus(str, Enum):
    ACTIVE = "active"
    SOLD_OUT = "sold_out"
    CLOSED = "closed"


class TicketStatus(str, Enum):
    """Ticket lifecycle: unscratched -> scratched -> claimed (optional)."""

    UNSCRATCHED = "unscratched"
    SCRATCHED = "scratched"
    CLAIMED = "claimed"  # 线下兑奖，不再变动账户


class LotteryType(SQLModel, table=True):
    """Lottery catalog entry.

    Attributes:
        id: Auto-increment primary key
        name: Display name
        price: Points per ticket
        max_prize: Advertised top prize
        game_type: Presentation variant; selects the rules_config schema
        rules_config: Game rules JSON, parsed by schemas.rules.parse_rules_config
        status: available / sold_out / disabled
    """

    __tablename__ = "lottery_types"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=128)
    description: str = Field(default="", sa_column=sa.Column(sa.Text, nullable=False, default=""))
    price: int
    max_prize: int
    game_type: GameType = Field(default=GameType.NUMBER_MATCH)
    cover_image: str = Field(default="", max_length=512)
    rules_config: dict[str, Any] | None = Field(
        default=None,
        sa_column=sa.Column(sa.JSON, nullable=True),
    )
    status: LotteryTypeStatus = Field(default=LotteryTypeStatus.AVAILABLE, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class PrizeLevel(SQLModel, table=True):
    """Payout tier of a lottery type.

    ``remaining`` starts equal to ``quantity`` and is decremented by exactly
    one each time a ticket draws this level, so ``0 <= remaining <= quantity``.
    Lower ``level`` numbers are the higher tiers by convention.
    """

    __tablename__ = "prize_levels"

    id: int | None = Field(default=None, primary_key=True)
    lottery_type_id: int = Field(foreign_key="lottery_types.id", index=True)
    level: int
    name: str = Field(default="", max_length=64)
    prize_amount: int
    quantity: int
    remaining: int


class PrizePool(SQLModel, table=True):
    """Finite batch of tickets for one lottery type.

    Attributes:
        total_tickets: Batch size
        sold_tickets: Tickets generated so far (never above total_tickets)
        claimed_prizes: Winning tickets already scratched
        return_rate: Informational payout ratio
        status: active until sold_tickets reaches total_tickets
    """

    __tablename__ = "prize_pools"

    id: int | None = Field(default=None, primary_key=True)
    lottery_type_id: int = Field(foreign_key="lottery_types.id", index=True)
    total_tickets: int
    sold_tickets: int = Field(default=0)
    claimed_prizes: int = Field(default=0)
    return_rate: float = Field(default=0.0)
    status: PrizePoolStatus = Field(default=PrizePoolStatus.ACTIVE, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def remaining_tickets(self) -> int:
        return self.total_tickets - self.sold_tickets


class Ticket(SQLModel, table=True):
    """Sold ticket.

    The outcome is decided at purchase time and stored encrypted in
    ``content_encrypted``; ``prize_amount`` is a plaintext copy kept for
    queries and must match the decrypted content.
    """

    __tablename__ = "tickets"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    lottery_type_id: int = Field(foreign_key="lottery_types.id", index=True)
    prize_pool_id: int = Field(foreign_key="prize_pools.id", index=True)
    security_code: str = Field(max_length=16, unique=True, index=True)
    content_encrypted: str = Field(sa_column=sa.Column(sa.Text, nullable=False))
    prize_amount: int = Field(default=0)
    status: TicketStatus = Field(default=TicketStatus.UNSCRATCHED, index=True)

    purchased_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    scratched_at: datetime | None = Field(default=None)
