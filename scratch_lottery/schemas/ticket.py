"""Ticket schemas - encrypted content payload and read views.

Two separate view types exist on purpose: ``UnrevealedTicketView`` has no
prize fields at all, ``RevealedTicketView`` has them. The lottery service
picks one by ticket status, so an unscratched ticket cannot leak its prize.
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from scratch_lottery.models.lottery import TicketStatus

# ============ Encrypted content ============


class PatternArea(BaseModel):
    """One cell of a pattern ticket."""

    index: int
    pattern_id: str
    points: int
    is_win: bool = False
    is_special: bool = False


class PatternContent(BaseModel):
    """Grid payload of a pattern ticket."""

    areas: list[PatternArea]
    win_pattern_id: str = ""
    special_pattern_id: str = ""
    total_points: int = 0
    prize_amount: int = 0


class TicketContent(BaseModel):
    """Outcome fixed at purchase time. Serialized to JSON and encrypted.

    Attributes:
        prize_level: Level number drawn, 0 for a non-winning ticket
        prize_amount: Points paid when scratched
        pattern: Grid payload for pattern lotteries
    """

    prize_level: int = 0
    prize_amount: int = 0
    pattern: PatternContent | None = None

    @property
    def is_win(self) -> bool:
        return self.prize_amount > 0


# ============ Views ============


class _TicketViewBase(BaseModel):
    id: int
    security_code: str
    lottery_type_id: int
    lottery_type: str
    status: TicketStatus
    purchased_at: datetime


class UnrevealedTicketView(_TicketViewBase):
    """Ticket not yet scratched. Carries no outcome information."""

    model_config = ConfigDict(extra="forbid")

    revealed: Literal[False] = False


class RevealedTicketView(_TicketViewBase):
    """Scratched or claimed ticket with its outcome."""

    revealed: Literal[True] = True
    prize_amount: int
    is_win: bool
    scratched_at: datetime | None = None


TicketView = Annotated[
    UnrevealedTicketView | RevealedTicketView,
    Field(discriminator="revealed"),
]


class TicketDetail(BaseModel):
    """Owner's view of one ticket; content only once revealed."""

    ticket: TicketView
    content: TicketContent | None = None


# ============ Operation results ============


class PurchaseResult(BaseModel):
    tickets: list[UnrevealedTicketView]
    total_cost: int
    new_balance: int


class PurchasePreview(BaseModel):
    """Read-only purchase check."""

    lottery_type_id: int
    quantity: int
    unit_price: int
    total_cost: int
    current_balance: int
    balance_after: int
    stock: int
    can_purchase: bool


class ScratchResult(BaseModel):
    ticket_id: int
    security_code: str
    status: TicketStatus
    prize_amount: int
    is_win: bool
    content: TicketContent
    new_balance: int
    scratched_at: datetime


class AreaRevealResult(BaseModel):
    """Judgement of a single pattern cell."""

    area_index: int
    pattern_id: str
    pattern_name: str = ""
    pattern_image_url: str = ""
    points: int
    is_win: bool
    is_special: bool
    prize_awarded: int
