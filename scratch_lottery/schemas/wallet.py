"""Wallet schemas - balance and ledger entry DTOs."""

from datetime import datetime

from pydantic import BaseModel

from scratch_lottery.models.wallet import TransactionType


class WalletResponse(BaseModel):
    user_id: int
    balance: int

    class Config:
        from_attributes = True


class TransactionResponse(BaseModel):
    """Ledger entry response."""

    id: int
    tx_type: TransactionType
    amount: int
    balance_after: int
    description: str
    reference_id: int | None = None
    created_at: datetime

    class Config:
        from_attributes = True
