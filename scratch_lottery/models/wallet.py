"""Scratch Lottery - Wallet and transaction ledger models.

A wallet's state is its ``balance`` plus the append-only ``transactions``
rows. The two always agree: the sum of a wallet's transaction amounts equals
its balance. Only ``WalletService.add_transaction`` writes either table.
"""

from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel


class TransactionType(str, Enum):
    """Ledger entry type (账变类型)."""

    INITIAL = "initial"  # 注册赠送
    RECHARGE = "recharge"  # 在线充值
    PURCHASE = "purchase"  # 购买彩票
    WIN = "win"  # 彩票中奖
    EXCHANGE = "exchange"  # 积分兑换
    ADJUSTMENT = "adjustment"  # 管理员调账


class Wallet(SQLModel, table=True):
    """Points wallet, one per user.

    Attributes:
        id: Auto-increment primary key
        user_id: Owner (unique, one-to-one)
        balance: Current points; never negative
    """

    __tablename__ = "wallets"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", unique=True, index=True)
    balance: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Transaction(SQLModel, table=True):
    """Immutable ledger entry.

    Attributes:
        id: Auto-increment primary key
        wallet_id: Wallet whose balance changed
        tx_type: Entry type
        amount: Signed change (positive=credit, negative=debit)
        balance_after: Wallet balance right after this entry
        description: Human readable note
        reference_id: Related ticket, product, order or admin id
    """

    __tablename__ = "transactions"

    id: int | None = Field(default=None, primary_key=True)
    wallet_id: int = Field(foreign_key="wallets.id", index=True)
    tx_type: TransactionType = Field(index=True)
    amount: int
    balance_after: int
    description: str = Field(default="", max_length=256)
    reference_id: int | None = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
