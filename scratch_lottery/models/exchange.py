"""Scratch Lottery - Points exchange models (积分兑换)."""

from datetime import datetime
from enum import Enum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


class ProductStatus(str, Enum):
    AVAILABLE = "available"
    SOLD_OUT = "sold_out"
    OFFLINE = "offline"  # 已下架


class CardKeyStatus(str, Enum):
    AVAILABLE = "available"
    REDEEMED = "redeemed"


class Product(SQLModel, table=True):
    """Exchangeable product backed by a stock of card keys.

    Attributes:
        price: Points required per redemption
        stock: Available card keys; kept in step with CardKey rows
        status: available / sold_out / offline
    """

    __tablename__ = "products"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=128)
    description: str = Field(default="", sa_column=sa.Column(sa.Text, nullable=False, default=""))
    image: str = Field(default="", max_length=512)
    price: int
    stock: int = Field(default=0)
    status: ProductStatus = Field(default=ProductStatus.AVAILABLE, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CardKey(SQLModel, table=True):
    """Redeemable card key. Handed out oldest first."""

    __tablename__ = "card_keys"

    id: int | None = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    key_content: str = Field(max_length=512)
    status: CardKeyStatus = Field(default=CardKeyStatus.AVAILABLE, index=True)
    redeemed_by: int | None = Field(default=None, foreign_key="users.id")
    redeemed_at: datetime | None = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class ExchangeRecord(SQLModel, table=True):
    """One completed redemption."""

    __tablename__ = "exchange_records"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    card_key_id: int = Field(foreign_key="card_keys.id", index=True)
    cost: int

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
