"""Scratch Lottery - Online recharge order model."""

import uuid
from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel


class PaymentOrderStatus(str, Enum):
    """Recharge order status.

    State transitions: pending -> paid / failed
    """

    PENDING = "pending"  # 等待支付
    PAID = "paid"  # 已支付，积分已到账
    FAILED = "failed"


def generate_order_no() -> str:
    """Generate a unique order number.

    Format: YYYYmmddHHMMSS + random_hex(8), e.g. 20240101120000a1b2c3d4
    """
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    return f"{timestamp}{uuid.uuid4().hex[:8]}"


class PaymentOrder(SQLModel, table=True):
    """EPay recharge order.

    Attributes:
        order_no: Our order number (EPay out_trade_no)
        amount: Paid amount in cents
        points: Points credited once paid
        payment_type: Channel reported by the gateway (alipay, wxpay, ...)
        trade_no: Gateway trade number
    """

    __tablename__ = "payment_orders"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    order_no: str = Field(max_length=64, unique=True, index=True)
    amount: int
    points: int
    status: PaymentOrderStatus = Field(default=PaymentOrderStatus.PENDING, index=True)
    payment_type: str | None = Field(default=None, max_length=32)
    trade_no: str | None = Field(default=None, max_length=128)

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    paid_at: datetime | None = Field(default=None)
