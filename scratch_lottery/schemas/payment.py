"""Payment schemas - EPay recharge orders and notify callbacks."""

from datetime import datetime

from pydantic import BaseModel, Field

from scratch_lottery.models.payment import PaymentOrderStatus

MIN_RECHARGE_YUAN = 1
MAX_RECHARGE_YUAN = 10000

# Fields covered by the EPay notify signature (sign / sign_type excluded)
SIGNED_CALLBACK_FIELDS = (
    "pid",
    "trade_no",
    "out_trade_no",
    "type",
    "name",
    "money",
    "trade_status",
)


class RechargeRequest(BaseModel):
    amount: int = Field(
        ...,
        ge=MIN_RECHARGE_YUAN,
        le=MAX_RECHARGE_YUAN,
        description="Amount in yuan",
    )


class RechargeResponse(BaseModel):
    order_no: str
    payment_url: str
    amount: int
    points: int


class PaymentOrderResponse(BaseModel):
    id: int
    order_no: str
    amount: int = Field(..., description="Amount in cents")
    points: int
    status: PaymentOrderStatus
    payment_type: str | None = None
    trade_no: str | None = None
    created_at: datetime
    paid_at: datetime | None = None

    class Config:
        from_attributes = True
