"""Models module - SQLModel database entities."""

from scratch_lottery.models.admin_log import AdminLog
from scratch_lottery.models.exchange import (
    CardKey,
    CardKeyStatus,
    ExchangeRecord,
    Product,
    ProductStatus,
)
from scratch_lottery.models.lottery import (
    GameType,
    LotteryType,
    LotteryTypeStatus,
    PrizeLevel,
    PrizePool,
    PrizePoolStatus,
    Ticket,
    TicketStatus,
)
from scratch_lottery.models.payment import PaymentOrder, PaymentOrderStatus, generate_order_no
from scratch_lottery.models.user import User, UserRole
from scratch_lottery.models.wallet import Transaction, TransactionType, Wallet

__all__ = [
    # User
    "User",
    "UserRole",
    # Wallet / ledger
    "Wallet",
    "Transaction",
    "TransactionType",
    # Lottery
    "GameType",
    "LotteryType",
    "LotteryTypeStatus",
    "PrizeLevel",
    "PrizePool",
    "PrizePoolStatus",
    "Ticket",
    "TicketStatus",
    # Exchange
    "Product",
    "ProductStatus",
    "CardKey",
    "CardKeyStatus",
    "ExchangeRecord",
    # Payment
    "PaymentOrder",
    "PaymentOrderStatus",
    "generate_order_no",
    # Admin
    "AdminLog",
]
