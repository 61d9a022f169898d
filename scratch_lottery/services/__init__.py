"""Scratch Lottery Service Layer.

Business logic for lottery sales, the points ledger, exchange and payments.
Services share the caller's AsyncSession and never commit it.
"""

from scratch_lottery.services.admin_service import AdminService
from scratch_lottery.services.exchange_service import ExchangeService
from scratch_lottery.services.lottery_service import LotteryService
from scratch_lottery.services.payment_service import PaymentService
from scratch_lottery.services.user_service import UserService
from scratch_lottery.services.wallet_service import WalletService

__all__ = [
    "AdminService",
    "ExchangeService",
    "LotteryService",
    "PaymentService",
    "UserService",
    "WalletService",
]
