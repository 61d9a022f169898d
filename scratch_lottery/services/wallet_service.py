"""Wallet Service - the points ledger.

Every balance change in the system goes through ``add_transaction``: the
wallet row is re-read under ``FOR UPDATE``, the new balance is checked
against zero, written, and exactly one Transaction row is inserted in the
same unit of work. Nothing else writes ``Wallet.balance``.

Services never commit; the caller's session boundary does.
"""

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from scratch_lottery.core.config import get_settings
from scratch_lottery.core.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    UserNotFoundError,
)
from scratch_lottery.models.wallet import Transaction, TransactionType, Wallet

logger = logging.getLogger(__name__)


class WalletService:
    """Service for wallet balance and ledger entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Wallet lifecycle
    # =========================================================================

    async def create_wallet(self, user_id: int, initial_balance: int | None = None) -> Wallet:
        """Create a wallet and grant the starting balance.

        The grant is booked as one ``initial`` transaction so the ledger sum
        matches the balance from the very first row.
        """
        if initial_balance is None:
            initial_balance = get_settings().initial_balance

        wallet = Wallet(user_id=user_id, balance=0)
        self.db.add(wallet)
        await self.db.flush()

        if initial_balance > 0:
            await self.credit(
                user_id,
                initial_balance,
                TransactionType.INITIAL,
                "注册赠送积分",
            )
        return wallet

    async def get_wallet(self, user_id: int, for_update: bool = False) -> Wallet:
        """Load a user's wallet.

        Args:
            user_id: Owner id
            for_update: Lock the row and refresh any copy already in the session

        Raises:
            UserNotFoundError: The user has no wallet
        """
        query = select(Wallet).where(Wallet.user_id == user_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        wallet = result.scalar_one_or_none()
        if wallet is None:
            raise UserNotFoundError(f"wallet for user {user_id} not found", {"user_id": user_id})
        return wallet

    async def get_balance(self, user_id: int) -> int:
        wallet = await self.get_wallet(user_id)
        return wallet.balance

    # =========================================================================
    # Balance mutation
    # =========================================================================

    async def add_transaction(
        self,
        user_id: int,
        tx_type: TransactionType,
        amount: int,
        description: str = "",
        reference_id: int | None = None,
    ) -> Transaction:
        """Apply a signed change to the wallet and record it.

        Args:
            user_id: Wallet owner
            tx_type: Ledger entry type
            amount: Signed change (negative for debits)
            description: Note stored on the entry
            reference_id: Related ticket / product / order / admin id

        Returns:
            The inserted Transaction

        Raises:
            InsufficientBalanceError: Balance would drop below zero
        """
        wallet = await self.get_wallet(user_id, for_update=True)

        new_balance = wallet.balance + amount
        if new_balance < 0:
            raise InsufficientBalanceError(required=-amount, available=wallet.balance)

        wallet.balance = new_balance
        wallet.updated_at = datetime.utcnow()

        entry = Transaction(
            wallet_id=wallet.id,
            tx_type=tx_type,
            amount=amount,
            balance_after=new_balance,
            description=description,
            reference_id=reference_id,
        )
        self.db.add(wallet)
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "ledger %s user=%s amount=%s balance=%s ref=%s",
            tx_type.value,
            user_id,
            amount,
            new_balance,
            reference_id,
        )
        return entry

    async def debit(
        self,
        user_id: int,
        amount: int,
        tx_type: TransactionType,
        description: str = "",
        reference_id: int | None = None,
    ) -> Transaction:
        """Take ``amount`` (a positive magnitude) from the wallet."""
        if amount <= 0:
            raise InvalidAmountError(amount)
        return await self.add_transaction(user_id, tx_type, -amount, description, reference_id)

    async def credit(
        self,
        user_id: int,
        amount: int,
        tx_type: TransactionType,
        description: str = "",
        reference_id: int | None = None,
    ) -> Transaction:
        """Add ``amount`` (a positive magnitude) to the wallet."""
        if amount <= 0:
            raise InvalidAmountError(amount)
        return await self.add_transaction(user_id, tx_type, amount, description, reference_id)

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_transactions(
        self,
        user_id: int,
        tx_type: TransactionType | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Transaction]:
        """List ledger entries, newest first."""
        wallet = await self.get_wallet(user_id)
        query = select(Transaction).where(Transaction.wallet_id == wallet.id)
        if tx_type is not None:
            query = query.where(Transaction.tx_type == tx_type)
        query = query.order_by(Transaction.id.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def ledger_sum(self, user_id: int) -> int:
        """Sum of all ledger amounts; equals the balance for a healthy wallet."""
        wallet = await self.get_wallet(user_id)
        result = await self.db.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.wallet_id == wallet.id
            )
        )
        return int(result.scalar_one())
