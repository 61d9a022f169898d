"""Admin Service - Manual point adjustments with an audit trail."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from scratch_lottery.core.exceptions import InvalidAmountError
from scratch_lottery.models.admin_log import AdminLog
from scratch_lottery.models.wallet import TransactionType
from scratch_lottery.schemas.admin import AdjustPointsResponse
from scratch_lottery.services.user_service import UserService
from scratch_lottery.services.wallet_service import WalletService

logger = logging.getLogger(__name__)


class AdminService:
    """Service for administrator actions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.wallet_service = WalletService(db)

    async def adjust_points(
        self,
        admin_id: int,
        user_id: int,
        amount: int,
        description: str = "",
    ) -> AdjustPointsResponse:
        """Add or remove points and record who did it.

        Args:
            admin_id: Acting administrator
            user_id: Target user
            amount: Signed change, never zero
            description: Ledger note; a default is used when empty

        Raises:
            InvalidAmountError: amount is zero
            UserNotFoundError: Unknown user
            InsufficientBalanceError: Deduction exceeds the balance
        """
        if amount == 0:
            raise InvalidAmountError(amount, "amount must not be zero")

        await UserService(self.db).get_user(user_id)

        if not description:
            description = "管理员调整积分（增加）" if amount > 0 else "管理员调整积分（扣除）"

        entry = await self.wallet_service.add_transaction(
            user_id,
            TransactionType.ADJUSTMENT,
            amount,
            description,
            reference_id=admin_id,
        )
        old_balance = entry.balance_after - amount

        self.db.add(
            AdminLog(
                admin_id=admin_id,
                action="adjust_points",
                target_type="user",
                target_id=user_id,
                details={
                    "amount": amount,
                    "description": description,
                    "old_balance": old_balance,
                    "new_balance": entry.balance_after,
                },
            )
        )
        await self.db.flush()

        logger.info("Admin %s adjusted user %s by %s", admin_id, user_id, amount)
        return AdjustPointsResponse(
            user_id=user_id,
            old_balance=old_balance,
            new_balance=entry.balance_after,
        )

    async def list_logs(self, limit: int = 50) -> list[AdminLog]:
        result = await self.db.execute(select(AdminLog).order_by(AdminLog.id.desc()).limit(limit))
        return list(result.scalars().all())
