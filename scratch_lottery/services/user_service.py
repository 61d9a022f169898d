"""User Service - Registration of users supplied by the identity layer."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from scratch_lottery.core.exceptions import UserExistsError, UserNotFoundError
from scratch_lottery.models.user import User, UserRole
from scratch_lottery.services.wallet_service import WalletService

logger = logging.getLogger(__name__)


class UserService:
    """Service for user-related business logic."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError("user not found", {"user_id": user_id})
        return user

    async def get_by_external_id(self, external_id: str) -> User | None:
        result = await self.db.execute(select(User).where(User.external_id == external_id))
        return result.scalar_one_or_none()

    async def register(
        self,
        external_id: str,
        username: str = "",
        role: UserRole = UserRole.USER,
    ) -> User:
        """Create a user and a wallet holding the initial grant.

        Raises:
            UserExistsError: external_id already registered
        """
        if await self.get_by_external_id(external_id) is not None:
            raise UserExistsError("user already exists", {"external_id": external_id})

        user = User(external_id=external_id, username=username or external_id, role=role)
        self.db.add(user)
        await self.db.flush()

        await WalletService(self.db).create_wallet(user.id)

        logger.info("Registered user %s (%s)", user.id, role.value)
        return user

    async def get_or_register(
        self,
        external_id: str,
        username: str = "",
        role: UserRole = UserRole.USER,
    ) -> User:
        user = await self.get_by_external_id(external_id)
        if user is not None:
            return user
        return await self.register(external_id, username, role)
