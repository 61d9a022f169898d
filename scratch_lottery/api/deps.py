"""Common FastAPI dependencies for API endpoints."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from scratch_lottery.core.config import Settings, get_settings
from scratch_lottery.core.exceptions import LotteryError
from scratch_lottery.db import get_db
from scratch_lottery.models.user import User, UserRole
from scratch_lottery.services.user_service import UserService

logger = logging.getLogger(__name__)


def to_http_exception(error: LotteryError) -> HTTPException:
    """Translate a service error into the HTTP error the client sees.

    Usage:
        try:
            return await service.scratch(user.id, ticket_id)
        except LotteryError as e:
            raise to_http_exception(e) from e
    """
    if error.status_code >= 500:
        logger.error("%s: %s %s", type(error).__name__, error.message, error.details)
    return HTTPException(
        status_code=error.status_code,
        detail={
            "code": type(error).__name__,
            "message": error.message,
            "details": error.details,
        },
    )


class DevIdentityProvider:
    """Identity collaborator for development deployments.

    Trusts the ``X-Dev-User`` header, but only for external ids in the
    permitted list. Users are registered on first sight; ids in the admin
    list get the admin role.
    """

    def __init__(self, permitted: list[str], admins: list[str] | None = None) -> None:
        self.permitted = set(permitted)
        self.admins = set(admins or [])

    async def resolve(self, db: AsyncSession, external_id: str | None) -> User:
        if not external_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing X-Dev-User header",
            )
        if external_id not in self.permitted:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not permitted",
            )
        role = UserRole.ADMIN if external_id in self.admins else UserRole.USER
        return await UserService(db).get_or_register(external_id, external_id, role)


def get_identity_provider(
    settings: Annotated[Settings, Depends(get_settings)],
) -> DevIdentityProvider:
    if not settings.dev_mode:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No identity provider configured",
        )
    return DevIdentityProvider(settings.dev_user_list, settings.dev_admin_list)


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    provider: Annotated[DevIdentityProvider, Depends(get_identity_provider)],
    x_dev_user: Annotated[str | None, Header()] = None,
) -> User:
    """FastAPI dependency to get the current user."""
    return await provider.resolve(db, x_dev_user)


async def require_admin(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """确保用户是管理员。"""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user


# ============ Type Aliases for Common Dependencies ============

# 数据库会话（请求结束时提交或回滚）
DbSession = Annotated[AsyncSession, Depends(get_db)]

# 当前用户
CurrentUser = Annotated[User, Depends(get_current_user)]

# 管理员
AdminUser = Annotated[User, Depends(require_admin)]
