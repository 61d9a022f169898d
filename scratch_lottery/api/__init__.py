"""API module - route handlers and common dependencies."""

from fastapi import FastAPI

from scratch_lottery.api.deps import AdminUser, CurrentUser, DbSession

__all__ = [
    "AdminUser",
    "CurrentUser",
    "DbSession",
    "register_routers",
]


def register_routers(app: FastAPI) -> None:
    """Register all API routers to the application.

    Args:
        app: FastAPI application instance
    """
    # Lottery & tickets
    from scratch_lottery.api.lottery import router as lottery_router

    app.include_router(lottery_router, prefix="/api")

    # Wallet & ledger
    from scratch_lottery.api.wallet import router as wallet_router

    app.include_router(wallet_router, prefix="/api")

    # Exchange
    from scratch_lottery.api.exchange import router as exchange_router

    app.include_router(exchange_router, prefix="/api")

    # Recharge (EPay)
    from scratch_lottery.api.payment import router as payment_router

    app.include_router(payment_router, prefix="/api")

    # Admin
    from scratch_lottery.api.admin import router as admin_router

    app.include_router(admin_router, prefix="/api")
