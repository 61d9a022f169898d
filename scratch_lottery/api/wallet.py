"""Scratch Lottery - Wallet API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query

from scratch_lottery.api.deps import CurrentUser, DbSession
from scratch_lottery.models.wallet import TransactionType
from scratch_lottery.schemas.wallet import TransactionResponse, WalletResponse
from scratch_lottery.services.wallet_service import WalletService

router = APIRouter(tags=["wallet"])


@router.get("/wallet", response_model=WalletResponse)
async def get_wallet(user: CurrentUser, db: DbSession) -> WalletResponse:
    wallet = await WalletService(db).get_wallet(user.id)
    return WalletResponse.model_validate(wallet)


@router.get("/wallet/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    user: CurrentUser,
    db: DbSession,
    tx_type: TransactionType | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[TransactionResponse]:
    """积分流水，最新的在前。"""
    entries = await WalletService(db).list_transactions(user.id, tx_type, limit, offset)
    return [TransactionResponse.model_validate(e) for e in entries]
