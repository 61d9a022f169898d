"""Scratch Lottery - Exchange API endpoints."""

from fastapi import APIRouter

from scratch_lottery.api.deps import CurrentUser, DbSession, to_http_exception
from scratch_lottery.core.exceptions import LotteryError
from scratch_lottery.schemas.exchange import (
    ExchangeRecordResponse,
    ProductResponse,
    RedeemResult,
)
from scratch_lottery.services.exchange_service import ExchangeService

router = APIRouter(prefix="/exchange", tags=["exchange"])


@router.get("/products", response_model=list[ProductResponse])
async def list_products(db: DbSession) -> list[ProductResponse]:
    products = await ExchangeService(db).list_products()
    return [ProductResponse.model_validate(p) for p in products]


@router.post("/products/{product_id}/redeem", response_model=RedeemResult)
async def redeem_product(product_id: int, user: CurrentUser, db: DbSession) -> RedeemResult:
    """积分兑换卡密。"""
    try:
        return await ExchangeService(db).redeem(user.id, product_id)
    except LotteryError as e:
        raise to_http_exception(e) from e


@router.get("/records", response_model=list[ExchangeRecordResponse])
async def list_records(user: CurrentUser, db: DbSession) -> list[ExchangeRecordResponse]:
    records = await ExchangeService(db).list_exchange_records(user.id)
    return [ExchangeRecordResponse.model_validate(r) for r in records]
