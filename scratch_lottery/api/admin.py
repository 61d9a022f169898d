"""Scratch Lottery - Admin API endpoints.

All routes require the admin role.
"""

from typing import Annotated

from fastapi import APIRouter, Query

from scratch_lottery.api.deps import AdminUser, DbSession, to_http_exception
from scratch_lottery.core.exceptions import LotteryError
from scratch_lottery.schemas.admin import (
    AdjustPointsRequest,
    AdjustPointsResponse,
    AdminLogResponse,
)
from scratch_lottery.schemas.exchange import (
    CreateProductRequest,
    ImportCardKeysRequest,
    ProductResponse,
    UpdateProductStatusRequest,
)
from scratch_lottery.schemas.lottery import (
    CreateLotteryTypeRequest,
    CreatePrizePoolRequest,
    LotteryTypeDetailResponse,
    PrizePoolResponse,
    UpdateLotteryTypeStatusRequest,
)
from scratch_lottery.services.admin_service import AdminService
from scratch_lottery.services.exchange_service import ExchangeService
from scratch_lottery.services.lottery_service import LotteryService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/users/{user_id}/points", response_model=AdjustPointsResponse)
async def adjust_points(
    user_id: int, data: AdjustPointsRequest, admin: AdminUser, db: DbSession
) -> AdjustPointsResponse:
    """调整用户积分，记录审计日志。"""
    try:
        return await AdminService(db).adjust_points(admin.id, user_id, data.amount, data.description)
    except LotteryError as e:
        raise to_http_exception(e) from e


@router.get("/logs", response_model=list[AdminLogResponse])
async def list_logs(
    admin: AdminUser,
    db: DbSession,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[AdminLogResponse]:
    logs = await AdminService(db).list_logs(limit)
    return [AdminLogResponse.model_validate(log) for log in logs]


# ============ Catalog management ============


@router.post("/lottery/types", response_model=LotteryTypeDetailResponse)
async def create_lottery_type(
    data: CreateLotteryTypeRequest, admin: AdminUser, db: DbSession
) -> LotteryTypeDetailResponse:
    service = LotteryService(db)
    try:
        lottery_type = await service.create_lottery_type(data)
        return await service.get_lottery_type_detail(lottery_type.id)
    except LotteryError as e:
        raise to_http_exception(e) from e


@router.post("/lottery/pools", response_model=PrizePoolResponse)
async def create_prize_pool(
    data: CreatePrizePoolRequest, admin: AdminUser, db: DbSession
) -> PrizePoolResponse:
    try:
        pool = await LotteryService(db).create_prize_pool(data)
    except LotteryError as e:
        raise to_http_exception(e) from e
    return PrizePoolResponse.model_validate(pool)


@router.patch("/lottery/types/{lottery_type_id}/status", response_model=LotteryTypeDetailResponse)
async def set_lottery_type_status(
    lottery_type_id: int, data: UpdateLotteryTypeStatusRequest, admin: AdminUser, db: DbSession
) -> LotteryTypeDetailResponse:
    """彩票上架 / 下架。"""
    service = LotteryService(db)
    try:
        await service.set_lottery_type_status(lottery_type_id, data.status)
        return await service.get_lottery_type_detail(lottery_type_id)
    except LotteryError as e:
        raise to_http_exception(e) from e


@router.post("/lottery/pools/{prize_pool_id}/close", response_model=PrizePoolResponse)
async def close_prize_pool(prize_pool_id: int, admin: AdminUser, db: DbSession) -> PrizePoolResponse:
    try:
        pool = await LotteryService(db).close_prize_pool(prize_pool_id)
    except LotteryError as e:
        raise to_http_exception(e) from e
    return PrizePoolResponse.model_validate(pool)


# ============ Exchange management ============


@router.post("/exchange/products", response_model=ProductResponse)
async def create_product(data: CreateProductRequest, admin: AdminUser, db: DbSession) -> ProductResponse:
    product = await ExchangeService(db).create_product(data)
    return ProductResponse.model_validate(product)


@router.post("/exchange/products/{product_id}/keys")
async def import_card_keys(
    product_id: int, data: ImportCardKeysRequest, admin: AdminUser, db: DbSession
) -> dict[str, int]:
    try:
        imported = await ExchangeService(db).import_card_keys(product_id, data.keys)
    except LotteryError as e:
        raise to_http_exception(e) from e
    return {"imported": imported}


@router.patch("/exchange/products/{product_id}/status", response_model=ProductResponse)
async def set_product_status(
    product_id: int, data: UpdateProductStatusRequest, admin: AdminUser, db: DbSession
) -> ProductResponse:
    """商品上架 / 下架。"""
    try:
        product = await ExchangeService(db).set_product_status(product_id, data.status)
    except LotteryError as e:
        raise to_http_exception(e) from e
    return ProductResponse.model_validate(product)
