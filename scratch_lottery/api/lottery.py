"""Scratch Lottery - Lottery and ticket API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query

from scratch_lottery.api.deps import CurrentUser, DbSession, to_http_exception
from scratch_lottery.core.exceptions import LotteryError
from scratch_lottery.models.lottery import TicketStatus
from scratch_lottery.schemas.lottery import (
    MAX_TICKETS_PER_PURCHASE,
    LotteryTypeDetailResponse,
    LotteryTypeResponse,
    PurchaseRequest,
)
from scratch_lottery.schemas.ticket import (
    AreaRevealResult,
    PurchasePreview,
    PurchaseResult,
    ScratchResult,
    TicketDetail,
    TicketView,
)
from scratch_lottery.services.lottery_service import LotteryService

router = APIRouter(tags=["lottery"])


# ============ Catalog ============


@router.get("/lottery/types", response_model=list[LotteryTypeResponse])
async def list_lottery_types(db: DbSession) -> list[LotteryTypeResponse]:
    """List purchasable lottery types with remaining stock."""
    return await LotteryService(db).list_lottery_types()


@router.get("/lottery/types/{lottery_type_id}", response_model=LotteryTypeDetailResponse)
async def get_lottery_type(lottery_type_id: int, db: DbSession) -> LotteryTypeDetailResponse:
    try:
        return await LotteryService(db).get_lottery_type_detail(lottery_type_id)
    except LotteryError as e:
        raise to_http_exception(e) from e


@router.get("/lottery/types/{lottery_type_id}/preview", response_model=PurchasePreview)
async def preview_purchase(
    lottery_type_id: int,
    user: CurrentUser,
    db: DbSession,
    quantity: Annotated[int, Query(ge=1, le=MAX_TICKETS_PER_PURCHASE)] = 1,
) -> PurchasePreview:
    """Show cost and balance for a purchase without making it."""
    try:
        return await LotteryService(db).preview_purchase(user.id, lottery_type_id, quantity)
    except LotteryError as e:
        raise to_http_exception(e) from e


@router.post("/lottery/purchase", response_model=PurchaseResult)
async def purchase(data: PurchaseRequest, user: CurrentUser, db: DbSession) -> PurchaseResult:
    """购买彩票。"""
    try:
        return await LotteryService(db).purchase(user.id, data.lottery_type_id, data.quantity)
    except LotteryError as e:
        raise to_http_exception(e) from e


# ============ Tickets ============


@router.get("/tickets", response_model=list[TicketView])
async def list_tickets(
    user: CurrentUser,
    db: DbSession,
    status: TicketStatus | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
):
    return await LotteryService(db).list_tickets(user.id, status, limit, offset)


@router.get("/tickets/{ticket_id}", response_model=TicketDetail)
async def get_ticket(ticket_id: int, user: CurrentUser, db: DbSession) -> TicketDetail:
    try:
        return await LotteryService(db).get_ticket(user.id, ticket_id)
    except LotteryError as e:
        raise to_http_exception(e) from e


@router.post("/tickets/{ticket_id}/scratch", response_model=ScratchResult)
async def scratch_ticket(ticket_id: int, user: CurrentUser, db: DbSession) -> ScratchResult:
    """刮开彩票，中奖积分即时到账。"""
    try:
        return await LotteryService(db).scratch(user.id, ticket_id)
    except LotteryError as e:
        raise to_http_exception(e) from e


@router.get("/tickets/{ticket_id}/areas/{area_index}", response_model=AreaRevealResult)
async def reveal_area(
    ticket_id: int, area_index: int, user: CurrentUser, db: DbSession
) -> AreaRevealResult:
    try:
        return await LotteryService(db).reveal_area(user.id, ticket_id, area_index)
    except LotteryError as e:
        raise to_http_exception(e) from e


# ============ Public verification ============


@router.get("/verify/{code}", response_model=TicketView)
async def verify_ticket(code: str, db: DbSession):
    """Anti-counterfeit lookup by security code. No login required."""
    try:
        return await LotteryService(db).verify_by_code(code)
    except LotteryError as e:
        raise to_http_exception(e) from e
