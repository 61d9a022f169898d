"""Scratch Lottery - Recharge API routes.

The notify endpoint is called by the EPay gateway, not by users. EPay
expects the literal body ``success`` to stop retrying and ``fail``
otherwise.
"""

import logging
from urllib.parse import parse_qsl

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from scratch_lottery.api.deps import CurrentUser, DbSession, to_http_exception
from scratch_lottery.core.exceptions import AlreadyPaidError, LotteryError
from scratch_lottery.schemas.payment import PaymentOrderResponse, RechargeRequest, RechargeResponse
from scratch_lottery.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])


@router.post("/recharge", response_model=RechargeResponse)
async def create_recharge(data: RechargeRequest, user: CurrentUser, db: DbSession) -> RechargeResponse:
    """创建充值订单，返回支付链接。"""
    try:
        return await PaymentService(db).create_recharge_order(user.id, data.amount)
    except LotteryError as e:
        raise to_http_exception(e) from e


@router.get("/orders", response_model=list[PaymentOrderResponse])
async def list_orders(user: CurrentUser, db: DbSession) -> list[PaymentOrderResponse]:
    orders = await PaymentService(db).list_user_orders(user.id)
    return [PaymentOrderResponse.model_validate(o) for o in orders]


@router.api_route("/notify", methods=["GET", "POST"], response_class=PlainTextResponse)
async def payment_notify(request: Request, db: DbSession) -> str:
    """EPay asynchronous notify callback.

    Parameters arrive in the query string (GET) or a form body (POST).
    """
    fields = dict(request.query_params)
    if request.method == "POST":
        body = (await request.body()).decode("utf-8", errors="replace")
        fields.update(parse_qsl(body))

    signature = fields.pop("sign", "")
    fields.pop("sign_type", None)

    try:
        await PaymentService(db).process_callback(fields, signature)
    except AlreadyPaidError:
        # Already credited; acknowledge so the gateway stops retrying
        return "success"
    except LotteryError as e:
        logger.warning("Payment notify failed: %s %s", type(e).__name__, e.details)
        await db.rollback()
        return "fail"
    return "success"
