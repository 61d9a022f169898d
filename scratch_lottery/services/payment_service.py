"""Payment Service - EPay recharge orders and notify callbacks.

EPay signs requests and notifications with MD5 over the sorted, non-empty
parameters followed by the merchant secret. The notify callback is the only
way points enter a wallet from outside, so it is verified before any
database access and is idempotent per order.
"""

import hashlib
import hmac
import logging
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from scratch_lottery.core.config import Settings, get_settings
from scratch_lottery.core.exceptions import (
    AlreadyPaidError,
    InvalidAmountError,
    InvalidSignatureError,
    OrderNotFoundError,
    PaymentConfigError,
    PaymentDisabledError,
    PaymentMismatchError,
)
from scratch_lottery.models.payment import PaymentOrder, PaymentOrderStatus, generate_order_no
from scratch_lottery.models.wallet import TransactionType
from scratch_lottery.schemas.payment import (
    MAX_RECHARGE_YUAN,
    MIN_RECHARGE_YUAN,
    SIGNED_CALLBACK_FIELDS,
    RechargeResponse,
)
from scratch_lottery.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

TRADE_SUCCESS = "TRADE_SUCCESS"


# ============ Signature ============


def calculate_sign(params: Mapping[str, str], secret: str) -> str:
    """Calculate the EPay MD5 signature.

    Args:
        params: Parameters to sign (``sign`` and ``sign_type`` excluded by caller)
        secret: Merchant secret

    Returns:
        Lowercase hex MD5 of ``k1=v1&k2=v2...`` + secret, keys sorted,
        empty values skipped
    """
    message = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] != "")
    return hashlib.md5((message + secret).encode("utf-8")).hexdigest()


def verify_signature(params: Mapping[str, str], signature: str, secret: str) -> bool:
    expected = calculate_sign(params, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.lower().encode("utf-8"))


class PaymentService:
    """Service for recharge orders."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.wallet_service = WalletService(db)

    # ============ Orders ============

    async def create_recharge_order(self, user_id: int, amount_yuan: int) -> RechargeResponse:
        """Create a pending order and the gateway URL the user pays at.

        Raises:
            PaymentDisabledError: Online recharge turned off
            PaymentConfigError: Merchant id or secret missing
            InvalidAmountError: Amount outside 1..10000 yuan
        """
        if not self.settings.payment_enabled:
            raise PaymentDisabledError("online recharge is disabled")
        if not self.settings.epay_merchant_id or not self.settings.epay_secret:
            raise PaymentConfigError("payment gateway is not configured")
        if not MIN_RECHARGE_YUAN <= amount_yuan <= MAX_RECHARGE_YUAN:
            raise InvalidAmountError(
                amount_yuan,
                f"amount must be between {MIN_RECHARGE_YUAN} and {MAX_RECHARGE_YUAN} yuan",
            )

        points = amount_yuan * self.settings.points_per_yuan
        order = PaymentOrder(
            user_id=user_id,
            order_no=generate_order_no(),
            amount=amount_yuan * 100,
            points=points,
            status=PaymentOrderStatus.PENDING,
        )
        self.db.add(order)
        await self.db.flush()

        logger.info(
            "Created recharge order %s for user %s: %s yuan", order.order_no, user_id, amount_yuan
        )
        return RechargeResponse(
            order_no=order.order_no,
            payment_url=self.build_payment_url(order.order_no, amount_yuan),
            amount=amount_yuan,
            points=points,
        )

    def build_payment_url(self, order_no: str, amount_yuan: int) -> str:
        params = {
            "pid": self.settings.epay_merchant_id,
            "type": "alipay",
            "out_trade_no": order_no,
            "notify_url": self.settings.epay_notify_url,
            "return_url": self.settings.epay_return_url,
            "name": "积分充值",
            "money": f"{amount_yuan:.2f}",
        }
        params["sign"] = calculate_sign(params, self.settings.epay_secret)
        params["sign_type"] = "MD5"
        return f"{self.settings.epay_gateway_url}?{urlencode(params)}"

    async def get_order(self, order_no: str, for_update: bool = False) -> PaymentOrder:
        query = select(PaymentOrder).where(PaymentOrder.order_no == order_no)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError("order not found", {"order_no": order_no})
        return order

    async def list_user_orders(self, user_id: int, limit: int = 20) -> list[PaymentOrder]:
        result = await self.db.execute(
            select(PaymentOrder)
            .where(PaymentOrder.user_id == user_id)
            .order_by(PaymentOrder.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ============ Callback ============

    async def process_callback(
        self, fields: Mapping[str, str], signature: str
    ) -> PaymentOrder | None:
        """Handle an EPay notify callback.

        Args:
            fields: Callback parameters; only the signed fields are used
            signature: The ``sign`` parameter

        Returns:
            The paid order, or None when the trade did not succeed

        Raises:
            InvalidSignatureError: Signature mismatch
            OrderNotFoundError: Unknown out_trade_no
            AlreadyPaidError: Order no longer pending
            PaymentMismatchError: Merchant id or paid amount disagrees with the order
        """
        signed = {k: fields.get(k, "") for k in SIGNED_CALLBACK_FIELDS}
        if not verify_signature(signed, signature, self.settings.epay_secret):
            logger.warning("Rejected payment callback for %s: bad signature", signed["out_trade_no"])
            raise InvalidSignatureError("invalid callback signature")

        if signed["trade_status"] != TRADE_SUCCESS:
            logger.info(
                "Ignored payment callback for %s: status %s",
                signed["out_trade_no"],
                signed["trade_status"],
            )
            return None

        order = await self.get_order(signed["out_trade_no"], for_update=True)
        if order.status != PaymentOrderStatus.PENDING:
            raise AlreadyPaidError("order already processed", {"order_no": order.order_no})
        self._check_paid_amount(order, signed)

        order.status = PaymentOrderStatus.PAID
        order.trade_no = signed["trade_no"] or None
        order.payment_type = signed["type"] or None
        order.paid_at = datetime.utcnow()

        await self.wallet_service.credit(
            order.user_id,
            order.points,
            TransactionType.RECHARGE,
            f"充值 {order.amount // 100} 元，获得 {order.points} 积分",
            reference_id=order.id,
        )

        logger.info(
            "Order %s paid, credited %s points to user %s",
            order.order_no,
            order.points,
            order.user_id,
        )
        return order

    def _check_paid_amount(self, order: PaymentOrder, signed: Mapping[str, str]) -> None:
        """Reject callbacks for another merchant or a different amount.

        Raises:
            PaymentMismatchError: pid or money disagrees with the local order
        """
        if signed["pid"] != self.settings.epay_merchant_id:
            logger.warning("Rejected payment callback for %s: pid %s", order.order_no, signed["pid"])
            raise PaymentMismatchError(
                "merchant id mismatch", {"order_no": order.order_no, "pid": signed["pid"]}
            )

        expected = Decimal(order.amount) / 100
        try:
            paid = Decimal(signed["money"])
        except InvalidOperation:
            paid = None
        if paid != expected:
            logger.warning(
                "Rejected payment callback for %s: paid %s, expected %s",
                order.order_no,
                signed["money"],
                expected,
            )
            raise PaymentMismatchError(
                "paid amount mismatch",
                {"order_no": order.order_no, "money": signed["money"], "expected": str(expected)},
            )
