"""Exchange Service - Points-for-card-key redemption (积分兑换).

Redeem locks the product row, then the oldest available card key, then the
wallet. ``Product.stock`` is a cached count of available keys; the key lock is
the authority, so a product whose stock says 1 but has no key left fails
with NoAvailableKeyError instead of handing out nothing.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from scratch_lottery.core.exceptions import (
    InsufficientBalanceError,
    InsufficientPointsError,
    NoAvailableKeyError,
    ProductNotFoundError,
    ProductOfflineError,
    SoldOutError,
    ValidationError,
)
from scratch_lottery.models.exchange import (
    CardKey,
    CardKeyStatus,
    ExchangeRecord,
    Product,
    ProductStatus,
)
from scratch_lottery.models.wallet import TransactionType
from scratch_lottery.schemas.exchange import CreateProductRequest, RedeemResult
from scratch_lottery.services.wallet_service import WalletService

logger = logging.getLogger(__name__)


class ExchangeService:
    """Service for products, card keys and redemptions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.wallet_service = WalletService(db)

    # ============ Products ============

    async def create_product(self, data: CreateProductRequest) -> Product:
        """Create a product with no stock. Stock comes from imported card keys."""
        product = Product(
            name=data.name,
            description=data.description,
            image=data.image,
            price=data.price,
            stock=0,
            status=ProductStatus.SOLD_OUT,
        )
        self.db.add(product)
        await self.db.flush()
        return product

    async def get_product(self, product_id: int, for_update: bool = False) -> Product:
        query = select(Product).where(Product.id == product_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        product = result.scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError("product not found", {"product_id": product_id})
        return product

    async def list_products(self, include_offline: bool = False) -> list[Product]:
        query = select(Product)
        if not include_offline:
            query = query.where(Product.status != ProductStatus.OFFLINE)
        result = await self.db.execute(query.order_by(Product.id))
        return list(result.scalars().all())

    async def set_product_status(self, product_id: int, status: ProductStatus) -> Product:
        """Take a product off the shelf or put it back (上架 / 下架).

        Putting a product back makes it available when it has stock and
        sold out otherwise.

        Raises:
            ProductNotFoundError: Unknown product
            ValidationError: status is sold_out, which follows from stock
        """
        if status == ProductStatus.SOLD_OUT:
            raise ValidationError("sold_out cannot be set manually", {"status": status.value})

        product = await self.get_product(product_id, for_update=True)
        if status == ProductStatus.OFFLINE:
            product.status = ProductStatus.OFFLINE
        else:
            product.status = ProductStatus.AVAILABLE if product.stock > 0 else ProductStatus.SOLD_OUT
        product.updated_at = datetime.utcnow()
        await self.db.flush()

        logger.info("Product %s set to %s", product.id, product.status.value)
        return product

    async def import_card_keys(self, product_id: int, keys: list[str]) -> int:
        """Add card keys to a product's stock.

        Blank lines are skipped. A sold-out product becomes available again;
        an offline product stays offline.

        Returns:
            Number of keys imported
        """
        product = await self.get_product(product_id, for_update=True)

        imported = 0
        for raw in keys:
            key = raw.strip()
            if not key:
                continue
            self.db.add(CardKey(product_id=product.id, key_content=key))
            imported += 1

        if imported:
            product.stock += imported
            product.updated_at = datetime.utcnow()
            if product.status == ProductStatus.SOLD_OUT:
                product.status = ProductStatus.AVAILABLE
            await self.db.flush()

        logger.info("Imported %s card keys into product %s", imported, product.id)
        return imported

    # ============ Redemption ============

    async def redeem(self, user_id: int, product_id: int) -> RedeemResult:
        """Spend points on one card key.

        Raises:
            ProductNotFoundError: Unknown product
            ProductOfflineError: Product taken off the shelf
            SoldOutError: Stock exhausted
            NoAvailableKeyError: No key row left even though stock says otherwise
            InsufficientPointsError: Wallet cannot cover the price
        """
        product = await self.get_product(product_id, for_update=True)
        if product.status == ProductStatus.OFFLINE:
            raise ProductOfflineError("product is offline", {"product_id": product_id})
        if product.status == ProductStatus.SOLD_OUT or product.stock <= 0:
            raise SoldOutError("product sold out", {"product_id": product_id})

        result = await self.db.execute(
            select(CardKey)
            .where(
                CardKey.product_id == product_id,
                CardKey.status == CardKeyStatus.AVAILABLE,
            )
            .order_by(CardKey.created_at, CardKey.id)
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        card_key = result.scalar_one_or_none()
        if card_key is None:
            logger.error("Product %s has stock %s but no available key", product_id, product.stock)
            raise NoAvailableKeyError("no card key available", {"product_id": product_id})

        try:
            entry = await self.wallet_service.debit(
                user_id,
                product.price,
                TransactionType.EXCHANGE,
                f"兑换商品: {product.name}",
                reference_id=product.id,
            )
        except InsufficientBalanceError as e:
            raise InsufficientPointsError(
                required=product.price,
                available=e.details.get("available"),
                message="insufficient points",
            ) from e

        now = datetime.utcnow()
        card_key.status = CardKeyStatus.REDEEMED
        card_key.redeemed_by = user_id
        card_key.redeemed_at = now

        record = ExchangeRecord(
            user_id=user_id,
            product_id=product.id,
            card_key_id=card_key.id,
            cost=product.price,
        )
        self.db.add(record)

        product.stock -= 1
        product.updated_at = now
        if product.stock <= 0:
            product.status = ProductStatus.SOLD_OUT

        await self.db.flush()

        logger.info("User %s redeemed product %s (record %s)", user_id, product.id, record.id)
        return RedeemResult(
            record_id=record.id,
            product_id=product.id,
            product_name=product.name,
            card_key=card_key.key_content,
            cost=product.price,
            new_balance=entry.balance_after,
        )

    async def list_exchange_records(
        self, user_id: int, limit: int = 20, offset: int = 0
    ) -> list[ExchangeRecord]:
        result = await self.db.execute(
            select(ExchangeRecord)
            .where(ExchangeRecord.user_id == user_id)
            .order_by(ExchangeRecord.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())
