"""Lottery Service - catalog, ticket purchase and the ticket state machine.

Ticket lifecycle: (none) -> unscratched -> scratched -> claimed.

Purchase runs as one unit of work in the caller's session: lock the active
pool, debit the wallet once, then for every ticket draw the outcome, pick a
security code, encrypt the content, insert the ticket and move the pool and
level counters. Any exception leaves the session to be rolled back by the
session boundary, so counters and tickets never disagree.

Lock order is pool -> wallet -> prize levels for purchase and
ticket -> pool -> wallet for scratch.
"""

import logging
import random
from datetime import datetime

from cryptography.exceptions import InvalidTag
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from scratch_lottery.core.exceptions import (
    AlreadyScratchedError,
    InvalidQuantityError,
    InvalidRulesConfigError,
    InvalidSecurityCodeError,
    LotteryTypeNotFoundError,
    NotFoundError,
    SoldOutError,
    StateConflictError,
    TicketIntegrityError,
    TicketNotFoundError,
    TicketNotOwnedError,
    TypeDisabledError,
    ValidationError,
)
from scratch_lottery.core.security import AESCipher, get_cipher
from scratch_lottery.models.lottery import (
    LotteryType,
    LotteryTypeStatus,
    PrizeLevel,
    PrizePool,
    PrizePoolStatus,
    Ticket,
    TicketStatus,
)
from scratch_lottery.models.wallet import TransactionType
from scratch_lottery.schemas.lottery import (
    MAX_TICKETS_PER_PURCHASE,
    CreateLotteryTypeRequest,
    CreatePrizePoolRequest,
    LotteryTypeDetailResponse,
    LotteryTypeResponse,
    PrizeLevelResponse,
)
from scratch_lottery.schemas.rules import PatternRules, RulesConfig, parse_rules_config
from scratch_lottery.schemas.ticket import (
    AreaRevealResult,
    PurchasePreview,
    PurchaseResult,
    RevealedTicketView,
    ScratchResult,
    TicketContent,
    TicketDetail,
    UnrevealedTicketView,
)
from scratch_lottery.services.prize_service import (
    build_pattern_content,
    build_standard_content,
    draw_prize_level,
    judge_area,
)
from scratch_lottery.services.security_code import (
    SECURITY_CODE_LENGTH,
    generate_unique_security_code,
)
from scratch_lottery.services.wallet_service import WalletService

logger = logging.getLogger(__name__)


class LotteryService:
    """Service for lottery catalog, purchases and scratching."""

    def __init__(
        self,
        db: AsyncSession,
        cipher: AESCipher | None = None,
        rng: random.Random | None = None,
    ):
        self.db = db
        self.cipher = cipher or get_cipher()
        self.rng = rng
        self._wallet_service: WalletService | None = None

    @property
    def wallet_service(self) -> WalletService:
        """Lazy-loaded wallet service sharing this session."""
        if self._wallet_service is None:
            self._wallet_service = WalletService(self.db)
        return self._wallet_service

    # =========================================================================
    # Catalog (彩票类型 / 奖级 / 奖池)
    # =========================================================================

    async def create_lottery_type(self, data: CreateLotteryTypeRequest) -> LotteryType:
        """Create a lottery type with its prize levels.

        Raises:
            InvalidRulesConfigError: rules_config does not fit the game type
            ValidationError: Duplicate prize level numbers
        """
        parse_rules_config(data.game_type, data.rules_config)

        level_numbers = [pl.level for pl in data.prize_levels]
        if len(level_numbers) != len(set(level_numbers)):
            raise ValidationError("duplicate prize level", {"levels": level_numbers})

        lottery_type = LotteryType(
            name=data.name,
            description=data.description,
            price=data.price,
            max_prize=data.max_prize,
            game_type=data.game_type,
            cover_image=data.cover_image,
            rules_config=data.rules_config,
            status=LotteryTypeStatus.AVAILABLE,
        )
        self.db.add(lottery_type)
        await self.db.flush()

        for pl in data.prize_levels:
            self.db.add(
                PrizeLevel(
                    lottery_type_id=lottery_type.id,
                    level=pl.level,
                    name=pl.name,
                    prize_amount=pl.prize_amount,
                    quantity=pl.quantity,
                    remaining=pl.quantity,
                )
            )
        await self.db.flush()

        logger.info("Created lottery type %s (%s)", lottery_type.id, lottery_type.name)
        return lottery_type

    async def get_lottery_type(self, lottery_type_id: int) -> LotteryType:
        lottery_type = await self.db.get(LotteryType, lottery_type_id)
        if lottery_type is None:
            raise LotteryTypeNotFoundError(
                "lottery type not found", {"lottery_type_id": lottery_type_id}
            )
        return lottery_type

    async def get_prize_levels(
        self, lottery_type_id: int, for_update: bool = False
    ) -> list[PrizeLevel]:
        """Prize levels of a lottery type in ascending level order."""
        query = (
            select(PrizeLevel)
            .where(PrizeLevel.lottery_type_id == lottery_type_id)
            .order_by(PrizeLevel.level)
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_prize_pool(self, data: CreatePrizePoolRequest) -> PrizePool:
        """Open a new ticket batch for a lottery type.

        Raises:
            StateConflictError: The type already has an active pool
            ValidationError: Prize quantities exceed the batch size
        """
        await self.get_lottery_type(data.lottery_type_id)

        if await self.get_active_pool(data.lottery_type_id) is not None:
            raise StateConflictError(
                "lottery type already has an active prize pool",
                {"lottery_type_id": data.lottery_type_id},
            )

        levels = await self.get_prize_levels(data.lottery_type_id)
        total_prizes = sum(lv.remaining for lv in levels)
        if total_prizes > data.total_tickets:
            raise ValidationError(
                "prize quantities exceed total tickets",
                {"total_prizes": total_prizes, "total_tickets": data.total_tickets},
            )

        pool = PrizePool(
            lottery_type_id=data.lottery_type_id,
            total_tickets=data.total_tickets,
            return_rate=data.return_rate,
            status=PrizePoolStatus.ACTIVE,
        )
        self.db.add(pool)
        await self.db.flush()
        return pool

    async def get_active_pool(
        self, lottery_type_id: int, for_update: bool = False
    ) -> PrizePool | None:
        """The oldest active pool of a lottery type, if any."""
        query = (
            select(PrizePool)
            .where(
                PrizePool.lottery_type_id == lottery_type_id,
                PrizePool.status == PrizePoolStatus.ACTIVE,
            )
            .order_by(PrizePool.id)
            .limit(1)
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_stock(self, lottery_type_id: int) -> int:
        pool = await self.get_active_pool(lottery_type_id)
        return pool.remaining_tickets if pool else 0

    async def list_lottery_types(self, include_disabled: bool = False) -> list[LotteryTypeResponse]:
        query = select(LotteryType)
        if not include_disabled:
            query = query.where(LotteryType.status != LotteryTypeStatus.DISABLED)
        query = query.order_by(LotteryType.created_at.desc())
        result = await self.db.execute(query)

        items = []
        for lottery_type in result.scalars().all():
            item = LotteryTypeResponse.model_validate(lottery_type)
            item.stock = await self.get_stock(lottery_type.id)
            items.append(item)
        return items

    async def get_lottery_type_detail(self, lottery_type_id: int) -> LotteryTypeDetailResponse:
        lottery_type = await self.get_lottery_type(lottery_type_id)
        levels = await self.get_prize_levels(lottery_type_id)
        return LotteryTypeDetailResponse(
            **LotteryTypeResponse.model_validate(lottery_type).model_dump(exclude={"stock"}),
            stock=await self.get_stock(lottery_type_id),
            rules_config=lottery_type.rules_config,
            prize_levels=[PrizeLevelResponse.model_validate(lv) for lv in levels],
        )

    async def set_lottery_type_status(
        self, lottery_type_id: int, status: LotteryTypeStatus
    ) -> LotteryType:
        """Enable or disable a lottery type (上架 / 下架).

        Raises:
            LotteryTypeNotFoundError: Unknown lottery type
            ValidationError: status is sold_out, which is not set by hand
        """
        if status == LotteryTypeStatus.SOLD_OUT:
            raise ValidationError("sold_out cannot be set manually", {"status": status.value})

        lottery_type = await self.get_lottery_type(lottery_type_id)
        lottery_type.status = status
        lottery_type.updated_at = datetime.utcnow()
        await self.db.flush()

        logger.info("Lottery type %s set to %s", lottery_type.id, status.value)
        return lottery_type

    async def close_prize_pool(self, prize_pool_id: int) -> PrizePool:
        """Stop selling from an active pool so a new batch can be opened.

        Tickets already sold keep their outcome and can still be scratched.

        Raises:
            NotFoundError: Unknown prize pool
            StateConflictError: Pool is not active
        """
        result = await self.db.execute(
            select(PrizePool)
            .where(PrizePool.id == prize_pool_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        pool = result.scalar_one_or_none()
        if pool is None:
            raise NotFoundError("prize pool not found", {"prize_pool_id": prize_pool_id})
        if pool.status != PrizePoolStatus.ACTIVE:
            raise StateConflictError(
                "prize pool is not active",
                {"prize_pool_id": prize_pool_id, "status": pool.status.value},
            )

        pool.status = PrizePoolStatus.CLOSED
        await self.db.flush()

        logger.info(
            "Closed prize pool %s (%s/%s sold)", pool.id, pool.sold_tickets, pool.total_tickets
        )
        return pool

    # =========================================================================
    # Purchase (购买)
    # =========================================================================

    async def _get_purchasable_type(self, lottery_type_id: int) -> LotteryType:
        lottery_type = await self.get_lottery_type(lottery_type_id)
        if lottery_type.status == LotteryTypeStatus.DISABLED:
            raise TypeDisabledError("lottery type disabled", {"lottery_type_id": lottery_type_id})
        if lottery_type.status == LotteryTypeStatus.SOLD_OUT:
            raise SoldOutError("lottery type sold out", {"lottery_type_id": lottery_type_id})
        return lottery_type

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if not 1 <= quantity <= MAX_TICKETS_PER_PURCHASE:
            raise InvalidQuantityError(
                f"quantity must be between 1 and {MAX_TICKETS_PER_PURCHASE}",
                {"quantity": quantity},
            )

    async def preview_purchase(
        self, user_id: int, lottery_type_id: int, quantity: int = 1
    ) -> PurchasePreview:
        """Check a purchase without making it."""
        self._check_quantity(quantity)
        lottery_type = await self._get_purchasable_type(lottery_type_id)
        balance = await self.wallet_service.get_balance(user_id)
        stock = await self.get_stock(lottery_type_id)
        total_cost = lottery_type.price * quantity

        return PurchasePreview(
            lottery_type_id=lottery_type_id,
            quantity=quantity,
            unit_price=lottery_type.price,
            total_cost=total_cost,
            current_balance=balance,
            balance_after=balance - total_cost,
            stock=stock,
            can_purchase=balance >= total_cost and stock >= quantity,
        )

    async def purchase(self, user_id: int, lottery_type_id: int, quantity: int = 1) -> PurchaseResult:
        """Buy ``quantity`` tickets in one unit of work.

        Returns:
            The new tickets (unrevealed), total cost and balance after the debit

        Raises:
            InvalidQuantityError: quantity outside 1..10
            LotteryTypeNotFoundError: Unknown lottery type
            TypeDisabledError: Lottery type disabled
            SoldOutError: No active pool or not enough tickets left
            InsufficientBalanceError: Wallet cannot cover the total cost
            InvalidRulesConfigError: Pattern config unreadable
        """
        self._check_quantity(quantity)
        lottery_type = await self._get_purchasable_type(lottery_type_id)
        rules = parse_rules_config(lottery_type.game_type, lottery_type.rules_config)

        pool = await self.get_active_pool(lottery_type_id, for_update=True)
        if pool is None or pool.remaining_tickets < quantity:
            raise SoldOutError(
                "not enough tickets left",
                {
                    "lottery_type_id": lottery_type_id,
                    "requested": quantity,
                    "remaining": pool.remaining_tickets if pool else 0,
                },
            )

        total_cost = lottery_type.price * quantity
        entry = await self.wallet_service.debit(
            user_id,
            total_cost,
            TransactionType.PURCHASE,
            f"购买彩票: {lottery_type.name} x{quantity}",
            reference_id=lottery_type.id,
        )

        levels = await self.get_prize_levels(lottery_type_id, for_update=True)
        codes: set[str] = set()
        tickets = []
        for _ in range(quantity):
            ticket = await self._generate_ticket(user_id, lottery_type, rules, pool, levels, codes)
            tickets.append(self._to_view(ticket, lottery_type.name))

        logger.info(
            "User %s bought %s x%s for %s (pool %s: %s/%s)",
            user_id,
            lottery_type.id,
            quantity,
            total_cost,
            pool.id,
            pool.sold_tickets,
            pool.total_tickets,
        )
        return PurchaseResult(tickets=tickets, total_cost=total_cost, new_balance=entry.balance_after)

    async def _generate_ticket(
        self,
        user_id: int,
        lottery_type: LotteryType,
        rules: RulesConfig,
        pool: PrizePool,
        levels: list[PrizeLevel],
        codes: set[str],
    ) -> Ticket:
        """Draw, encrypt and insert one ticket; move pool and level counters."""
        if pool.sold_tickets >= pool.total_tickets:
            raise SoldOutError("prize pool sold out", {"prize_pool_id": pool.id})

        level = draw_prize_level(pool.remaining_tickets, levels, self.rng)
        if isinstance(rules, PatternRules):
            content = build_pattern_content(
                rules,
                level.level if level else 0,
                level.prize_amount if level else 0,
                self.rng,
            )
        else:
            content = build_standard_content(level)

        code = await generate_unique_security_code(self.db, codes)
        codes.add(code)

        ticket = Ticket(
            user_id=user_id,
            lottery_type_id=lottery_type.id,
            prize_pool_id=pool.id,
            security_code=code,
            content_encrypted=self.cipher.encrypt(content.model_dump_json()),
            prize_amount=content.prize_amount,
            status=TicketStatus.UNSCRATCHED,
        )
        self.db.add(ticket)

        pool.sold_tickets += 1
        if level is not None:
            level.remaining -= 1
        if pool.sold_tickets >= pool.total_tickets:
            pool.status = PrizePoolStatus.SOLD_OUT
            logger.info("Prize pool %s sold out", pool.id)

        await self.db.flush()
        return ticket

    # =========================================================================
    # Scratch (刮奖)
    # =========================================================================

    def decrypt_content(self, ticket: Ticket) -> TicketContent:
        """Decrypt and parse a ticket's stored outcome.

        Raises:
            TicketIntegrityError: Wrong key, tampered or unparsable content
        """
        try:
            return TicketContent.model_validate_json(self.cipher.decrypt(ticket.content_encrypted))
        except (InvalidTag, PydanticValidationError, ValueError) as e:
            logger.error("Ticket %s content unreadable: %s", ticket.id, type(e).__name__)
            raise TicketIntegrityError(
                "ticket content cannot be decrypted", {"ticket_id": ticket.id}
            ) from e

    async def _get_owned_ticket(
        self, user_id: int, ticket_id: int, for_update: bool = False
    ) -> Ticket:
        query = select(Ticket).where(Ticket.id == ticket_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        ticket = result.scalar_one_or_none()
        if ticket is None:
            raise TicketNotFoundError("ticket not found", {"ticket_id": ticket_id})
        if ticket.user_id != user_id:
            raise TicketNotOwnedError("ticket not owned by user", {"ticket_id": ticket_id})
        return ticket

    async def scratch(self, user_id: int, ticket_id: int) -> ScratchResult:
        """Reveal a ticket and pay its prize.

        The win credit, the pool's claimed counter and the status change
        happen in the same unit of work.

        Raises:
            TicketNotFoundError: Unknown ticket
            TicketNotOwnedError: Ticket belongs to someone else
            AlreadyScratchedError: Ticket is not unscratched
            TicketIntegrityError: Content unreadable or inconsistent
        """
        ticket = await self._get_owned_ticket(user_id, ticket_id, for_update=True)
        if ticket.status != TicketStatus.UNSCRATCHED:
            raise AlreadyScratchedError(
                "ticket already scratched",
                {"ticket_id": ticket_id, "status": ticket.status.value},
            )

        content = self.decrypt_content(ticket)
        if content.prize_amount != ticket.prize_amount:
            raise TicketIntegrityError(
                "ticket prize does not match its content", {"ticket_id": ticket_id}
            )

        lottery_type = await self.get_lottery_type(ticket.lottery_type_id)

        if ticket.prize_amount > 0:
            result = await self.db.execute(
                select(PrizePool)
                .where(PrizePool.id == ticket.prize_pool_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            pool = result.scalar_one()
            pool.claimed_prizes += 1

            entry = await self.wallet_service.credit(
                user_id,
                ticket.prize_amount,
                TransactionType.WIN,
                f"彩票中奖: {lottery_type.name}",
                reference_id=ticket.id,
            )
            new_balance = entry.balance_after
        else:
            new_balance = await self.wallet_service.get_balance(user_id)

        now = datetime.utcnow()
        ticket.status = TicketStatus.SCRATCHED
        ticket.scratched_at = now
        await self.db.flush()

        logger.info("User %s scratched ticket %s, prize %s", user_id, ticket.id, ticket.prize_amount)
        return ScratchResult(
            ticket_id=ticket.id,
            security_code=ticket.security_code,
            status=ticket.status,
            prize_amount=ticket.prize_amount,
            is_win=ticket.prize_amount > 0,
            content=content,
            new_balance=new_balance,
            scratched_at=now,
        )

    async def reveal_area(self, user_id: int, ticket_id: int, area_index: int) -> AreaRevealResult:
        """Judge one cell of the owner's pattern ticket. No ledger effect.

        Unlike ``get_ticket`` and ``verify_by_code`` this works before the
        ticket is scratched: the client uncovers a pattern ticket cell by
        cell and only then calls ``scratch`` to settle it. Only the owner
        can ask, and the answer covers a single cell.

        Raises:
            TicketNotFoundError: Unknown ticket
            TicketNotOwnedError: Ticket belongs to someone else
            InvalidRulesConfigError: Not a pattern lottery
            InvalidAreaIndexError: area_index outside the grid
        """
        ticket = await self._get_owned_ticket(user_id, ticket_id)
        lottery_type = await self.get_lottery_type(ticket.lottery_type_id)
        rules = parse_rules_config(lottery_type.game_type, lottery_type.rules_config)
        if not isinstance(rules, PatternRules):
            raise InvalidRulesConfigError(
                "lottery type is not a pattern lottery", {"lottery_type_id": lottery_type.id}
            )
        return judge_area(self.decrypt_content(ticket), area_index, rules)

    # =========================================================================
    # Verification and listing (验证 / 查询)
    # =========================================================================

    @staticmethod
    def _to_view(ticket: Ticket, lottery_type_name: str) -> UnrevealedTicketView | RevealedTicketView:
        """Pick the view allowed for the ticket's status."""
        base = {
            "id": ticket.id,
            "security_code": ticket.security_code,
            "lottery_type_id": ticket.lottery_type_id,
            "lottery_type": lottery_type_name,
            "status": ticket.status,
            "purchased_at": ticket.purchased_at,
        }
        if ticket.status == TicketStatus.UNSCRATCHED:
            return UnrevealedTicketView(**base)
        return RevealedTicketView(
            **base,
            prize_amount=ticket.prize_amount,
            is_win=ticket.prize_amount > 0,
            scratched_at=ticket.scratched_at,
        )

    async def verify_by_code(self, code: str) -> UnrevealedTicketView | RevealedTicketView:
        """Public anti-counterfeit lookup.

        Prize fields are only present once the ticket is scratched or claimed.

        Raises:
            InvalidSecurityCodeError: Code is not 16 characters long
            TicketNotFoundError: No ticket carries this code
        """
        if len(code) != SECURITY_CODE_LENGTH:
            raise InvalidSecurityCodeError(
                "invalid security code format", {"length": len(code)}
            )

        result = await self.db.execute(
            select(Ticket, LotteryType.name)
            .join(LotteryType, LotteryType.id == Ticket.lottery_type_id)
            .where(Ticket.security_code == code)
        )
        row = result.first()
        if row is None:
            raise TicketNotFoundError("ticket not found")
        ticket, name = row
        return self._to_view(ticket, name)

    async def list_tickets(
        self,
        user_id: int,
        status: TicketStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[UnrevealedTicketView | RevealedTicketView]:
        """A user's tickets, newest first."""
        query = (
            select(Ticket, LotteryType.name)
            .join(LotteryType, LotteryType.id == Ticket.lottery_type_id)
            .where(Ticket.user_id == user_id)
        )
        if status is not None:
            query = query.where(Ticket.status == status)
        query = query.order_by(Ticket.id.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return [self._to_view(ticket, name) for ticket, name in result.all()]

    async def get_ticket(self, user_id: int, ticket_id: int) -> TicketDetail:
        """Owner's view of a ticket; decrypted content only once revealed."""
        ticket = await self._get_owned_ticket(user_id, ticket_id)
        lottery_type = await self.get_lottery_type(ticket.lottery_type_id)
        view = self._to_view(ticket, lottery_type.name)
        content = None
        if isinstance(view, RevealedTicketView):
            content = self.decrypt_content(ticket)
        return TicketDetail(ticket=view, content=content)
