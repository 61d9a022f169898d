"""Tests for lottery purchase, scratch and verification."""

from __future__ import annotations

import base64

import pytest
from sqlalchemy import func
from sqlmodel import select

import scratch_lottery.services.lottery_service as lottery_module
from scratch_lottery.core.exceptions import (
    AlreadyScratchedError,
    InsufficientBalanceError,
    InvalidAreaIndexError,
    InvalidQuantityError,
    InvalidRulesConfigError,
    InvalidSecurityCodeError,
    LotteryTypeNotFoundError,
    NotFoundError,
    SecurityCodeExhaustedError,
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
    GameType,
    LotteryTypeStatus,
    PrizeLevel,
    PrizePool,
    PrizePoolStatus,
    Ticket,
    TicketStatus,
)
from scratch_lottery.models.wallet import TransactionType
from scratch_lottery.schemas.lottery import CreateLotteryTypeRequest, CreatePrizePoolRequest, PrizeLevelInput
from scratch_lottery.schemas.ticket import RevealedTicketView, TicketContent, UnrevealedTicketView
from scratch_lottery.services.lottery_service import LotteryService
from scratch_lottery.services.wallet_service import WalletService


async def count_tickets(db) -> int:
    result = await db.execute(select(func.count()).select_from(Ticket))
    return result.scalar_one()


async def load_pool(db, pool_id: int) -> PrizePool:
    return await db.get(PrizePool, pool_id, populate_existing=True)


async def load_levels(db, lottery_type_id: int) -> list[PrizeLevel]:
    result = await db.execute(
        select(PrizeLevel)
        .where(PrizeLevel.lottery_type_id == lottery_type_id)
        .order_by(PrizeLevel.level)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


class TestCatalog:
    async def test_create_lottery_type(self, db, create_lottery) -> None:
        type_id, pool_id = await create_lottery(total_tickets=20, levels=[(1, 100, 1), (2, 10, 3)])

        levels = await load_levels(db, type_id)
        assert [(lv.level, lv.quantity, lv.remaining) for lv in levels] == [(1, 1, 1), (2, 3, 3)]

        service = LotteryService(db)
        pool = await service.get_active_pool(type_id)
        assert pool.id == pool_id
        assert pool.remaining_tickets == 20

        types = await service.list_lottery_types()
        assert [(t.id, t.stock) for t in types] == [(type_id, 20)]

        detail = await service.get_lottery_type_detail(type_id)
        assert [lv.prize_amount for lv in detail.prize_levels] == [100, 10]

    async def test_malformed_pattern_config_rejected(self, db) -> None:
        with pytest.raises(InvalidRulesConfigError):
            await LotteryService(db).create_lottery_type(
                CreateLotteryTypeRequest(
                    name="Broken",
                    price=5,
                    max_prize=100,
                    game_type=GameType.PATTERN,
                    rules_config={"area_count": 9, "patterns": []},
                )
            )

    async def test_duplicate_levels_rejected(self, db) -> None:
        with pytest.raises(ValidationError):
            await LotteryService(db).create_lottery_type(
                CreateLotteryTypeRequest(
                    name="Dup",
                    price=5,
                    max_prize=100,
                    prize_levels=[
                        PrizeLevelInput(level=1, prize_amount=100, quantity=1),
                        PrizeLevelInput(level=1, prize_amount=50, quantity=1),
                    ],
                )
            )

    async def test_pool_smaller_than_prizes_rejected(self, db, create_lottery) -> None:
        with pytest.raises(ValidationError):
            await create_lottery(total_tickets=2, levels=[(1, 100, 3)])

    async def test_second_active_pool_rejected(self, db, create_lottery) -> None:
        type_id, _ = await create_lottery()
        with pytest.raises(StateConflictError):
            await LotteryService(db).create_prize_pool(
                CreatePrizePoolRequest(lottery_type_id=type_id, total_tickets=5)
            )

    async def test_disabled_types_hidden(self, db, create_lottery) -> None:
        type_id, _ = await create_lottery()
        service = LotteryService(db)
        await service.set_lottery_type_status(type_id, LotteryTypeStatus.DISABLED)
        await db.commit()

        assert await service.list_lottery_types() == []
        assert len(await service.list_lottery_types(include_disabled=True)) == 1

    async def test_status_sold_out_not_settable(self, db, create_lottery) -> None:
        type_id, _ = await create_lottery()
        service = LotteryService(db)
        with pytest.raises(ValidationError):
            await service.set_lottery_type_status(type_id, LotteryTypeStatus.SOLD_OUT)
        with pytest.raises(LotteryTypeNotFoundError):
            await service.set_lottery_type_status(404, LotteryTypeStatus.DISABLED)

    async def test_close_pool_stops_sales_and_allows_new_batch(
        self, db, user_id, create_lottery
    ) -> None:
        type_id, pool_id = await create_lottery(total_tickets=3, levels=[(1, 100, 1)])
        service = LotteryService(db)
        ticket_id = (await service.purchase(user_id, type_id, 1)).tickets[0].id
        await service.close_prize_pool(pool_id)
        await db.commit()

        assert (await load_pool(db, pool_id)).status == PrizePoolStatus.CLOSED
        assert await service.get_stock(type_id) == 0
        with pytest.raises(SoldOutError):
            await service.purchase(user_id, type_id, 1)
        with pytest.raises(StateConflictError):
            await service.close_prize_pool(pool_id)

        # tickets sold before closing can still be scratched
        await service.scratch(user_id, ticket_id)
        await db.commit()

        new_pool = await service.create_prize_pool(
            CreatePrizePoolRequest(lottery_type_id=type_id, total_tickets=5)
        )
        await db.commit()
        assert new_pool.status == PrizePoolStatus.ACTIVE
        assert await service.get_stock(type_id) == 5

    async def test_close_unknown_pool(self, db) -> None:
        with pytest.raises(NotFoundError):
            await LotteryService(db).close_prize_pool(404)


class TestPurchase:
    async def test_purchase_debits_once(self, db, user_id, create_lottery) -> None:
        type_id, pool_id = await create_lottery(price=5)

        result = await LotteryService(db).purchase(user_id, type_id, 3)
        await db.commit()

        assert result.total_cost == 15
        assert result.new_balance == 35
        assert len(result.tickets) == 3
        assert len({t.security_code for t in result.tickets}) == 3
        assert all(isinstance(t, UnrevealedTicketView) for t in result.tickets)
        assert all(t.lottery_type == "Lucky 7" for t in result.tickets)

        purchases = await WalletService(db).list_transactions(
            user_id, tx_type=TransactionType.PURCHASE
        )
        assert len(purchases) == 1
        assert purchases[0].amount == -15
        assert purchases[0].reference_id == type_id
        assert purchases[0].description == "购买彩票: Lucky 7 x3"

        pool = await load_pool(db, pool_id)
        assert pool.sold_tickets == 3
        assert await count_tickets(db) == 3

    async def test_content_is_encrypted_and_matches_cached_prize(
        self, db, user_id, create_lottery
    ) -> None:
        type_id, _ = await create_lottery(total_tickets=3, levels=[(1, 100, 3)])
        await LotteryService(db).purchase(user_id, type_id, 3)
        await db.commit()

        result = await db.execute(select(Ticket))
        for ticket in result.scalars().all():
            assert not ticket.content_encrypted.startswith("{")
            content = TicketContent.model_validate_json(get_cipher().decrypt(ticket.content_encrypted))
            assert content.prize_amount == ticket.prize_amount == 100
            assert content.prize_level == 1

    @pytest.mark.parametrize("quantity", [0, 11, -1])
    async def test_quantity_bounds(self, db, user_id, create_lottery, quantity) -> None:
        type_id, _ = await create_lottery()
        with pytest.raises(InvalidQuantityError):
            await LotteryService(db).purchase(user_id, type_id, quantity)

    async def test_unknown_type(self, db, user_id) -> None:
        with pytest.raises(LotteryTypeNotFoundError):
            await LotteryService(db).purchase(user_id, 404, 1)

    async def test_disabled_type(self, db, user_id, create_lottery) -> None:
        type_id, _ = await create_lottery()
        service = LotteryService(db)
        await service.set_lottery_type_status(type_id, LotteryTypeStatus.DISABLED)
        await db.commit()

        with pytest.raises(TypeDisabledError):
            await service.purchase(user_id, type_id, 1)
        with pytest.raises(TypeDisabledError):
            await service.preview_purchase(user_id, type_id, 1)

        await service.set_lottery_type_status(type_id, LotteryTypeStatus.AVAILABLE)
        await db.commit()
        result = await service.purchase(user_id, type_id, 1)
        assert len(result.tickets) == 1

    async def test_insufficient_balance_changes_nothing(self, db, user_id, create_lottery) -> None:
        type_id, pool_id = await create_lottery(price=30)

        with pytest.raises(InsufficientBalanceError):
            await LotteryService(db).purchase(user_id, type_id, 2)
        await db.rollback()

        pool = await load_pool(db, pool_id)
        assert pool.sold_tickets == 0
        assert await count_tickets(db) == 0
        wallet_service = WalletService(db)
        assert await wallet_service.get_balance(user_id) == 50
        assert len(await wallet_service.list_transactions(user_id)) == 1

    async def test_failure_mid_batch_rolls_back_everything(
        self, db, user_id, create_lottery, monkeypatch
    ) -> None:
        type_id, pool_id = await create_lottery(total_tickets=10, levels=[(1, 100, 10)])
        real_generate = lottery_module.generate_unique_security_code
        calls = []

        async def flaky_generate(session, reserved=None):
            calls.append(1)
            if len(calls) == 3:
                raise SecurityCodeExhaustedError("could not generate a unique security code")
            return await real_generate(session, reserved)

        monkeypatch.setattr(lottery_module, "generate_unique_security_code", flaky_generate)

        with pytest.raises(SecurityCodeExhaustedError):
            await LotteryService(db).purchase(user_id, type_id, 5)
        await db.rollback()

        pool = await load_pool(db, pool_id)
        assert pool.sold_tickets == 0
        assert [lv.remaining for lv in await load_levels(db, type_id)] == [10]
        assert await count_tickets(db) == 0
        assert await WalletService(db).get_balance(user_id) == 50

    async def test_pool_conservation_and_sell_out(
        self, db, register_user, create_lottery
    ) -> None:
        buyer = await register_user("buyer")
        type_id, pool_id = await create_lottery(
            total_tickets=20, levels=[(1, 100, 2), (2, 10, 5)], price=1
        )
        service = LotteryService(db)

        await service.purchase(buyer, type_id, 10)
        await service.purchase(buyer, type_id, 10)
        await db.commit()

        with pytest.raises(SoldOutError):
            await service.purchase(buyer, type_id, 1)
        await db.rollback()

        pool = await load_pool(db, pool_id)
        assert pool.sold_tickets == 20
        assert pool.status == PrizePoolStatus.SOLD_OUT
        assert [lv.remaining for lv in await load_levels(db, type_id)] == [0, 0]

        result = await db.execute(select(Ticket.prize_amount))
        prizes = sorted(result.scalars().all(), reverse=True)
        assert prizes == [100, 100] + [10] * 5 + [0] * 13

    async def test_request_larger_than_remaining(self, db, user_id, create_lottery) -> None:
        type_id, pool_id = await create_lottery(total_tickets=3, price=1)
        service = LotteryService(db)
        await service.purchase(user_id, type_id, 2)
        await db.commit()

        with pytest.raises(SoldOutError) as exc_info:
            await service.purchase(user_id, type_id, 2)
        assert exc_info.value.details["remaining"] == 1
        await db.rollback()

        assert (await load_pool(db, pool_id)).sold_tickets == 2

    async def test_preview(self, db, user_id, create_lottery) -> None:
        type_id, _ = await create_lottery(price=20)
        service = LotteryService(db)

        preview = await service.preview_purchase(user_id, type_id, 2)
        assert preview.total_cost == 40
        assert preview.balance_after == 10
        assert preview.stock == 10
        assert preview.can_purchase

        preview = await service.preview_purchase(user_id, type_id, 3)
        assert not preview.can_purchase
        assert await count_tickets(db) == 0


class TestScratch:
    async def _buy_one(self, db, user_id, create_lottery, prize: int = 100) -> tuple[int, int, int]:
        levels = [(1, prize, 1)] if prize else []
        type_id, pool_id = await create_lottery(total_tickets=1, levels=levels, price=5)
        result = await LotteryService(db).purchase(user_id, type_id, 1)
        ticket_id = result.tickets[0].id
        await db.commit()
        return type_id, pool_id, ticket_id

    async def test_win_is_credited(self, db, user_id, create_lottery) -> None:
        _, pool_id, ticket_id = await self._buy_one(db, user_id, create_lottery)

        result = await LotteryService(db).scratch(user_id, ticket_id)
        await db.commit()

        assert result.is_win
        assert result.prize_amount == 100
        assert result.content.prize_level == 1
        assert result.new_balance == 50 - 5 + 100
        assert result.status == TicketStatus.SCRATCHED

        wins = await WalletService(db).list_transactions(user_id, tx_type=TransactionType.WIN)
        assert [(w.amount, w.reference_id) for w in wins] == [(100, ticket_id)]
        assert wins[0].description == "彩票中奖: Lucky 7"
        assert (await load_pool(db, pool_id)).claimed_prizes == 1

    async def test_loss_is_not_credited(self, db, user_id, create_lottery) -> None:
        _, pool_id, ticket_id = await self._buy_one(db, user_id, create_lottery, prize=0)

        result = await LotteryService(db).scratch(user_id, ticket_id)
        await db.commit()

        assert not result.is_win
        assert result.new_balance == 45
        wins = await WalletService(db).list_transactions(user_id, tx_type=TransactionType.WIN)
        assert wins == []
        assert (await load_pool(db, pool_id)).claimed_prizes == 0

    async def test_double_scratch(self, db, user_id, create_lottery) -> None:
        _, _, ticket_id = await self._buy_one(db, user_id, create_lottery)
        service = LotteryService(db)
        await service.scratch(user_id, ticket_id)
        await db.commit()

        with pytest.raises(AlreadyScratchedError):
            await service.scratch(user_id, ticket_id)
        await db.rollback()

        wins = await WalletService(db).list_transactions(user_id, tx_type=TransactionType.WIN)
        assert len(wins) == 1
        assert await WalletService(db).get_balance(user_id) == 145

    async def test_not_owned(self, db, user_id, register_user, create_lottery) -> None:
        _, _, ticket_id = await self._buy_one(db, user_id, create_lottery)
        other = await register_user("mallory")

        with pytest.raises(TicketNotOwnedError):
            await LotteryService(db).scratch(other, ticket_id)

    async def test_not_found(self, db, user_id) -> None:
        with pytest.raises(TicketNotFoundError):
            await LotteryService(db).scratch(user_id, 12345)

    async def test_wrong_key_is_integrity_error(self, db, user_id, create_lottery) -> None:
        _, _, ticket_id = await self._buy_one(db, user_id, create_lottery)
        other_cipher = AESCipher(base64.b64encode(b"x" * 32).decode("ascii"))

        with pytest.raises(TicketIntegrityError):
            await LotteryService(db, cipher=other_cipher).scratch(user_id, ticket_id)
        await db.rollback()

        ticket = await db.get(Ticket, ticket_id, populate_existing=True)
        assert ticket.status == TicketStatus.UNSCRATCHED
        assert await WalletService(db).get_balance(user_id) == 45

    async def test_cached_prize_mismatch_is_integrity_error(
        self, db, user_id, create_lottery
    ) -> None:
        _, _, ticket_id = await self._buy_one(db, user_id, create_lottery)
        ticket = await db.get(Ticket, ticket_id)
        ticket.prize_amount = 1000
        await db.commit()

        with pytest.raises(TicketIntegrityError):
            await LotteryService(db).scratch(user_id, ticket_id)


class TestVerification:
    async def test_unscratched_hides_prize(self, db, user_id, create_lottery) -> None:
        type_id, _ = await create_lottery(total_tickets=1, levels=[(1, 100, 1)])
        result = await LotteryService(db).purchase(user_id, type_id, 1)
        code = result.tickets[0].security_code
        await db.commit()

        view = await LotteryService(db).verify_by_code(code)
        assert isinstance(view, UnrevealedTicketView)
        dumped = view.model_dump()
        assert "prize_amount" not in dumped
        assert "is_win" not in dumped
        assert "scratched_at" not in dumped
        assert dumped["revealed"] is False

    async def test_scratched_shows_prize(self, db, user_id, create_lottery) -> None:
        type_id, _ = await create_lottery(total_tickets=1, levels=[(1, 100, 1)])
        service = LotteryService(db)
        result = await service.purchase(user_id, type_id, 1)
        ticket = result.tickets[0]
        await service.scratch(user_id, ticket.id)
        await db.commit()

        view = await service.verify_by_code(ticket.security_code)
        assert isinstance(view, RevealedTicketView)
        assert view.prize_amount == 100
        assert view.is_win
        assert view.scratched_at is not None

    @pytest.mark.parametrize("code", ["", "SHORT", "A" * 17])
    async def test_bad_format(self, db, code) -> None:
        with pytest.raises(InvalidSecurityCodeError):
            await LotteryService(db).verify_by_code(code)

    async def test_unknown_code(self, db) -> None:
        with pytest.raises(TicketNotFoundError):
            await LotteryService(db).verify_by_code("ABCDEFGHJKLMNPQR")

    async def test_listing_and_detail_hide_prize_until_scratched(
        self, db, user_id, create_lottery
    ) -> None:
        type_id, _ = await create_lottery(total_tickets=2, levels=[(1, 100, 2)])
        service = LotteryService(db)
        result = await service.purchase(user_id, type_id, 2)
        first, second = (t.id for t in result.tickets)
        await service.scratch(user_id, first)
        await db.commit()

        tickets = await service.list_tickets(user_id)
        assert [t.id for t in tickets] == [second, first]
        assert isinstance(tickets[0], UnrevealedTicketView)
        assert isinstance(tickets[1], RevealedTicketView)

        scratched = await service.list_tickets(user_id, status=TicketStatus.SCRATCHED)
        assert [t.id for t in scratched] == [first]

        detail = await service.get_ticket(user_id, second)
        assert detail.content is None
        detail = await service.get_ticket(user_id, first)
        assert detail.content.prize_amount == 100


class TestPatternLottery:
    async def test_pattern_purchase_and_scratch(
        self, db, user_id, create_lottery, pattern_rules
    ) -> None:
        type_id, _ = await create_lottery(
            total_tickets=4,
            levels=[(1, 20, 2)],
            price=1,
            game_type=GameType.PATTERN,
            rules_config=pattern_rules,
        )
        service = LotteryService(db)
        result = await service.purchase(user_id, type_id, 4)
        await db.commit()

        paid = 0
        for ticket in result.tickets:
            scratched = await service.scratch(user_id, ticket.id)
            grid = scratched.content.pattern
            assert len(grid.areas) == 9

            flagged = [a for a in grid.areas if a.is_win or a.is_special]
            if scratched.prize_amount == 0:
                assert flagged == []
                continue

            assert len(flagged) == 1
            reveal = await service.reveal_area(user_id, ticket.id, flagged[0].index)
            assert reveal.prize_awarded == scratched.prize_amount
            paid += scratched.prize_amount
        await db.commit()

        wallet_service = WalletService(db)
        assert await wallet_service.get_balance(user_id) == 50 - 4 + paid
        assert await wallet_service.ledger_sum(user_id) == 50 - 4 + paid

    async def test_reveal_area_bounds_and_type(
        self, db, user_id, create_lottery, pattern_rules
    ) -> None:
        type_id, _ = await create_lottery(
            total_tickets=1, game_type=GameType.PATTERN, rules_config=pattern_rules
        )
        service = LotteryService(db)
        ticket_id = (await service.purchase(user_id, type_id, 1)).tickets[0].id

        with pytest.raises(InvalidAreaIndexError):
            await service.reveal_area(user_id, ticket_id, 9)

        standard_id, _ = await create_lottery(name="Classic")
        standard_ticket = (await service.purchase(user_id, standard_id, 1)).tickets[0].id
        with pytest.raises(InvalidRulesConfigError):
            await service.reveal_area(user_id, standard_ticket, 0)

    async def test_reveal_before_scratch_settles_nothing(
        self, db, user_id, register_user, create_lottery, pattern_rules
    ) -> None:
        type_id, _ = await create_lottery(
            total_tickets=1,
            levels=[(1, 20, 1)],
            price=1,
            game_type=GameType.PATTERN,
            rules_config=pattern_rules,
        )
        service = LotteryService(db)
        ticket_id = (await service.purchase(user_id, type_id, 1)).tickets[0].id
        await db.commit()

        reveals = [await service.reveal_area(user_id, ticket_id, i) for i in range(9)]
        assert sum(r.prize_awarded for r in reveals) == 20

        detail = await service.get_ticket(user_id, ticket_id)
        assert detail.ticket.status == TicketStatus.UNSCRATCHED
        assert detail.content is None
        assert await WalletService(db).get_balance(user_id) == 49

        other_id = await register_user("bob")
        with pytest.raises(TicketNotOwnedError):
            await service.reveal_area(other_id, ticket_id, 0)

        scratched = await service.scratch(user_id, ticket_id)
        assert scratched.new_balance == 69


class TestEndToEnd:
    async def test_buy_scratch_verify_reconcile(self, db, user_id, create_lottery) -> None:
        type_id, pool_id = await create_lottery(total_tickets=5, levels=[(1, 50, 1), (2, 5, 2)], price=2)
        service = LotteryService(db)

        purchase = await service.purchase(user_id, type_id, 5)
        await db.commit()
        assert purchase.new_balance == 40

        total_won = 0
        for ticket in purchase.tickets:
            before = await service.verify_by_code(ticket.security_code)
            assert isinstance(before, UnrevealedTicketView)

            scratched = await service.scratch(user_id, ticket.id)
            await db.commit()
            total_won += scratched.prize_amount

            after = await service.verify_by_code(ticket.security_code)
            assert isinstance(after, RevealedTicketView)
            assert after.prize_amount == scratched.prize_amount

        assert total_won == 50 + 5 + 5

        wallet_service = WalletService(db)
        balance = await wallet_service.get_balance(user_id)
        assert balance == 40 + total_won
        assert await wallet_service.ledger_sum(user_id) == balance

        pool = await load_pool(db, pool_id)
        assert pool.status == PrizePoolStatus.SOLD_OUT
        assert pool.claimed_prizes == 3

    async def test_single_ticket_jackpot(self, db, user_id, create_lottery) -> None:
        wallet_service = WalletService(db)
        await wallet_service.credit(user_id, 50, TransactionType.ADJUSTMENT, "top up")
        await db.commit()
        assert await wallet_service.get_balance(user_id) == 100

        type_id, pool_id = await create_lottery(total_tickets=1, levels=[(1, 1000, 1)], price=10)
        service = LotteryService(db)

        purchase = await service.purchase(user_id, type_id, 1)
        await db.commit()
        assert purchase.new_balance == 90
        ticket = purchase.tickets[0]

        levels = await load_levels(db, type_id)
        assert [lv.remaining for lv in levels] == [0]

        scratched = await service.scratch(user_id, ticket.id)
        await db.commit()
        assert scratched.prize_amount == 1000
        assert scratched.new_balance == 1090

        for _ in range(2):
            detail = await service.get_ticket(user_id, ticket.id)
            assert detail.ticket.prize_amount == 1000
            assert detail.content.prize_amount == 1000
            verified = await service.verify_by_code(ticket.security_code)
            assert verified.prize_amount == 1000

        assert await wallet_service.get_balance(user_id) == 1090
        assert await wallet_service.ledger_sum(user_id) == 1090
        pool = await load_pool(db, pool_id)
        assert (pool.sold_tickets, pool.claimed_prizes) == (1, 1)
