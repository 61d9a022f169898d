"""Shared pytest fixtures and test configuration."""

from __future__ import annotations

import base64
import os
import random
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterable
from typing import Any

# Settings are read once and cached; set the environment before any import
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TICKET_ENCRYPTION_KEY", base64.b64encode(b"k" * 32).decode("ascii"))
os.environ.setdefault("INITIAL_BALANCE", "50")
os.environ.setdefault("PAYMENT_ENABLED", "true")
os.environ.setdefault("EPAY_MERCHANT_ID", "1001")
os.environ.setdefault("EPAY_SECRET", "test-secret")
os.environ.setdefault("DEV_MODE", "true")
os.environ.setdefault("DEV_USERS", "alice,bob,admin")
os.environ.setdefault("DEV_ADMINS", "admin")

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import scratch_lottery.models  # noqa: E402, F401
from scratch_lottery.models.lottery import GameType  # noqa: E402
from scratch_lottery.schemas.lottery import (  # noqa: E402
    CreateLotteryTypeRequest,
    CreatePrizePoolRequest,
    PrizeLevelInput,
)
from scratch_lottery.services.lottery_service import LotteryService  # noqa: E402
from scratch_lottery.services.user_service import UserService  # noqa: E402


class ScriptedRandom:
    """Random source whose ``randrange`` results are scripted.

    ``choice`` keeps using a seeded generator.
    """

    def __init__(self, values: Iterable[int], seed: int = 7) -> None:
        self._values = list(values)
        self._rng = random.Random(seed)

    def randrange(self, stop: int) -> int:
        value = self._values.pop(0)
        assert 0 <= value < stop
        return value

    def choice(self, seq: Any) -> Any:
        return self._rng.choice(seq)


@pytest.fixture
def scripted_random() -> type[ScriptedRandom]:
    return ScriptedRandom


@pytest.fixture
async def engine(tmp_path: Any) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite database, fresh for every test."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'lottery.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory: sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def register_user(db: AsyncSession) -> Callable[..., Awaitable[int]]:
    """Register a user (with the initial grant) and return its id."""

    async def _register(external_id: str = "alice", **kwargs: Any) -> int:
        user = await UserService(db).register(external_id, **kwargs)
        user_id = user.id
        await db.commit()
        return user_id

    return _register


@pytest.fixture
async def user_id(register_user: Callable[..., Awaitable[int]]) -> int:
    return await register_user("alice")


@pytest.fixture
def create_lottery(db: AsyncSession) -> Callable[..., Awaitable[tuple[int, int]]]:
    """Create a lottery type with prize levels and an active pool.

    ``levels`` is a sequence of (level, prize_amount, quantity).
    Returns (lottery_type_id, prize_pool_id).
    """

    async def _create(
        total_tickets: int = 10,
        levels: Iterable[tuple[int, int, int]] = ((1, 100, 1),),
        price: int = 5,
        game_type: GameType = GameType.NUMBER_MATCH,
        rules_config: dict[str, Any] | None = None,
        name: str = "Lucky 7",
    ) -> tuple[int, int]:
        levels = list(levels)
        service = LotteryService(db)
        lottery_type = await service.create_lottery_type(
            CreateLotteryTypeRequest(
                name=name,
                price=price,
                max_prize=max((amount for _, amount, _ in levels), default=1) or 1,
                game_type=game_type,
                rules_config=rules_config,
                prize_levels=[
                    PrizeLevelInput(level=lv, name=f"Level {lv}", prize_amount=amount, quantity=qty)
                    for lv, amount, qty in levels
                ],
            )
        )
        pool = await service.create_prize_pool(
            CreatePrizePoolRequest(lottery_type_id=lottery_type.id, total_tickets=total_tickets)
        )
        ids = (lottery_type.id, pool.id)
        await db.commit()
        return ids

    return _create


@pytest.fixture
def pattern_rules() -> dict[str, Any]:
    return {
        "area_count": 9,
        "patterns": [
            {"id": "cherry", "name": "Cherry", "image_url": "/img/cherry.png"},
            {"id": "bell", "name": "Bell", "image_url": "/img/bell.png"},
            {"id": "seven", "name": "Seven", "image_url": "/img/seven.png", "prize_points": 0},
        ],
        "special_patterns": [
            {"id": "diamond", "name": "Diamond", "image_url": "/img/diamond.png"},
        ],
        "default_points": [1, 2, 5],
    }
