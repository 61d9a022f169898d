"""Prize determination - decides a ticket's outcome before it is sold.

Standard draw:
    The pool has ``remaining_tickets = total - sold`` slots left. Each prize
    level occupies ``remaining`` consecutive slots (ascending ``level``); the
    rest are non-winning. One uniform draw over all slots picks the outcome,
    so over the life of a pool every level pays out exactly ``quantity``
    times.

Pattern draw:
    The standard draw decides win/lose and the level. A grid is then laid
    out on top: random points and symbols in every cell, plus one winning
    cell (regular or, 20% of the time, special) for winning tickets only.

All functions here are pure apart from the random source, which can be
injected for tests.
"""

import random
import secrets
from collections.abc import Sequence

from scratch_lottery.core.exceptions import (
    InvalidAreaIndexError,
    PrizeInventoryError,
    SoldOutError,
)
from scratch_lottery.models.lottery import PrizeLevel
from scratch_lottery.schemas.rules import PatternRules
from scratch_lottery.schemas.ticket import (
    AreaRevealResult,
    PatternArea,
    PatternContent,
    TicketContent,
)

SPECIAL_CHANCE_PERCENT = 20

_system_random = secrets.SystemRandom()


def draw_prize_level(
    remaining_tickets: int,
    levels: Sequence[PrizeLevel],
    rng: random.Random | None = None,
) -> PrizeLevel | None:
    """Draw one outcome from the remaining inventory.

    Args:
        remaining_tickets: Unsold tickets in the pool
        levels: Prize levels of the lottery type with current ``remaining``
        rng: Random source, defaults to the OS CSPRNG

    Returns:
        The winning PrizeLevel, or None for a non-winning ticket

    Raises:
        SoldOutError: No tickets left
        PrizeInventoryError: Levels hold more prizes than tickets left
    """
    if remaining_tickets <= 0:
        raise SoldOutError("prize pool sold out")

    ordered = sorted(levels, key=lambda lv: lv.level)
    total_remaining = sum(max(lv.remaining, 0) for lv in ordered)
    if total_remaining > remaining_tickets:
        raise PrizeInventoryError(
            "prize levels exceed remaining tickets",
            {"total_remaining": total_remaining, "remaining_tickets": remaining_tickets},
        )

    slot = (rng or _system_random).randrange(remaining_tickets)

    cumulative = 0
    for level in ordered:
        if level.remaining <= 0:
            continue
        cumulative += level.remaining
        if slot < cumulative:
            return level
    return None


def build_standard_content(level: PrizeLevel | None) -> TicketContent:
    if level is None:
        return TicketContent()
    return TicketContent(prize_level=level.level, prize_amount=level.prize_amount)


def build_pattern_content(
    rules: PatternRules,
    prize_level: int,
    prize_amount: int,
    rng: random.Random | None = None,
) -> TicketContent:
    """Lay out a pattern grid over an already drawn outcome.

    Args:
        rules: Validated pattern config
        prize_level: Drawn level, 0 for a non-win
        prize_amount: Prize of the drawn level

    Returns:
        Ticket content whose ``prize_amount`` is what the ticket pays:
        the grid sum for a special cell, the symbol's prize_points for a
        regular winning cell (the level prize when the symbol has none),
        0 for a non-win.
    """
    rng = rng or _system_random

    areas = []
    total_points = 0
    for i in range(rules.area_count):
        points = rng.choice(rules.default_points)
        total_points += points
        areas.append(PatternArea(index=i, pattern_id=rng.choice(rules.patterns).id, points=points))

    pattern = PatternContent(areas=areas, total_points=total_points, prize_amount=prize_amount)

    if prize_level > 0 and prize_amount > 0:
        use_special = bool(rules.special_patterns) and rng.randrange(100) < SPECIAL_CHANCE_PERCENT
        cell = pattern.areas[rng.randrange(rules.area_count)]

        if use_special:
            special = rng.choice(rules.special_patterns)
            cell.pattern_id = special.id
            cell.is_special = True
            pattern.special_pattern_id = special.id
            pattern.prize_amount = total_points
        else:
            winner = rng.choice(rules.patterns)
            cell.pattern_id = winner.id
            cell.is_win = True
            pattern.win_pattern_id = winner.id
            if winner.prize_points > 0:
                pattern.prize_amount = winner.prize_points
    else:
        pattern.prize_amount = 0

    return TicketContent(
        prize_level=prize_level,
        prize_amount=pattern.prize_amount,
        pattern=pattern,
    )


def judge_area(content: TicketContent, area_index: int, rules: PatternRules) -> AreaRevealResult:
    """Judge what a single scratched cell shows and pays.

    A special cell pays the grid sum, the winning cell pays the ticket's
    prize, every other cell pays nothing regardless of its printed points.
    """
    if content.pattern is None:
        raise InvalidAreaIndexError("ticket has no pattern grid")
    areas = content.pattern.areas
    if not 0 <= area_index < len(areas):
        raise InvalidAreaIndexError(
            f"invalid area index: {area_index}",
            {"area_index": area_index, "area_count": len(areas)},
        )

    area = areas[area_index]
    info, _ = rules.find_pattern(area.pattern_id)

    if area.is_special:
        prize = content.pattern.total_points
    elif area.is_win:
        prize = content.pattern.prize_amount
    else:
        prize = 0

    return AreaRevealResult(
        area_index=area_index,
        pattern_id=area.pattern_id,
        pattern_name=info.name if info else "",
        pattern_image_url=info.image_url if info else "",
        points=area.points,
        is_win=area.is_win,
        is_special=area.is_special,
        prize_awarded=prize,
    )
