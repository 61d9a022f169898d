"""Rules config schemas - one typed structure per game type.

``LotteryType.rules_config`` is stored as JSON. Which schema applies is
decided by ``LotteryType.game_type``:

- number_match / symbol_match / amount_sum / multiplier -> StandardRules
- pattern -> PatternRules

``parse_rules_config`` is the only way to read it. Malformed input raises
``InvalidRulesConfigError``; there is no silent fallback.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from scratch_lottery.core.exceptions import InvalidRulesConfigError
from scratch_lottery.models.lottery import GameType

DEFAULT_POINTS: list[int] = [1, 2, 3, 5, 10, 20, 50, 100]

MAX_AREA_COUNT = 100


class StandardRules(BaseModel):
    """Rules for the classic game types.

    Only presentation hints live here; the outcome itself comes from prize
    levels. Unknown keys are kept for the front end.
    """

    model_config = ConfigDict(extra="allow")

    win_symbols: list[str] = Field(default_factory=list)


class PatternInfo(BaseModel):
    """One symbol of a pattern lottery."""

    id: str
    name: str = ""
    image_url: str = ""
    prize_points: int = Field(default=0, ge=0)


class PatternRules(BaseModel):
    """Grid layout and symbol catalog of a pattern lottery.

    Attributes:
        area_count: Number of scratch cells (1..100)
        patterns: Regular symbols; a winning cell pays its prize_points
        special_patterns: Symbols paying the sum of all cell points
        default_points: Palette of per-cell point values
    """

    area_count: int = Field(ge=1, le=MAX_AREA_COUNT)
    patterns: list[PatternInfo] = Field(min_length=1)
    special_patterns: list[PatternInfo] = Field(default_factory=list)
    default_points: list[int] = Field(default_factory=lambda: list(DEFAULT_POINTS))

    @field_validator("default_points")
    @classmethod
    def fill_default_points(cls, v: list[int]) -> list[int]:
        if not v:
            return list(DEFAULT_POINTS)
        if any(p <= 0 for p in v):
            raise ValueError("default_points must be positive")
        return v

    @model_validator(mode="after")
    def check_pattern_ids(self) -> "PatternRules":
        seen: set[str] = set()
        for p in self.patterns:
            if not p.id:
                raise ValueError("pattern ID cannot be empty")
            if p.id in seen:
                raise ValueError(f"duplicate pattern ID: {p.id}")
            seen.add(p.id)
        for p in self.special_patterns:
            if not p.id:
                raise ValueError("special pattern ID cannot be empty")
            if p.id in seen:
                raise ValueError(f"special pattern ID conflicts with regular pattern: {p.id}")
        return self

    def find_pattern(self, pattern_id: str) -> tuple[PatternInfo | None, bool]:
        """Look up a symbol by id. Returns (info, is_special)."""
        for p in self.special_patterns:
            if p.id == pattern_id:
                return p, True
        for p in self.patterns:
            if p.id == pattern_id:
                return p, False
        return None, False


RulesConfig = StandardRules | PatternRules


def parse_rules_config(game_type: GameType, raw: dict[str, Any] | None) -> RulesConfig:
    """Parse stored rules_config for the given game type.

    Raises:
        InvalidRulesConfigError: Missing pattern config or schema violation
    """
    if game_type == GameType.PATTERN:
        if not raw:
            raise InvalidRulesConfigError("pattern lottery requires rules_config")
        model: type[BaseModel] = PatternRules
    else:
        model = StandardRules

    try:
        return model.model_validate(raw or {})  # type: ignore[return-value]
    except PydanticValidationError as e:
        raise InvalidRulesConfigError(
            f"invalid rules_config for {game_type.value}",
            {"errors": [err["msg"] for err in e.errors()]},
        ) from e
