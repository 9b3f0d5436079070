"""
BINGO47 — Game Variant & User Settings Schema

Every rule the round engine reads (card shape, label pool, patterns,
payout tiers, jackpot rule, bonus-draw odds) lives in one GameVariant
model, so the 3×3 bonus game and the 5×5 classic game are the same code
running on different configs.

Usage:
    from config.bingo_schema import GameVariant, UserSettings, GameSpeed
    variant = GameVariant(name="bonus", rows=3, columns=3, ...)
    json_str = variant.model_dump_json(indent=2)
"""

from __future__ import annotations
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator


# ═══════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════

class CardLayout(str, Enum):
    BONUS = "bonus"     # shuffled labels, bonus label forced into the center
    LINES = "lines"     # column-partitioned labels, optional free center


class GameSpeed(str, Enum):
    SLOW = "slow"
    NORMAL = "normal"
    FAST = "fast"
    LIGHTNING = "lightning"

    @property
    def interval(self) -> float:
        """Seconds between called spaces."""
        return _SPEED_INTERVALS[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value) -> "GameSpeed":
        """Accept a speed name or the raw interval older saves stored."""
        if isinstance(value, cls):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            for speed, interval in _SPEED_INTERVALS.items():
                if abs(interval - float(value)) < 1e-9:
                    return speed
            raise ValueError(f"Unknown game speed interval: {value}")
        return cls(str(value).lower())


_SPEED_INTERVALS = {
    GameSpeed.SLOW: 3.5,
    GameSpeed.NORMAL: 2.0,
    GameSpeed.FAST: 0.5,
    GameSpeed.LIGHTNING: 0.15,
}


# ═══════════════════════════════════════════════════════════════
# Rule Blocks
# ═══════════════════════════════════════════════════════════════

class PayoutRules(BaseModel):
    """Bingo count → win amount, in units of the full bet."""
    base_bet: int = Field(100, gt=0)                 # cost per game at multiplier 1
    partial_percent: int = 50                        # 1–2 bingos pay count × this % of bet
    partial_max_bingos: int = 2
    fixed_multipliers: dict[int, int] = Field(default_factory=lambda: {
        3: 2, 4: 3, 5: 5, 6: 10, 7: 20, 8: 47,
    })
    exponential_offset: int = 5                      # tail pays bet × 2^(count - offset)


class JackpotRules(BaseModel):
    payout_multiplier: int = Field(47, gt=0)         # claim pays count × this
    baseline_factor: int = Field(20, ge=0)           # reset/default count = multiplier × this


class BonusRules(BaseModel):
    """Rewarded-ad offers and free bonus draws between rounds."""
    offer_sizes: list[int] = Field(default_factory=lambda: [5, 5, 5, 6, 6, 7])
    offer_rounds: int = 3
    cooldown_range: tuple[int, int] = (5, 10)
    free_draw_chance: int = Field(75, ge=0, le=100)  # percent, only while no offer is live
    free_draw_sizes: list[int] = Field(default_factory=lambda: [1, 2, 2, 3, 3])


# ═══════════════════════════════════════════════════════════════
# Variant
# ═══════════════════════════════════════════════════════════════

class GameVariant(BaseModel):
    """Complete rule set for one flavour of the game."""
    name: str
    display_name: str = ""
    layout: CardLayout = CardLayout.BONUS
    rows: int = Field(3, ge=1)
    columns: int = Field(3, ge=1)
    labels: list[str]
    bonus_label: Optional[str] = None
    free_space: bool = False
    patterns: list[list[int]]
    default_draws: int = Field(15, ge=1)
    bet_multipliers: list[int] = Field(default_factory=lambda: [
        1, 2, 5, 10, 25, 100, 500, 1000, 5000,
        10_000, 25_000, 100_000, 1_000_000, 10_000_000,
    ])
    starting_credits: int = 500
    free_refill_amount: int = 10_000
    last_call_seconds: int = Field(10, ge=1)
    payout: PayoutRules = Field(default_factory=PayoutRules)
    jackpot: JackpotRules = Field(default_factory=JackpotRules)
    bonus: BonusRules = Field(default_factory=BonusRules)

    @field_validator("labels")
    @classmethod
    def _unique_labels(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("labels must be unique")
        return v

    @field_validator("bet_multipliers")
    @classmethod
    def _positive_multipliers(cls, v: list[int]) -> list[int]:
        if not v or any(m <= 0 for m in v):
            raise ValueError("bet_multipliers must be a non-empty list of positive ints")
        return v

    @model_validator(mode="after")
    def _check_shape(self) -> "GameVariant":
        cells = self.rows * self.columns
        for pattern in self.patterns:
            if not pattern or any(i < 0 or i >= cells for i in pattern):
                raise ValueError(f"pattern {pattern} out of range for {self.rows}x{self.columns}")
        if not self.patterns:
            raise ValueError("variant needs at least one pattern")

        if self.layout == CardLayout.BONUS:
            if not self.bonus_label or self.bonus_label not in self.labels:
                raise ValueError("bonus layout needs a bonus_label drawn from labels")
            if len(self.labels) - 1 < cells - 1:
                raise ValueError("not enough labels to fill a card")
        else:
            if len(self.labels) % self.columns:
                raise ValueError("lines layout needs labels divisible into columns")
            if len(self.labels) // self.columns < self.rows:
                raise ValueError("not enough labels per column to fill a card")
            if self.bonus_label is not None and self.bonus_label not in self.labels:
                raise ValueError("bonus_label must be one of labels")
        return self

    @property
    def center_index(self) -> int:
        return (self.rows * self.columns) // 2

    def bet_for(self, multiplier: int) -> int:
        return self.payout.base_bet * multiplier

    def jackpot_baseline(self, multiplier: int) -> int:
        return multiplier * self.jackpot.baseline_factor


# ═══════════════════════════════════════════════════════════════
# User Settings
# ═══════════════════════════════════════════════════════════════

RANDOM_COLOR = "random"
BINGO_COLORS = ["red", "orange", "yellow", "green", "blue", "purple", "pink", "brown", "black"]


def resolve_color(choice: str, rng, avoid: Optional[str] = None) -> str:
    """Concrete color for one round; "random" draws from the palette."""
    if choice != RANDOM_COLOR:
        return choice
    options = [c for c in BINGO_COLORS if c != avoid]
    return rng.choice(options)


class UserSettings(BaseModel):
    auto_mark: bool = False
    speak_spaces: bool = True
    game_speed: GameSpeed = GameSpeed.NORMAL
    vibration_enabled: bool = True
    graceful_bingos: bool = False
    has_seen_game_mode_selection: bool = False
    bingo_space_color: str = "yellow"
    dauber_color: str = "red"

    @field_validator("game_speed", mode="before")
    @classmethod
    def _parse_speed(cls, v):
        return GameSpeed.parse(v)

    @field_validator("bingo_space_color", "dauber_color")
    @classmethod
    def _known_color(cls, v: str) -> str:
        v = str(v).lower()
        if v != RANDOM_COLOR and v not in BINGO_COLORS:
            raise ValueError(f"Unknown color: {v}")
        return v

    @model_validator(mode="after")
    def _quiet_when_fast(self) -> "UserSettings":
        # Numbers are called faster than they can be spoken
        if self.game_speed in (GameSpeed.FAST, GameSpeed.LIGHTNING):
            self.speak_spaces = False
        return self


def game_mode_preset(classic: bool) -> dict:
    """Settings applied by the first-launch game mode chooser."""
    if classic:
        return {"auto_mark": False, "speak_spaces": True,
                "game_speed": GameSpeed.NORMAL, "has_seen_game_mode_selection": True}
    return {"auto_mark": True, "speak_spaces": False,
            "game_speed": GameSpeed.LIGHTNING, "has_seen_game_mode_selection": True}
