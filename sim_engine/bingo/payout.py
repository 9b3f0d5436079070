"""
BINGO47 — Payout Engine

Bingo count → credits won, for a given bet. Three bands:
  1. PARTIAL (1–2 bingos): count × 50% of the bet
  2. FIXED (3–8 bingos):   2×, 3×, 5×, 10×, 20×, 47× the bet
  3. TAIL (9+ bingos):     bet × 2^(count-5), floored at the top fixed tier
                           so the table never pays less for more lines

Everything here is a pure function of (bingo_count, bet, rules); the
displayed payout table is memoized per (bet, pattern count, rules).
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from config.bingo_schema import GameVariant, PayoutRules

_DEFAULT_RULES = PayoutRules()


@dataclass(frozen=True)
class PayoutRow:
    bingo_count: int
    win_amount: int

    def to_dict(self) -> dict:
        return {"bingo_count": self.bingo_count, "win_amount": self.win_amount}


def calculate_payout(bingo_count: int, bet: int, rules: PayoutRules = None) -> int:
    rules = rules or _DEFAULT_RULES
    return _payout(bingo_count, bet, rules.partial_percent, rules.partial_max_bingos,
                   tuple(sorted(rules.fixed_multipliers.items())), rules.exponential_offset)


def _payout(bingo_count: int, bet: int, partial_percent: int, partial_max: int,
            fixed: tuple, offset: int) -> int:
    if bingo_count <= 0:
        return 0
    if bingo_count <= partial_max:
        return (bet * bingo_count * partial_percent) // 100
    tiers = dict(fixed)
    if bingo_count in tiers:
        return bet * tiers[bingo_count]
    below = [k for k in tiers if k < bingo_count]
    floor = bet * tiers[max(below)] if below else (bet * partial_max * partial_percent) // 100
    if tiers and bingo_count < max(tiers):
        return floor
    return max(bet * (1 << max(0, bingo_count - offset)), floor)


@lru_cache(maxsize=256)
def _table(bet: int, pattern_count: int, partial_percent: int, partial_max: int,
           fixed: tuple, offset: int) -> tuple:
    return tuple(
        PayoutRow(n, _payout(n, bet, partial_percent, partial_max, fixed, offset))
        for n in range(1, pattern_count + 1)
    )


def payout_table(bet_multiplier: int, variant: GameVariant) -> list[PayoutRow]:
    """Rows for 1..len(patterns) bingos at this bet multiplier."""
    rules = variant.payout
    return list(_table(
        variant.bet_for(bet_multiplier),
        len(variant.patterns),
        rules.partial_percent,
        rules.partial_max_bingos,
        tuple(sorted(rules.fixed_multipliers.items())),
        rules.exponential_offset,
    ))


def winnings_for(bingo_count: int, bet_multiplier: int, variant: GameVariant) -> int:
    return calculate_payout(bingo_count, variant.bet_for(bet_multiplier), variant.payout)
