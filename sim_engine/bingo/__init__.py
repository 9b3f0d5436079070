"""
BINGO47 — Bingo Game Engine

Card generation, draw order, win detection, payouts, the progressive
jackpot ledger, bonus-draw offers and the round state machine that ties
them together. Each playable flavour is a GameVariant in VARIANTS.

Usage:
    from sim_engine.bingo import get_variant
    variant = get_variant("bonus")
    card = generate_card(variant)
"""

from config.bingo_schema import CardLayout, GameVariant
from sim_engine.bingo.patterns import line_patterns

BONUS_SPACE_ID = "47"

# Six labels from each B-I-N-G-O column; 47 sits in the center of every card
_BONUS_LABELS = [
    str(n)
    for start in (1, 16, 31, 46, 61)
    for n in range(start, start + 6)
]

BONUS = GameVariant(
    name="bonus",
    display_name="Bingo 47",
    layout=CardLayout.BONUS,
    rows=3,
    columns=3,
    labels=_BONUS_LABELS,
    bonus_label=BONUS_SPACE_ID,
    patterns=line_patterns(3, 3),
    default_draws=15,
)

CLASSIC = GameVariant(
    name="classic",
    display_name="Classic 75-Ball",
    layout=CardLayout.LINES,
    rows=5,
    columns=5,
    labels=[str(n) for n in range(1, 76)],
    free_space=True,
    patterns=line_patterns(5, 5),
    default_draws=40,
)

VARIANTS = {
    "bonus": BONUS,
    "classic": CLASSIC,
}

VARIANT_NAMES = list(VARIANTS.keys())


def get_variant(name: str) -> GameVariant:
    """Get the rule set for a variant name."""
    variant = VARIANTS.get(name.lower())
    if variant is None:
        raise ValueError(f"Unknown variant: {name}. Available: {VARIANT_NAMES}")
    return variant


def column_letter(label: str) -> str:
    """B-I-N-G-O column for a 1–75 label, or '' for anything else."""
    try:
        n = int(label)
    except (TypeError, ValueError):
        return ""
    if 1 <= n <= 75:
        return "BINGO"[(n - 1) // 15]
    return ""
