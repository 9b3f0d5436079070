"""Pattern Library — winning line definitions per card shape."""
from __future__ import annotations

from typing import Iterable


def row(r: int, columns: int) -> list[int]:
    return [r * columns + c for c in range(columns)]


def col(c: int, rows: int, columns: int) -> list[int]:
    return [r * columns + c for r in range(rows)]


def line_patterns(rows: int, columns: int) -> list[list[int]]:
    """Every row, every column, and both diagonals when the card is square.

    Order matches the payout display: rows top→bottom, columns left→right,
    then TL→BR and TR→BL diagonals.
    """
    patterns = [row(r, columns) for r in range(rows)]
    patterns += [col(c, rows, columns) for c in range(columns)]
    if rows == columns:
        patterns.append([i * columns + i for i in range(rows)])
        patterns.append([i * columns + (columns - 1 - i) for i in range(rows)])
    return patterns


# ═══════════════════════════════════════════════════════════════
# Win Detection
# ═══════════════════════════════════════════════════════════════

def is_satisfied(pattern: Iterable[int], card) -> bool:
    """Every cell marked, with free cells always counting."""
    return all(
        card.spaces[i].is_free_space or card.spaces[i] in card.marked_spaces
        for i in pattern
    )


def count_bingos(card, patterns: list[list[int]]) -> int:
    return sum(1 for p in patterns if is_satisfied(p, card))


def winning_spaces(card, patterns: list[list[int]]) -> set:
    """Union of the spaces of every satisfied pattern."""
    hits = set()
    for p in patterns:
        if is_satisfied(p, card):
            hits.update(card.spaces[i] for i in p)
    return hits


def is_part_of_bingo(space, card, patterns: list[list[int]]) -> bool:
    return space in winning_spaces(card, patterns)
