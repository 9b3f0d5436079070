"""
BINGO47 — Spaces, Cards & Card Generator

A card's layout is fixed when it is generated; only its marks change, and
marks are never written to disk. Saved layouts round-trip through JSON so
a player keeps the same card (and favorites) across launches.
"""

from __future__ import annotations

import json
import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import Optional

from config.bingo_schema import CardLayout, GameVariant

logger = logging.getLogger("bingo47.cards")

FREE_SPACE_ID = "FREE"


class CardFormatError(ValueError):
    """Saved card data is structurally invalid."""


@dataclass(frozen=True)
class Space:
    """One callable cell. Equality and hashing use the id only."""
    id: str
    is_free_space: bool = field(default=False, compare=False)
    label: str = field(default="", compare=False)

    def __post_init__(self):
        if not self.label:
            object.__setattr__(self, "label", self.id)

    def to_dict(self) -> dict:
        return {"id": self.id, "is_free_space": self.is_free_space, "label": self.label}

    @classmethod
    def from_dict(cls, data: dict) -> "Space":
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise CardFormatError(f"Bad space entry: {data!r}")
        return cls(
            id=data["id"],
            is_free_space=bool(data.get("is_free_space", data.get("isFreeSpace", False))),
            label=str(data.get("label") or data["id"]),
        )


FREE_SPACE = Space(FREE_SPACE_ID, is_free_space=True, label="FREE")


@dataclass
class Card:
    spaces: tuple
    rows: int = 5
    columns: int = 5
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    marked_spaces: set = field(default_factory=set)

    def __post_init__(self):
        self.spaces = tuple(self.spaces)
        if len(self.spaces) != self.rows * self.columns:
            raise CardFormatError(
                f"Card {self.id} has {len(self.spaces)} spaces, expected {self.rows * self.columns}"
            )
        self._index = frozenset(self.spaces)
        if len(self._index) != len(self.spaces):
            raise CardFormatError(f"Card {self.id} repeats a space")

    def contains(self, space: Space) -> bool:
        return space in self._index

    def space_by_id(self, space_id: str) -> Optional[Space]:
        for s in self.spaces:
            if s.id == space_id:
                return s
        return None

    def mark(self, space: Space) -> bool:
        """Add a mark. Returns False when the space is not on this card or already marked."""
        if space not in self._index or space in self.marked_spaces:
            return False
        self.marked_spaces.add(space)
        return True

    def clear_marks(self):
        self.marked_spaces.clear()

    @property
    def is_blackout(self) -> bool:
        return all(s.is_free_space or s in self.marked_spaces for s in self.spaces)

    # ── Serialization (marks intentionally excluded) ──

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "rows": self.rows,
            "columns": self.columns,
            "spaces": [s.to_dict() for s in self.spaces],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Card":
        if not isinstance(data, dict):
            raise CardFormatError(f"Bad card entry: {data!r}")
        try:
            card_id = uuid.UUID(str(data["id"]))
            rows = int(data["rows"])
            columns = int(data["columns"])
            raw_spaces = data["spaces"]
        except (KeyError, TypeError, ValueError) as e:
            raise CardFormatError(f"Bad card entry: {e}") from e
        if not isinstance(raw_spaces, list):
            raise CardFormatError("Card spaces must be a list")
        return cls(
            id=card_id,
            rows=rows,
            columns=columns,
            spaces=tuple(Space.from_dict(s) for s in raw_spaces),
        )


# ═══════════════════════════════════════════════════════════════
# Card Generator
# ═══════════════════════════════════════════════════════════════

def generate_card(variant: GameVariant, rng: Optional[random.Random] = None) -> Card:
    """Produce a fresh card layout for the variant."""
    rng = rng or random.Random()
    if variant.layout == CardLayout.BONUS:
        spaces = _bonus_layout(variant, rng)
    else:
        spaces = _lines_layout(variant, rng)
    return Card(spaces=tuple(spaces), rows=variant.rows, columns=variant.columns)


def generate_cards(variant: GameVariant, count: int = 1,
                   rng: Optional[random.Random] = None) -> list[Card]:
    return [generate_card(variant, rng) for _ in range(max(1, count))]


def _bonus_layout(variant: GameVariant, rng: random.Random) -> list[Space]:
    cells = variant.rows * variant.columns
    center = variant.center_index
    pool = [label for label in variant.labels if label != variant.bonus_label]
    rng.shuffle(pool)
    picks = iter(pool[:cells - 1])
    return [
        Space(variant.bonus_label) if i == center else Space(next(picks))
        for i in range(cells)
    ]


def _lines_layout(variant: GameVariant, rng: random.Random) -> list[Space]:
    """Partition labels into column groups (B-I-N-G-O style) and sample each."""
    rows, columns = variant.rows, variant.columns
    per_column = len(variant.labels) // columns
    center = variant.center_index
    grid: list[Optional[Space]] = [None] * (rows * columns)

    for c in range(columns):
        group = variant.labels[c * per_column:(c + 1) * per_column]
        picks = rng.sample(group, rows)
        for r in range(rows):
            grid[r * columns + c] = Space(picks[r])

    if variant.free_space:
        grid[center] = FREE_SPACE
    return grid


# ═══════════════════════════════════════════════════════════════
# JSON Codec
# ═══════════════════════════════════════════════════════════════

def encode_cards(cards: list[Card]) -> str:
    return json.dumps([c.to_dict() for c in cards])


def decode_cards(text) -> Optional[list[Card]]:
    """Decode saved cards. Returns None (and logs) when the data is missing or corrupt."""
    if not text:
        return None
    try:
        data = json.loads(text) if isinstance(text, str) else text
        if not isinstance(data, list):
            raise CardFormatError("Saved cards must be a list")
        cards = [Card.from_dict(d) for d in data]
    except (ValueError, TypeError) as e:
        logger.warning(f"Discarding unreadable saved cards: {e}")
        return None
    return cards or None
