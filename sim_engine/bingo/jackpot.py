"""
BINGO47 — Progressive Jackpot Ledger

One persistent counter per bet multiplier:
  - credit(m):  counter[m] += m        (each bonus-space mark at that bet)
  - claim(m):   pays counter[m] × 47, resets counter[m] to m × 20 (blackout)

An unseen multiplier reads as its baseline, never zero, so the jackpot
display is never empty. Counters for different multipliers never mix.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from config.bingo_schema import JackpotRules
from config.settings import StorageKeys

logger = logging.getLogger("bingo47.jackpot")


@dataclass(frozen=True)
class JackpotClaim:
    bet_multiplier: int
    count: int       # ledger count that was paid out
    amount: int      # credits won

    def to_dict(self) -> dict:
        return {"bet_multiplier": self.bet_multiplier, "count": self.count, "amount": self.amount}


class JackpotLedger:
    """Sole writer of persisted jackpot counts."""

    def __init__(self, db, rules: Optional[JackpotRules] = None):
        self.db = db
        self.rules = rules or JackpotRules()
        self._lock = threading.RLock()
        self.migrate_legacy()

    def baseline(self, bet_multiplier: int) -> int:
        return bet_multiplier * self.rules.baseline_factor

    def count(self, bet_multiplier: int) -> int:
        stored = self.db.jackpot_count(bet_multiplier)
        return self.baseline(bet_multiplier) if stored is None else stored

    def counts(self) -> dict[int, int]:
        return self.db.jackpot_counts()

    def potential_payout(self, bet_multiplier: int) -> int:
        return self.count(bet_multiplier) * self.rules.payout_multiplier

    def credit(self, bet_multiplier: int) -> int:
        """Add the multiplier to its own counter. Returns the new count."""
        with self._lock:
            new_count = self.db.jackpot_add(
                bet_multiplier, bet_multiplier, self.baseline(bet_multiplier)
            )
        logger.debug(f"Jackpot x{bet_multiplier} credited → {new_count}")
        return new_count

    def claim(self, bet_multiplier: int) -> JackpotClaim:
        """Pay out the counter and reset it to baseline."""
        baseline = self.baseline(bet_multiplier)
        with self._lock:
            paid_count = self.db.jackpot_swap(bet_multiplier, baseline, default=baseline)
        claim = JackpotClaim(
            bet_multiplier=bet_multiplier,
            count=paid_count,
            amount=paid_count * self.rules.payout_multiplier,
        )
        logger.info(f"Jackpot x{bet_multiplier} claimed: {claim.count} → {claim.amount:,} credits")
        return claim

    # ── Legacy import ──

    def migrate_legacy(self) -> int:
        """Move a string-keyed {"multiplier": count} blob into the typed table.

        Entries with a non-integer key or count, a non-positive multiplier or
        a negative count are dropped. Returns the number of rows imported.
        """
        raw = self.db.get(StorageKeys.LEGACY_JACKPOT)
        if raw is None:
            return 0
        imported = 0
        if isinstance(raw, dict):
            for key, value in raw.items():
                try:
                    multiplier = int(key)
                except (TypeError, ValueError):
                    multiplier = 0
                valid_count = isinstance(value, int) and not isinstance(value, bool)
                if multiplier <= 0 or not valid_count or value < 0:
                    logger.warning(f"Skipping legacy jackpot entry {key!r}: {value!r}")
                    continue
                if self.db.jackpot_count(multiplier) is None:
                    self.db.jackpot_set(multiplier, value)
                    imported += 1
        else:
            logger.warning("Legacy jackpot storage is not a mapping; discarding")
        self.db.delete(StorageKeys.LEGACY_JACKPOT)
        logger.info(f"Migrated {imported} legacy jackpot entries")
        return imported
