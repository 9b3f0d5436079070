"""Bonus-Draw Offer Scheduler — rewarded-ad offers of extra draws between rounds."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, asdict
from typing import Optional

from config.bingo_schema import BonusRules

logger = logging.getLogger("bingo47.bonus")


@dataclass
class BonusOfferState:
    pending_offer_size: Optional[int] = None
    rounds_until_offer_expires: int = 0
    cooldown_rounds_remaining: int = 0


class BonusOfferScheduler:
    """Three-state countdown: offer live → cooldown → none → (reward ready) offer live."""

    def __init__(self, rules: Optional[BonusRules] = None, rng: Optional[random.Random] = None):
        self.rules = rules or BonusRules()
        self.rng = rng or random.Random()
        self.state = BonusOfferState()

    @property
    def offer(self) -> Optional[int]:
        return self.state.pending_offer_size

    def on_round_completed(self, reward_available: bool) -> Optional[int]:
        """Advance the countdown by one round. Returns the live offer, if any."""
        s = self.state
        if s.rounds_until_offer_expires > 0:
            s.rounds_until_offer_expires -= 1
            if s.rounds_until_offer_expires == 0:
                s.pending_offer_size = None
                s.cooldown_rounds_remaining = self.rng.randint(*self.rules.cooldown_range)
                logger.debug(f"Bonus offer expired; cooldown {s.cooldown_rounds_remaining}")
        elif s.cooldown_rounds_remaining > 0:
            s.cooldown_rounds_remaining -= 1
        elif reward_available and s.pending_offer_size is None:
            s.pending_offer_size = self.rng.choice(self.rules.offer_sizes)
            s.rounds_until_offer_expires = self.rules.offer_rounds
            logger.info(f"Bonus offer: {s.pending_offer_size} extra draws")
        return s.pending_offer_size

    def accept(self) -> Optional[int]:
        """Take the live offer. Returns its size, or None if nothing was on offer."""
        size = self.state.pending_offer_size
        if size is None:
            return None
        # The expiry countdown keeps running so the cooldown still follows
        self.state.pending_offer_size = None
        return size

    def is_offer_visible(self, reward_available: bool) -> bool:
        return self.state.pending_offer_size is not None and reward_available

    def snapshot(self) -> dict:
        return asdict(self.state)
