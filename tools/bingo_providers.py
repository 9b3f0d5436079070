"""
BINGO47 — External Service Providers

Everything the game talks to outside its own process: the store, the
leaderboard, rewarded ads and the voice that calls numbers. Each concern
has a base class that is also the offline implementation, so a session
runs with no services configured and nothing here is ever fatal to a round.

Providers:
  - PurchaseProvider:    fetch_products(), purchase(product_id) → bool
  - LeaderboardProvider: submit_score(value), fire-and-forget
  - AdProvider:          is_reward_available(), present_reward(on_complete)
  - Announcer:           say(text)

Tests and the web app swap in the Local* implementations, which complete
purchases and rewards immediately and remember what they were asked to do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger("bingo47.providers")

LEADERBOARD_ID = "com.gudmilk.bingo47.leaderboards.credits"


class PurchaseError(Exception):
    """Store could not list or complete a purchase."""


@dataclass(frozen=True)
class CreditProduct:
    product_id: str
    credits: int
    display_price: str = ""

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "credits": self.credits,
                "display_price": self.display_price}


CREDIT_PRODUCTS = {
    "com.gudmilk.bingotap.credits.tier1": CreditProduct(
        "com.gudmilk.bingotap.credits.tier1", 10_000, "$0.99"),
    "com.gudmilk.bingotap.credits.tier2": CreditProduct(
        "com.gudmilk.bingotap.credits.tier2", 100_000, "$4.99"),
    "com.gudmilk.bingotap.credits.tier3": CreditProduct(
        "com.gudmilk.bingotap.credits.tier3", 1_000_000, "$19.99"),
}


def credits_for_product(product_id: str) -> int:
    product = CREDIT_PRODUCTS.get(product_id)
    return product.credits if product else 0


# ═══════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════

class PurchaseProvider:
    """No store configured: nothing to list, every purchase fails."""

    def fetch_products(self) -> list[CreditProduct]:
        raise PurchaseError("Store not configured")

    def purchase(self, product_id: str) -> bool:
        raise PurchaseError(f"Store not configured; cannot buy {product_id}")


class LocalPurchaseProvider(PurchaseProvider):
    """Completes every purchase of a known product. Used by tests and demo servers."""

    def __init__(self, products: Optional[dict] = None, approve: bool = True):
        self.products = dict(products or CREDIT_PRODUCTS)
        self.approve = approve
        self.purchased: list[str] = []

    def fetch_products(self) -> list[CreditProduct]:
        return sorted(self.products.values(), key=lambda p: p.credits)

    def purchase(self, product_id: str) -> bool:
        if product_id not in self.products:
            raise PurchaseError(f"Unknown product: {product_id}")
        if not self.approve:
            logger.info(f"Purchase of {product_id} cancelled")
            return False
        self.purchased.append(product_id)
        logger.info(f"Purchase of {product_id} completed")
        return True


# ═══════════════════════════════════════════════════════════════
# Leaderboard
# ═══════════════════════════════════════════════════════════════

class LeaderboardProvider:
    def submit_score(self, value: int):
        logger.debug(f"Leaderboard not configured; score {value} dropped")


class LocalLeaderboard(LeaderboardProvider):
    def __init__(self):
        self.scores: list[int] = []

    def submit_score(self, value: int):
        self.scores.append(value)
        logger.debug(f"Score {value} submitted to {LEADERBOARD_ID}")


# ═══════════════════════════════════════════════════════════════
# Rewarded ads
# ═══════════════════════════════════════════════════════════════

class AdProvider:
    """No ad network: a reward is never ready."""

    def is_reward_available(self) -> bool:
        return False

    def present_reward(self, on_complete: Callable[[], None]):
        logger.debug("Ad network not configured; completing reward immediately")
        on_complete()


class LocalAdProvider(AdProvider):
    """Always has a reward ready and 'shows' it instantly."""

    def __init__(self, available: bool = True):
        self.available = available
        self.presented = 0

    def is_reward_available(self) -> bool:
        return self.available

    def present_reward(self, on_complete: Callable[[], None]):
        self.presented += 1
        on_complete()


# ═══════════════════════════════════════════════════════════════
# Announcer
# ═══════════════════════════════════════════════════════════════

class Announcer:
    def say(self, text: str):
        logger.debug(f"Announce: {text}")


class RecordingAnnouncer(Announcer):
    def __init__(self):
        self.spoken: list[str] = []

    def say(self, text: str):
        self.spoken.append(text)
