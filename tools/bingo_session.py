"""
BINGO47 — Game Session

The one object a front end holds. Wires a BingoEngine to its database,
jackpot ledger and service providers, restores the saved game on start,
and persists every value that must outlive the process as it changes:

  credits, bet multiplier      → after every change
  cards, favorites             → when the player picks or saves a card
  games played, bingos         → on round finalize
  user settings                → key by key on update

Usage:
    session = BingoSession(GameDatabase(":memory:"), scheduler=ManualScheduler())
    session.begin_round()
    session.scheduler.advance(2.0)
    state = session.snapshot()
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from pydantic import ValidationError

from config.bingo_schema import GameVariant, UserSettings, game_mode_preset, resolve_color
from config.database import GameDatabase
from config.settings import DEFAULT_VARIANT, GameSettingsKeys, StorageKeys
from sim_engine.bingo import column_letter, get_variant
from sim_engine.bingo.cards import Card, decode_cards, encode_cards, generate_cards
from sim_engine.bingo.clock import Scheduler, ThreadingScheduler
from sim_engine.bingo.engine import BingoEngine, GameEvent, MarkResult
from sim_engine.bingo.jackpot import JackpotLedger
from tools.bingo_providers import (
    AdProvider, Announcer, CreditProduct, LeaderboardProvider,
    PurchaseError, PurchaseProvider, credits_for_product,
)

logger = logging.getLogger("bingo47.session")


class BingoSession:
    """Engine + persistence + providers for one player."""

    def __init__(
        self,
        db: Optional[GameDatabase] = None,
        variant: Optional[GameVariant] = None,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None,
        purchases: Optional[PurchaseProvider] = None,
        leaderboard: Optional[LeaderboardProvider] = None,
        ads: Optional[AdProvider] = None,
        announcer: Optional[Announcer] = None,
    ):
        self.db = db or GameDatabase()
        self.variant = variant or get_variant(DEFAULT_VARIANT)
        self.scheduler = scheduler or ThreadingScheduler()
        self.rng = rng or random.Random()
        self.purchases = purchases or PurchaseProvider()
        self.leaderboard = leaderboard or LeaderboardProvider()
        self.ads = ads or AdProvider()
        self.announcer = announcer or Announcer()

        self.settings = self._load_settings()
        self.ledger = JackpotLedger(self.db, self.variant.jackpot)
        self.products: list[CreditProduct] = []
        self.is_processing_purchase = False
        self.active_colors = self._pick_colors()

        self.engine = BingoEngine(
            self.variant,
            self.ledger,
            self.scheduler,
            cards=self._load_or_generate_cards(),
            credits=self._load_int(StorageKeys.CREDITS, self.variant.starting_credits),
            bet_multiplier=self._load_int(StorageKeys.BET_MULTIPLIER, self.variant.bet_multipliers[0]),
            settings=self.settings,
            rng=self.rng,
            reward_available=self._reward_available,
        )
        self.engine.games_played = self._load_int(StorageKeys.GAMES_PLAYED, 0)
        self.engine.total_bingos = self._load_int(StorageKeys.BINGOS, 0)
        self.engine.subscribe(self._on_event)
        logger.info(
            f"Session ready: variant={self.variant.name} credits={self.engine.credits} "
            f"bet=x{self.engine.bet_multiplier}"
        )

    # ═══════════════════════════════════════════════════════════
    # Load / save
    # ═══════════════════════════════════════════════════════════

    def _load_settings(self) -> UserSettings:
        values = {}
        for field, key in GameSettingsKeys.FIELD_MAP.items():
            if not self.db.has(key):
                continue
            raw = self.db.get(key)
            try:
                UserSettings(**{field: raw})
            except ValidationError:
                logger.warning(f"Ignoring saved setting {key}={raw!r}")
                continue
            values[field] = raw
        return UserSettings(**values)

    def _load_int(self, key: str, default: int) -> int:
        raw = self.db.get(key, default)
        try:
            if isinstance(raw, bool):
                raise TypeError("bool is not a count")
            return int(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring saved {key}={raw!r}; using {default}")
            return default

    def _save_settings(self):
        for field, value in self.settings.model_dump(mode="json").items():
            self.db.set(GameSettingsKeys.FIELD_MAP[field], value)

    def _fits_variant(self, card: Card) -> bool:
        return card.rows == self.variant.rows and card.columns == self.variant.columns

    def _load_or_generate_cards(self) -> list[Card]:
        cards = decode_cards(self.db.get(StorageKeys.SAVED_CARDS))
        if cards and all(self._fits_variant(c) for c in cards):
            return cards
        if cards:
            logger.warning("Saved cards don't match this variant; dealing a new card")
        cards = generate_cards(self.variant, 1, self.rng)
        self.db.set(StorageKeys.SAVED_CARDS, encode_cards(cards))
        return cards

    def _reward_available(self) -> bool:
        try:
            return bool(self.ads.is_reward_available())
        except Exception as e:
            logger.warning(f"Ad provider check failed: {e}")
            return False

    def _pick_colors(self) -> dict:
        space = resolve_color(self.settings.bingo_space_color, self.rng)
        dauber = resolve_color(self.settings.dauber_color, self.rng, avoid=space)
        return {"bingo_space": space, "dauber": dauber}

    # ── Engine events ──

    def _on_event(self, event: GameEvent):
        kind, data = event.kind, event.data
        if kind == "credits_changed":
            self.db.set(StorageKeys.CREDITS, data["credits"])
        elif kind == "bet_changed":
            self.db.set(StorageKeys.BET_MULTIPLIER, data["bet_multiplier"])
        elif kind == "round_started":
            self.active_colors = self._pick_colors()
        elif kind == "space_called":
            if self.settings.speak_spaces:
                self._announce(data["label"])
        elif kind == "jackpot_won":
            logger.info(f"JACKPOT x{data['bet_multiplier']}: {data['amount']:,} credits")
        elif kind == "round_finalized":
            self.db.set(StorageKeys.GAMES_PLAYED, self.engine.games_played)
            self.db.set(StorageKeys.BINGOS, self.engine.total_bingos)
            self._submit_score(self.engine.credits)

    def _announce(self, label: str):
        text = f"{column_letter(label)} {label}".strip()
        try:
            self.announcer.say(text)
        except Exception as e:
            logger.warning(f"Announcer failed: {e}")

    def _submit_score(self, score: int):
        try:
            self.leaderboard.submit_score(score)
        except Exception as e:
            logger.warning(f"Leaderboard submit failed: {e}")

    # ═══════════════════════════════════════════════════════════
    # Round intents
    # ═══════════════════════════════════════════════════════════

    def begin_round(self) -> bool:
        return self.engine.begin_round()

    def mark_space(self, space_id: str, card_id) -> MarkResult:
        return self.engine.mark_space(space_id, card_id)

    def toggle_bet_multiplier(self) -> bool:
        return self.engine.toggle_bet_multiplier()

    def lower_bet_to_max_possible(self) -> bool:
        return self.engine.lower_bet_to_max_possible()

    def reset(self):
        self.engine.reset()

    def on_background(self):
        self.engine.suspend()

    def on_foreground(self):
        self.engine.resume()

    # ═══════════════════════════════════════════════════════════
    # Cards & favorites
    # ═══════════════════════════════════════════════════════════

    @property
    def cards(self) -> list[Card]:
        return self.engine.cards

    def set_cards(self, cards: list[Card]) -> bool:
        if not cards or not all(self._fits_variant(c) for c in cards):
            return False
        if not self.engine.set_cards(cards):
            return False
        self.db.set(StorageKeys.SAVED_CARDS, encode_cards(cards))
        return True

    def generate_new_card(self, count: int = 1) -> bool:
        """Deal fresh card(s). Refused while a round is in play."""
        if self.engine.round.is_active:
            return False
        return self.set_cards(generate_cards(self.variant, count, self.rng))

    @property
    def favorites(self) -> list[Card]:
        return decode_cards(self.db.get(StorageKeys.FAVORITE_CARDS)) or []

    def favorite_card(self, card: Card) -> bool:
        """Save a card layout. False if a card with that id is already saved."""
        current = self.favorites
        if any(c.id == card.id for c in current):
            return False
        current.append(card)
        self.db.set(StorageKeys.FAVORITE_CARDS, encode_cards(current))
        return True

    def remove_favorite(self, card_id) -> bool:
        current = self.favorites
        kept = [c for c in current if str(c.id) != str(card_id)]
        if len(kept) == len(current):
            return False
        self.db.set(StorageKeys.FAVORITE_CARDS, encode_cards(kept))
        return True

    # ═══════════════════════════════════════════════════════════
    # Credits & store
    # ═══════════════════════════════════════════════════════════

    def reset_credits(self):
        """Free refill when the player is out of credits."""
        self.engine.set_credits(self.variant.free_refill_amount)

    def add_credits(self, amount: int):
        self.engine.add_credits(amount)

    def fetch_products(self) -> list[CreditProduct]:
        try:
            self.products = list(self.purchases.fetch_products())
        except PurchaseError as e:
            logger.warning(f"Error fetching products: {e}")
        return self.products

    def purchase_credits(self, product_id: str) -> bool:
        """Buy a credit pack. False when cancelled, pending or failed."""
        self.is_processing_purchase = True
        try:
            completed = self.purchases.purchase(product_id)
        except PurchaseError as e:
            logger.warning(f"Purchase failed: {e}")
            return False
        finally:
            self.is_processing_purchase = False
        if not completed:
            logger.info(f"Purchase of {product_id} was cancelled or pending")
            return False
        amount = credits_for_product(product_id)
        if amount == 0:
            logger.warning(f"Unknown product ID: {product_id}")
            return False
        self.engine.add_credits(amount)
        return True

    # ═══════════════════════════════════════════════════════════
    # Bonus draws
    # ═══════════════════════════════════════════════════════════

    @property
    def bonus_offer_visible(self) -> bool:
        return self.engine.bonus.is_offer_visible(self._reward_available())

    def accept_bonus_offer(self) -> int:
        """Watch an ad for extra draws. Returns the draws granted (0 if no offer).

        The reward is granted even if the ad can't be shown.
        """
        size = self.engine.accept_bonus_offer()
        if size is None:
            logger.info("No bonus offer available")
            return 0

        granted = []

        def _grant():
            if not granted:
                granted.append(size)
                self.engine.grant_bonus_draws(size)

        if self._reward_available():
            try:
                self.ads.present_reward(_grant)
            except Exception as e:
                logger.warning(f"Rewarded ad failed: {e}")
        else:
            logger.info("Ad not ready; rewarding anyway")
        # Best effort: a failed or unfinished ad still pays out
        _grant()
        return size

    # ═══════════════════════════════════════════════════════════
    # Settings
    # ═══════════════════════════════════════════════════════════

    def update_settings(self, **changes) -> UserSettings:
        """Apply and persist setting changes. Raises ValidationError on bad values."""
        merged = {**self.settings.model_dump(), **changes}
        self.settings = UserSettings(**merged)
        self.engine.settings = self.settings
        self._save_settings()
        return self.settings

    def select_game_mode(self, classic: bool) -> UserSettings:
        return self.update_settings(**game_mode_preset(classic))

    @property
    def show_game_mode_selection(self) -> bool:
        return not self.settings.has_seen_game_mode_selection

    # ═══════════════════════════════════════════════════════════
    # State
    # ═══════════════════════════════════════════════════════════

    def snapshot(self) -> dict:
        state = self.engine.snapshot()
        state.update({
            "settings": self.settings.model_dump(mode="json"),
            "colors": dict(self.active_colors),
            "favorites": [c.to_dict() for c in self.favorites],
            "products": [p.to_dict() for p in self.products],
            "is_processing_purchase": self.is_processing_purchase,
            "bonus_offer_visible": self.bonus_offer_visible,
            "show_game_mode_selection": self.show_game_mode_selection,
            "jackpot_payout": self.ledger.potential_payout(self.engine.bet_multiplier),
        })
        return state

    def close(self):
        self.engine.reset()
        self.db.close()
