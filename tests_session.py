#!/usr/bin/env python3
"""
Tests for BingoSession (tools/bingo_session.py)

Run: python tests_session.py

Covers restore/persist of the saved game, card and favorite management,
the store, rewarded bonus draws, settings and the fire-and-forget
collaborators (announcer, leaderboard).
"""

import json
import random
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.bingo_schema import GameSpeed
from config.database import GameDatabase
from config.settings import GameSettingsKeys, StorageKeys
from sim_engine.bingo import BONUS, CLASSIC
from sim_engine.bingo.cards import decode_cards, encode_cards, generate_card
from sim_engine.bingo.clock import ManualScheduler
from tools.bingo_providers import (
    AdProvider, LocalAdProvider, LocalLeaderboard, LocalPurchaseProvider,
    PurchaseProvider, RecordingAnnouncer,
)
from tools.bingo_session import BingoSession

TIER1 = "com.gudmilk.bingotap.credits.tier1"
TIER2 = "com.gudmilk.bingotap.credits.tier2"


class _BrokenAds(LocalAdProvider):
    def present_reward(self, on_complete):
        raise RuntimeError("ad SDK crashed")


class _BrokenLeaderboard(LocalLeaderboard):
    def submit_score(self, value):
        raise ConnectionError("offline")


class SessionTestCase(unittest.TestCase):

    def setUp(self):
        self.db = GameDatabase(":memory:")

    def tearDown(self):
        self.db.close()

    def make_session(self, variant=BONUS, **kwargs):
        kwargs.setdefault("rng", random.Random(4))
        return BingoSession(self.db, variant, ManualScheduler(), **kwargs)

    def play_round(self, session):
        self.assertTrue(session.begin_round())
        while session.engine.round.is_active:
            session.scheduler.advance(session.settings.game_speed.interval)


# ============================================================
# Restore & persist
# ============================================================

class TestRestore(SessionTestCase):

    def test_fresh_install(self):
        session = self.make_session()
        self.assertEqual(session.engine.credits, 500)
        self.assertEqual(session.engine.bet_multiplier, 1)
        self.assertEqual(len(session.cards), 1)
        self.assertTrue(self.db.has(StorageKeys.SAVED_CARDS))
        self.assertTrue(session.show_game_mode_selection)

    def test_state_survives_restart(self):
        first = self.make_session()
        first.toggle_bet_multiplier()
        first.begin_round()
        first.reset()
        card_id = first.cards[0].id

        second = self.make_session()
        self.assertEqual(second.engine.credits, 300)
        self.assertEqual(second.engine.bet_multiplier, 2)
        self.assertEqual(second.cards[0].id, card_id)

    def test_corrupt_cards_replaced(self):
        self.db.set(StorageKeys.SAVED_CARDS, "{not json")
        session = self.make_session()
        self.assertEqual(len(session.cards), 1)
        saved = decode_cards(self.db.get(StorageKeys.SAVED_CARDS))
        self.assertEqual(saved[0].id, session.cards[0].id)

    def test_cards_from_other_variant_replaced(self):
        classic_card = generate_card(CLASSIC, random.Random(1))
        self.db.set(StorageKeys.SAVED_CARDS, encode_cards([classic_card]))
        session = self.make_session()
        self.assertEqual(session.cards[0].rows, 3)
        self.assertNotEqual(session.cards[0].id, classic_card.id)

    def test_corrupt_counters_fall_back_to_defaults(self):
        self.db.set(StorageKeys.CREDITS, "lots")
        self.db.set(StorageKeys.BET_MULTIPLIER, None)
        self.db.set(StorageKeys.GAMES_PLAYED, [3])
        self.db.set(StorageKeys.BINGOS, {"n": 2})
        with self.assertLogs("bingo47.session", level="WARNING") as logs:
            session = self.make_session()
        self.assertEqual(session.engine.credits, BONUS.starting_credits)
        self.assertEqual(session.engine.bet_multiplier, BONUS.bet_multipliers[0])
        self.assertEqual(session.engine.games_played, 0)
        self.assertEqual(session.engine.total_bingos, 0)
        self.assertEqual(len([m for m in logs.output if "Ignoring saved" in m]), 4)

    def test_round_stats_persisted(self):
        session = self.make_session()
        session.update_settings(auto_mark=True)
        self.play_round(session)
        self.assertEqual(self.db.get(StorageKeys.GAMES_PLAYED), 1)
        self.assertEqual(self.db.get(StorageKeys.BINGOS), session.engine.total_bingos)
        self.assertEqual(self.db.get(StorageKeys.CREDITS), session.engine.credits)

        again = self.make_session()
        self.assertEqual(again.engine.games_played, 1)


# ============================================================
# Cards & favorites
# ============================================================

class TestCards(SessionTestCase):

    def test_new_card_refused_mid_round(self):
        session = self.make_session()
        old_id = session.cards[0].id
        session.begin_round()
        self.assertFalse(session.generate_new_card())
        session.reset()
        self.assertTrue(session.generate_new_card(2))
        self.assertEqual(len(session.cards), 2)
        self.assertNotIn(old_id, [c.id for c in session.cards])
        self.assertEqual(len(decode_cards(self.db.get(StorageKeys.SAVED_CARDS))), 2)

    def test_favorites_dedupe_by_id(self):
        session = self.make_session()
        card = session.cards[0]
        self.assertTrue(session.favorite_card(card))
        self.assertFalse(session.favorite_card(card))
        self.assertEqual([c.id for c in session.favorites], [card.id])

        self.assertTrue(session.remove_favorite(card.id))
        self.assertFalse(session.remove_favorite(card.id))
        self.assertEqual(session.favorites, [])

    def test_set_cards_rejects_wrong_shape(self):
        session = self.make_session()
        self.assertFalse(session.set_cards([generate_card(CLASSIC, random.Random(2))]))


# ============================================================
# Credits & store
# ============================================================

class TestStore(SessionTestCase):

    def test_free_refill(self):
        session = self.make_session()
        session.reset_credits()
        self.assertEqual(session.engine.credits, 10_000)
        self.assertEqual(self.db.get(StorageKeys.CREDITS), 10_000)

    def test_purchase_adds_tier_credits(self):
        store = LocalPurchaseProvider()
        session = self.make_session(purchases=store)
        products = session.fetch_products()
        self.assertEqual([p.credits for p in products], [10_000, 100_000, 1_000_000])
        self.assertTrue(session.purchase_credits(TIER2))
        self.assertEqual(session.engine.credits, 100_500)
        self.assertEqual(store.purchased, [TIER2])
        self.assertFalse(session.is_processing_purchase)

    def test_failed_purchases_change_nothing(self):
        session = self.make_session(purchases=LocalPurchaseProvider(approve=False))
        self.assertFalse(session.purchase_credits(TIER1))
        self.assertFalse(session.purchase_credits("com.example.unknown"))
        self.assertEqual(session.engine.credits, 500)

        offline = self.make_session(purchases=PurchaseProvider())
        self.assertEqual(offline.fetch_products(), [])
        self.assertFalse(offline.purchase_credits(TIER1))
        self.assertFalse(offline.is_processing_purchase)


# ============================================================
# Rewarded bonus draws
# ============================================================

class TestBonusOffer(SessionTestCase):

    def _with_offer(self, session, size=6):
        session.engine.bonus.state.pending_offer_size = size
        session.engine.bonus.state.rounds_until_offer_expires = 3

    def test_accept_shows_ad_and_grants(self):
        ads = LocalAdProvider()
        session = self.make_session(ads=ads)
        self._with_offer(session)
        self.assertTrue(session.bonus_offer_visible)
        self.assertEqual(session.accept_bonus_offer(), 6)
        self.assertEqual(session.engine.pending_bonus_draws, 6)
        self.assertEqual(ads.presented, 1)
        self.assertEqual(session.accept_bonus_offer(), 0)
        self.assertEqual(session.engine.pending_bonus_draws, 6)

    def test_granted_when_ad_unavailable_or_broken(self):
        session = self.make_session(ads=AdProvider())
        self._with_offer(session, 5)
        self.assertFalse(session.bonus_offer_visible)
        self.assertEqual(session.accept_bonus_offer(), 5)
        self.assertEqual(session.engine.pending_bonus_draws, 5)

        broken = self.make_session(ads=_BrokenAds())
        self._with_offer(broken, 7)
        self.assertEqual(broken.accept_bonus_offer(), 7)
        self.assertEqual(broken.engine.pending_bonus_draws, 7)

    def test_bonus_draws_extend_next_round(self):
        session = self.make_session(ads=LocalAdProvider())
        self._with_offer(session, 5)
        session.accept_bonus_offer()
        session.begin_round()
        self.assertEqual(session.engine.round.spaces_to_reveal, 20)


# ============================================================
# Settings & collaborators
# ============================================================

class TestSettings(SessionTestCase):

    def test_settings_persist_key_by_key(self):
        session = self.make_session()
        session.update_settings(auto_mark=True, dauber_color="blue")
        self.assertTrue(self.db.get(GameSettingsKeys.AUTO_MARK))
        self.assertEqual(self.db.get(GameSettingsKeys.DAUBER_COLOR), "blue")
        self.assertTrue(self.make_session().settings.auto_mark)

    def test_bad_saved_setting_ignored(self):
        self.db.set(GameSettingsKeys.GAME_SPEED, 9.9)
        self.db.set(GameSettingsKeys.GRACEFUL_BINGOS, True)
        session = self.make_session()
        self.assertEqual(session.settings.game_speed, GameSpeed.NORMAL)
        self.assertTrue(session.settings.graceful_bingos)

    def test_legacy_speed_interval_loads(self):
        self.db.set(GameSettingsKeys.GAME_SPEED, 0.15)
        self.assertEqual(self.make_session().settings.game_speed, GameSpeed.LIGHTNING)

    def test_speed_mode(self):
        session = self.make_session()
        session.select_game_mode(classic=False)
        self.assertTrue(session.settings.auto_mark)
        self.assertFalse(session.settings.speak_spaces)
        self.assertEqual(session.engine.settings.game_speed, GameSpeed.LIGHTNING)
        self.assertFalse(session.show_game_mode_selection)
        self.assertEqual(self.db.get(GameSettingsKeys.GAME_SPEED), "lightning")

    def test_calls_are_announced(self):
        voice = RecordingAnnouncer()
        session = self.make_session(announcer=voice)
        session.begin_round()
        session.scheduler.advance(2.0)
        label = session.engine.round.current_space.label
        self.assertEqual(len(voice.spoken), 1)
        self.assertTrue(voice.spoken[0].endswith(label))
        self.assertIn(voice.spoken[0][0], "BINGO")

        session.update_settings(speak_spaces=False)
        session.scheduler.advance(2.0)
        self.assertEqual(len(voice.spoken), 1)

    def test_score_submitted_on_finalize(self):
        board = LocalLeaderboard()
        session = self.make_session(leaderboard=board)
        session.update_settings(auto_mark=True)
        self.play_round(session)
        self.assertEqual(board.scores, [session.engine.credits])

    def test_leaderboard_failure_is_not_fatal(self):
        session = self.make_session(leaderboard=_BrokenLeaderboard())
        session.update_settings(auto_mark=True)
        self.play_round(session)
        self.assertEqual(session.engine.games_played, 1)

    def test_background_pauses_calls(self):
        session = self.make_session()
        session.begin_round()
        session.on_background()
        session.scheduler.advance(30)
        self.assertEqual(session.engine.round.called_spaces, [])
        session.on_foreground()
        session.scheduler.advance(2.0)
        self.assertEqual(len(session.engine.round.called_spaces), 1)

    def test_snapshot_is_json(self):
        session = self.make_session(purchases=LocalPurchaseProvider())
        session.fetch_products()
        session.favorite_card(session.cards[0])
        snap = session.snapshot()
        json.dumps(snap)
        self.assertEqual(len(snap["products"]), 3)
        self.assertEqual(len(snap["favorites"]), 1)
        self.assertEqual(snap["jackpot_payout"], 20 * 47)
        self.assertEqual(snap["colors"], {"bingo_space": "yellow", "dauber": "red"})


if __name__ == "__main__":
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
