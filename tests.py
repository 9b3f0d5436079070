#!/usr/bin/env python3
"""
BINGO47 — Unit Test Suite

Run: python tests.py
     python tests.py -v             # verbose
     python tests.py TestPayout     # run specific class

Test categories:
  TestPatterns     — line sets, bingo counting, winning spaces
  TestCards        — card generation, free space, JSON codec
  TestDraw         — draw order uniqueness and clamping
  TestPayout       — payout bands, table monotonicity, bet scaling
  TestJackpot      — credit/claim arithmetic, legacy import
  TestBonusOffer   — offer / cooldown countdown
  TestSchema       — variants, game speed, user settings
  TestClock        — manual and threaded schedulers
  TestDatabase     — key/value and jackpot rows
"""

import json
import random
import sys
import threading
import unittest
import uuid
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import ValidationError

from config.bingo_schema import (
    BonusRules, CardLayout, GameSpeed, GameVariant, UserSettings, game_mode_preset,
    resolve_color, BINGO_COLORS,
)
from config.database import GameDatabase
from config.settings import StorageKeys
from sim_engine.bingo import BONUS, CLASSIC, column_letter, get_variant
from sim_engine.bingo.bonus import BonusOfferScheduler
from sim_engine.bingo.cards import (
    FREE_SPACE_ID, Card, CardFormatError, Space, decode_cards, encode_cards, generate_card,
)
from sim_engine.bingo.clock import ManualScheduler, ThreadingScheduler
from sim_engine.bingo.draw import generate_draw_order
from sim_engine.bingo.jackpot import JackpotLedger
from sim_engine.bingo.patterns import (
    count_bingos, is_part_of_bingo, line_patterns, winning_spaces,
)
from sim_engine.bingo.payout import calculate_payout, payout_table, winnings_for


def _grid_card(rows=3, columns=3, free_center=False):
    spaces = [Space(str(i)) for i in range(rows * columns)]
    if free_center:
        center = (rows * columns) // 2
        spaces[center] = Space(FREE_SPACE_ID, is_free_space=True)
    return Card(spaces=spaces, rows=rows, columns=columns)


# ============================================================
# Patterns
# ============================================================

class TestPatterns(unittest.TestCase):

    def test_three_by_three_lines(self):
        patterns = line_patterns(3, 3)
        self.assertEqual(len(patterns), 8)
        self.assertEqual(patterns[0], [0, 1, 2])
        self.assertEqual(patterns[3], [0, 3, 6])
        self.assertIn([0, 4, 8], patterns)
        self.assertIn([2, 4, 6], patterns)

    def test_five_by_five_and_rectangular(self):
        self.assertEqual(len(line_patterns(5, 5)), 12)
        # No diagonals unless the card is square
        self.assertEqual(len(line_patterns(3, 4)), 7)

    def test_count_and_winning_spaces(self):
        card = _grid_card()
        patterns = line_patterns(3, 3)
        for sid in ("0", "1", "2"):
            card.mark(Space(sid))
        self.assertEqual(count_bingos(card, patterns), 1)
        self.assertEqual(winning_spaces(card, patterns), {Space("0"), Space("1"), Space("2")})
        self.assertTrue(is_part_of_bingo(Space("1"), card, patterns))
        self.assertFalse(is_part_of_bingo(Space("4"), card, patterns))

        for sid in ("4", "8"):
            card.mark(Space(sid))
        # Top row plus the TL→BR diagonal
        self.assertEqual(count_bingos(card, patterns), 2)

    def test_free_space_counts_as_marked(self):
        card = _grid_card(5, 5, free_center=True)
        patterns = line_patterns(5, 5)
        for sid in ("10", "11", "13", "14"):
            card.mark(Space(sid))
        self.assertEqual(count_bingos(card, patterns), 1)


# ============================================================
# Cards
# ============================================================

class TestCards(unittest.TestCase):

    def test_bonus_card_has_bonus_in_center(self):
        card = generate_card(BONUS, random.Random(3))
        self.assertEqual(len(card.spaces), 9)
        self.assertEqual(card.spaces[4].id, "47")
        self.assertEqual(len({s.id for s in card.spaces}), 9)
        for s in card.spaces:
            self.assertIn(s.id, BONUS.labels)

    def test_classic_card_columns_and_free_center(self):
        card = generate_card(CLASSIC, random.Random(11))
        self.assertEqual(len(card.spaces), 25)
        self.assertTrue(card.spaces[12].is_free_space)
        for i, s in enumerate(card.spaces):
            if i == 12:
                continue
            col = i % 5
            self.assertIn(int(s.id), range(col * 15 + 1, col * 15 + 16))

    def test_space_identity_is_id(self):
        self.assertEqual(Space("5"), Space("5", label="five"))
        self.assertEqual(len({Space("5"), Space("5", label="V")}), 1)

    def test_card_rejects_bad_shapes(self):
        with self.assertRaises(CardFormatError):
            Card(spaces=[Space("1")] * 9, rows=3, columns=3)
        with self.assertRaises(CardFormatError):
            Card(spaces=[Space(str(i)) for i in range(8)], rows=3, columns=3)

    def test_mark_only_own_spaces(self):
        card = _grid_card()
        self.assertFalse(card.mark(Space("99")))
        self.assertTrue(card.mark(Space("3")))
        self.assertFalse(card.mark(Space("3")))
        self.assertEqual(card.marked_spaces, {Space("3")})

    def test_blackout_ignores_free_space(self):
        card = _grid_card(5, 5, free_center=True)
        for s in card.spaces:
            if not s.is_free_space:
                card.mark(s)
        self.assertTrue(card.is_blackout)

    def test_codec_keeps_layout_and_drops_marks(self):
        card = generate_card(BONUS, random.Random(5))
        card.mark(card.spaces[0])
        restored = decode_cards(encode_cards([card]))
        self.assertEqual(len(restored), 1)
        self.assertEqual(restored[0].id, card.id)
        self.assertEqual(restored[0].spaces, card.spaces)
        self.assertEqual(restored[0].marked_spaces, set())

    def test_decode_corrupt_returns_none(self):
        self.assertIsNone(decode_cards("not json"))
        self.assertIsNone(decode_cards('{"cards": 1}'))
        self.assertIsNone(decode_cards('[{"id": "x", "rows": 3, "columns": 3, "spaces": []}]'))
        self.assertIsNone(decode_cards(""))

    def test_decode_accepts_camel_case_free_flag(self):
        spaces = [{"id": str(i), "isFreeSpace": i == 4, "label": str(i)} for i in range(9)]
        text = json.dumps([{"id": str(uuid.uuid4()), "rows": 3, "columns": 3, "spaces": spaces}])
        cards = decode_cards(text)
        self.assertTrue(cards[0].spaces[4].is_free_space)


# ============================================================
# Draw Sequencer
# ============================================================

class TestDraw(unittest.TestCase):

    def setUp(self):
        self.pool = [Space(label) for label in BONUS.labels]

    def test_unique_prefix(self):
        order = generate_draw_order(self.pool, 15, random.Random(1))
        self.assertEqual(len(order), 15)
        self.assertEqual(len(set(order)), 15)
        self.assertTrue(set(order) <= set(self.pool))

    def test_count_is_clamped(self):
        self.assertEqual(len(generate_draw_order(self.pool, 100, random.Random(1))), 30)
        self.assertEqual(generate_draw_order(self.pool, -3, random.Random(1)), [])

    def test_seeded_rng_is_repeatable(self):
        a = generate_draw_order(self.pool, 10, random.Random(42))
        b = generate_draw_order(self.pool, 10, random.Random(42))
        self.assertEqual(a, b)


# ============================================================
# Payout Engine
# ============================================================

class TestPayout(unittest.TestCase):

    def test_bands_at_base_bet(self):
        expected = {0: 0, 1: 50, 2: 100, 3: 200, 4: 300, 5: 500, 6: 1000, 7: 2000, 8: 4700}
        for count, amount in expected.items():
            self.assertEqual(calculate_payout(count, 100), amount, count)
        self.assertEqual(calculate_payout(-1, 100), 0)

    def test_tail_never_drops_below_top_tier(self):
        self.assertEqual(calculate_payout(9, 100), 4700)
        self.assertEqual(calculate_payout(10, 100), 4700)
        self.assertEqual(calculate_payout(11, 100), 6400)
        self.assertEqual(calculate_payout(12, 100), 12800)

    def test_table_is_monotonic(self):
        for variant in (BONUS, CLASSIC):
            rows = payout_table(1, variant)
            self.assertEqual(len(rows), len(variant.patterns))
            amounts = [r.win_amount for r in rows]
            self.assertEqual(amounts, sorted(amounts))

    def test_table_scales_with_bet(self):
        base = payout_table(1, CLASSIC)
        scaled = payout_table(25, CLASSIC)
        for a, b in zip(base, scaled):
            self.assertEqual(b.win_amount, a.win_amount * 25)

    def test_winnings_for_uses_multiplier(self):
        self.assertEqual(winnings_for(8, 2, BONUS), 9400)


# ============================================================
# Jackpot Ledger
# ============================================================

class TestJackpot(unittest.TestCase):

    def setUp(self):
        self.db = GameDatabase(":memory:")
        self.ledger = JackpotLedger(self.db)

    def tearDown(self):
        self.db.close()

    def test_unseen_multiplier_reads_baseline(self):
        self.assertEqual(self.ledger.count(5), 100)
        self.assertEqual(self.ledger.potential_payout(5), 4700)

    def test_credit_then_claim(self):
        prior = self.ledger.count(5)
        self.assertEqual(self.ledger.credit(5), prior + 5)
        claim = self.ledger.claim(5)
        self.assertEqual(claim.count, prior + 5)
        self.assertEqual(claim.amount, (prior + 5) * 47)
        self.assertEqual(self.ledger.count(5), 100)

    def test_multipliers_are_independent(self):
        self.ledger.credit(1)
        self.ledger.credit(1)
        self.ledger.credit(10)
        self.assertEqual(self.ledger.count(1), 22)
        self.assertEqual(self.ledger.count(10), 210)
        self.ledger.claim(1)
        self.assertEqual(self.ledger.count(10), 210)

    def test_legacy_import(self):
        db = GameDatabase(":memory:")
        db.jackpot_set(2, 99)
        db.set(StorageKeys.LEGACY_JACKPOT, {"1": 30, "2": 50, "x": 4, "0": 9, "3": -1})
        ledger = JackpotLedger(db)
        self.assertEqual(ledger.count(1), 30)
        self.assertEqual(ledger.count(2), 99)      # typed row wins
        self.assertEqual(ledger.count(3), 60)      # rejected → baseline
        self.assertFalse(db.has(StorageKeys.LEGACY_JACKPOT))
        self.assertEqual(ledger.migrate_legacy(), 0)
        db.close()

    def test_legacy_import_requires_integer_counts(self):
        db = GameDatabase(":memory:")
        db.set(StorageKeys.LEGACY_JACKPOT, {"1": 3.7, "2": "55", "5": True, "10": 250})
        ledger = JackpotLedger(db)
        self.assertEqual(ledger.count(1), 20)
        self.assertEqual(ledger.count(2), 40)
        self.assertEqual(ledger.count(5), 100)
        self.assertEqual(ledger.count(10), 250)
        self.assertEqual(db.jackpot_counts(), {10: 250})
        db.close()


# ============================================================
# Bonus-Draw Offers
# ============================================================

class TestBonusOffer(unittest.TestCase):

    def test_no_offer_without_reward(self):
        sched = BonusOfferScheduler(rng=random.Random(1))
        for _ in range(5):
            self.assertIsNone(sched.on_round_completed(False))

    def test_offer_expiry_and_cooldown(self):
        sched = BonusOfferScheduler(rng=random.Random(2))
        size = sched.on_round_completed(True)
        self.assertIn(size, [5, 6, 7])
        self.assertEqual(sched.state.rounds_until_offer_expires, 3)

        for _ in range(3):
            sched.on_round_completed(True)
        self.assertIsNone(sched.offer)
        cooldown = sched.state.cooldown_rounds_remaining
        self.assertTrue(5 <= cooldown <= 10)

        for _ in range(cooldown):
            self.assertIsNone(sched.on_round_completed(True))
        self.assertIsNotNone(sched.on_round_completed(True))

    def test_accept_once(self):
        sched = BonusOfferScheduler(rng=random.Random(3))
        size = sched.on_round_completed(True)
        self.assertTrue(sched.is_offer_visible(True))
        self.assertFalse(sched.is_offer_visible(False))
        self.assertEqual(sched.accept(), size)
        self.assertIsNone(sched.accept())
        self.assertFalse(sched.is_offer_visible(True))

    def test_custom_rules(self):
        rules = BonusRules(offer_sizes=[9], offer_rounds=1, cooldown_range=(2, 2))
        sched = BonusOfferScheduler(rules, random.Random(0))
        self.assertEqual(sched.on_round_completed(True), 9)
        sched.on_round_completed(True)
        self.assertEqual(sched.state.cooldown_rounds_remaining, 2)


# ============================================================
# Schema & Variants
# ============================================================

class TestSchema(unittest.TestCase):

    def test_game_speed_parse(self):
        self.assertEqual(GameSpeed.parse(0.5), GameSpeed.FAST)
        self.assertEqual(GameSpeed.parse("Lightning"), GameSpeed.LIGHTNING)
        self.assertEqual(GameSpeed.NORMAL.interval, 2.0)
        with self.assertRaises(ValueError):
            GameSpeed.parse(1.0)

    def test_fast_speed_silences_announcer(self):
        s = UserSettings(game_speed="fast", speak_spaces=True)
        self.assertFalse(s.speak_spaces)
        self.assertTrue(UserSettings(game_speed=3.5).speak_spaces)

    def test_colors(self):
        with self.assertRaises(ValidationError):
            UserSettings(dauber_color="teal")
        picked = resolve_color("random", random.Random(1), avoid="red")
        self.assertIn(picked, BINGO_COLORS)
        self.assertNotEqual(picked, "red")
        self.assertEqual(resolve_color("blue", random.Random(1)), "blue")

    def test_game_mode_presets(self):
        speed = UserSettings(**game_mode_preset(classic=False))
        self.assertTrue(speed.auto_mark)
        self.assertEqual(speed.game_speed, GameSpeed.LIGHTNING)
        classic = UserSettings(**game_mode_preset(classic=True))
        self.assertFalse(classic.auto_mark)
        self.assertTrue(classic.speak_spaces)

    def test_variant_validation(self):
        with self.assertRaises(ValidationError):
            GameVariant(name="bad", labels=[str(i) for i in range(9)],
                        bonus_label="47", patterns=[[0, 1, 2]])
        with self.assertRaises(ValidationError):
            GameVariant(name="bad", labels=[str(i) for i in range(9)],
                        bonus_label="4", patterns=[[0, 1, 9]])
        with self.assertRaises(ValidationError):
            GameVariant(name="bad", layout=CardLayout.LINES, rows=5, columns=5,
                        labels=[str(i) for i in range(12)], patterns=[[0]])

    def test_registry(self):
        self.assertEqual(get_variant("CLASSIC").name, "classic")
        with self.assertRaises(ValueError):
            get_variant("pachinko")
        self.assertEqual(column_letter("47"), "G")
        self.assertEqual(column_letter("1"), "B")
        self.assertEqual(column_letter("80"), "")


# ============================================================
# Schedulers
# ============================================================

class TestClock(unittest.TestCase):

    def test_manual_fires_on_interval(self):
        sched = ManualScheduler()
        hits = []
        sched.schedule_repeating(2.0, lambda: hits.append(sched.now))
        self.assertEqual(sched.advance(1.9), 0)
        self.assertEqual(sched.advance(0.1), 1)
        self.assertEqual(sched.advance(4.0), 2)
        self.assertEqual(hits, [2.0, 4.0, 6.0])

    def test_pause_keeps_remaining_time(self):
        sched = ManualScheduler()
        hits = []
        timer = sched.schedule_repeating(2.0, lambda: hits.append(1))
        sched.advance(0.5)
        timer.pause()
        self.assertEqual(sched.advance(10), 0)
        self.assertAlmostEqual(timer.remaining(), 1.5)
        timer.resume()
        self.assertEqual(sched.advance(1.4), 0)
        self.assertEqual(sched.advance(0.1), 1)

    def test_cancel(self):
        sched = ManualScheduler()
        timer = sched.schedule_repeating(1.0, lambda: self.fail("cancelled timer fired"))
        timer.cancel()
        self.assertEqual(sched.advance(5), 0)
        self.assertEqual(sched.pending(), 0)
        with self.assertRaises(ValueError):
            sched.schedule_repeating(0, lambda: None)

    def test_threading_scheduler_fires(self):
        fired = threading.Event()
        timer = ThreadingScheduler().schedule_repeating(0.01, fired.set)
        try:
            self.assertTrue(fired.wait(2.0))
        finally:
            timer.cancel()
        self.assertFalse(timer.active)


# ============================================================
# Database
# ============================================================

class TestDatabase(unittest.TestCase):

    def setUp(self):
        self.db = GameDatabase(":memory:")

    def tearDown(self):
        self.db.close()

    def test_kv_roundtrip(self):
        self.assertEqual(self.db.get("missing", 7), 7)
        self.db.set("userCredits", 1234)
        self.db.set("userCredits", 1500)
        self.assertEqual(self.db.get("userCredits"), 1500)
        self.assertTrue(self.db.has("userCredits"))
        self.db.delete("userCredits")
        self.assertFalse(self.db.has("userCredits"))

    def test_jackpot_rows(self):
        self.assertIsNone(self.db.jackpot_count(3))
        self.assertEqual(self.db.jackpot_add(3, 3, 60), 63)
        self.assertEqual(self.db.jackpot_add(3, 3, 60), 66)
        self.assertEqual(self.db.jackpot_swap(3, 60, default=60), 66)
        self.assertEqual(self.db.jackpot_counts(), {3: 60})


# ============================================================
# Main
# ============================================================

if __name__ == "__main__":
    # Configure logging to suppress noise during tests
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
