#!/usr/bin/env python3
"""
Tests for the game HTTP API (api/game_routes.py, web_app.py)

Run: python tests_api.py
"""

import random
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.database import GameDatabase
from sim_engine.bingo import BONUS
from sim_engine.bingo.clock import ManualScheduler
from tools.bingo_providers import LocalAdProvider, LocalPurchaseProvider
from tools.bingo_session import BingoSession


class TestGameAPI(unittest.TestCase):
    """Flask test client over a session on an in-memory database."""

    def setUp(self):
        from web_app import create_app

        self.session = BingoSession(
            GameDatabase(":memory:"), BONUS, ManualScheduler(),
            rng=random.Random(8),
            purchases=LocalPurchaseProvider(),
            ads=LocalAdProvider(),
        )
        self.app = create_app(self.session)
        self.app.config["TESTING"] = True
        self.client = self.app.test_client()

    def tearDown(self):
        self.session.close()

    def _call_one(self):
        self.session.scheduler.advance(2.0)
        return self.session.engine.round.current_space

    def test_state(self):
        resp = self.client.get("/api/game/state")
        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertTrue(data["ok"])
        self.assertEqual(data["state"]["credits"], 500)
        self.assertEqual(data["state"]["phase"], "idle")

    def test_round_start_and_refusal(self):
        resp = self.client.post("/api/game/round")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["state"]["phase"], "active")

        resp = self.client.post("/api/game/round")
        self.assertEqual(resp.status_code, 409)
        self.assertFalse(resp.get_json()["ok"])

    def test_mark(self):
        card_id = str(self.session.cards[0].id)
        resp = self.client.post("/api/game/mark", json={})
        self.assertEqual(resp.status_code, 400)

        self.client.post("/api/game/round")
        uncalled = self.session.cards[0].spaces[0].id
        resp = self.client.post("/api/game/mark", json={"space_id": uncalled, "card_id": card_id})
        self.assertEqual(resp.get_json()["result"], "rejected")
        self.assertFalse(resp.get_json()["ok"])

        called = self._call_one()
        resp = self.client.post("/api/game/mark", json={"space_id": called.id, "card_id": card_id})
        expected = "accepted" if self.session.cards[0].contains(called) else "not_on_card"
        self.assertEqual(resp.get_json()["result"], expected)

    def test_bet_locked_during_round(self):
        resp = self.client.post("/api/game/bet/toggle")
        self.assertEqual(resp.get_json()["state"]["bet_multiplier"], 2)
        self.client.post("/api/game/round")
        resp = self.client.post("/api/game/bet/toggle")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()["state"]["bet_multiplier"], 2)

    def test_payouts_and_jackpots(self):
        resp = self.client.get("/api/game/payouts?multiplier=2")
        rows = resp.get_json()["rows"]
        self.assertEqual(len(rows), 8)
        self.assertEqual(rows[0], {"bingo_count": 1, "win_amount": 100})
        self.assertEqual(rows[-1]["win_amount"], 9400)

        self.session.ledger.credit(2)
        resp = self.client.get("/api/game/jackpots")
        self.assertEqual(resp.get_json()["jackpots"], {"2": 42})

    def test_payouts_reject_multiplier_off_ladder(self):
        for bad in ("-5", "0", "3", "abc"):
            resp = self.client.get(f"/api/game/payouts?multiplier={bad}")
            self.assertEqual(resp.status_code, 400, bad)
            self.assertIn("error", resp.get_json())

        resp = self.client.get("/api/game/payouts")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["bet_multiplier"], 1)

    def test_settings(self):
        resp = self.client.post("/api/game/settings", json={"game_speed": "warp"})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post("/api/game/settings", json={"volume": 3})
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post("/api/game/settings", json={"auto_mark": True, "game_speed": "fast"})
        self.assertEqual(resp.status_code, 200)
        settings = self.client.get("/api/game/settings").get_json()
        self.assertTrue(settings["auto_mark"])
        self.assertEqual(settings["game_speed"], "fast")
        self.assertFalse(settings["speak_spaces"])

    def test_game_mode(self):
        resp = self.client.post("/api/game/mode", json={"classic": False})
        state = resp.get_json()["state"]
        self.assertTrue(state["settings"]["auto_mark"])
        self.assertFalse(state["show_game_mode_selection"])

    def test_store(self):
        products = self.client.get("/api/game/products").get_json()["products"]
        self.assertEqual(len(products), 3)
        resp = self.client.post("/api/game/purchase", json={"product_id": products[0]["product_id"]})
        self.assertEqual(resp.get_json()["state"]["credits"], 10_500)
        resp = self.client.post("/api/game/purchase", json={"product_id": "nope"})
        self.assertEqual(resp.status_code, 409)

    def test_refill(self):
        resp = self.client.post("/api/game/credits/refill")
        self.assertEqual(resp.get_json()["state"]["credits"], 10_000)

    def test_favorites_flow(self):
        card_id = str(self.session.cards[0].id)
        resp = self.client.post("/api/game/favorites", json={"card_id": card_id})
        self.assertTrue(resp.get_json()["ok"])
        self.client.post("/api/game/cards/new")
        self.assertNotEqual(str(self.session.cards[0].id), card_id)

        resp = self.client.post(f"/api/game/favorites/{card_id}/play")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(str(self.session.cards[0].id), card_id)

        self.assertEqual(self.client.delete(f"/api/game/favorites/{card_id}").status_code, 200)
        self.assertEqual(self.client.delete(f"/api/game/favorites/{card_id}").status_code, 404)
        self.assertEqual(self.client.get("/api/game/favorites").get_json()["favorites"], [])

    def test_bonus_accept(self):
        resp = self.client.post("/api/game/bonus/accept")
        self.assertEqual(resp.status_code, 409)
        self.session.engine.bonus.state.pending_offer_size = 5
        resp = self.client.post("/api/game/bonus/accept")
        self.assertEqual(resp.get_json()["granted"], 5)
        self.assertEqual(resp.get_json()["state"]["pending_bonus_draws"], 5)

    def test_suspend_resume(self):
        self.client.post("/api/game/round")
        self.client.post("/api/game/suspend")
        self.session.scheduler.advance(10)
        self.assertEqual(self.session.engine.round.called_spaces, [])
        self.client.post("/api/game/resume")
        self.session.scheduler.advance(2.0)
        self.assertEqual(len(self.session.engine.round.called_spaces), 1)

    def test_health_index_and_404(self):
        self.assertEqual(self.client.get("/health").get_json()["status"], "ok")
        resp = self.client.get("/")
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b"Bingo 47", resp.data)
        resp = self.client.get("/api/game/nope")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()["error"], "Not found")


if __name__ == "__main__":
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
