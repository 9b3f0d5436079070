#!/usr/bin/env python3
"""
Tests for the round state machine (sim_engine/bingo/engine.py)

Validates:
1.  Called spaces follow the draw order, one per tick, never past spaces_to_reveal
2.  Marking is idempotent (no winnings change, no second jackpot credit)
3.  Uncalled, non-free spaces are rejected without touching the card
4.  Blackout claims the jackpot exactly once per round
5.  Last call: countdown, early finish, graceful auto-mark on expiry
6.  Bet changes are refused mid-round
7.  Stale timer callbacks are ignored after a reset
8.  Suspend/resume keeps the time left until the next call
9.  Free bonus draws and offer bookkeeping at round end
10. Several cards share one round: summed bingos, blackout needs every card

All timing runs on ManualScheduler, so no test sleeps.
"""

import json
import random
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.bingo_schema import BonusRules, GameVariant, UserSettings
from config.database import GameDatabase
from sim_engine.bingo import BONUS, CLASSIC
from sim_engine.bingo.cards import Space, generate_card
from sim_engine.bingo.clock import ManualScheduler
from sim_engine.bingo.engine import BingoEngine, MarkResult, RoundPhase
from sim_engine.bingo.jackpot import JackpotLedger
from sim_engine.bingo.patterns import line_patterns
from sim_engine.bingo.payout import payout_table

# Nine labels and nine draws: every round calls every space on the card
TINY = GameVariant(
    name="tiny",
    rows=3,
    columns=3,
    labels=[str(n) for n in range(1, 9)] + ["47"],
    bonus_label="47",
    patterns=line_patterns(3, 3),
    default_draws=9,
)


def make_engine(variant=TINY, credits=500, seed=7, reward_available=None, card_count=1, **settings):
    db = GameDatabase(":memory:")
    rng = random.Random(seed)
    scheduler = ManualScheduler()
    engine = BingoEngine(
        variant,
        JackpotLedger(db, variant.jackpot),
        scheduler,
        cards=[generate_card(variant, rng) for _ in range(card_count)],
        credits=credits,
        settings=UserSettings(**settings),
        rng=rng,
        reward_available=reward_available,
    )
    events = []
    engine.subscribe(events.append)
    return engine, scheduler, events


def tick(engine, scheduler):
    """Advance exactly one call interval and return the space just called."""
    scheduler.advance(engine.settings.game_speed.interval)
    return engine.round.current_space


def kinds(events):
    return [e.kind for e in events]


# ── Draw order ──

def test_called_spaces_follow_draw_order():
    engine, scheduler, _ = make_engine(BONUS)
    assert engine.begin_round()
    order = list(engine.round.draw_queue)
    assert engine.round.spaces_to_reveal == 15 == len(order)

    for n in range(1, 16):
        tick(engine, scheduler)
        assert engine.round.called_spaces == order[:n]
    assert len(set(engine.round.called_spaces)) == 15

    scheduler.advance(60)
    assert len(engine.round.called_spaces) == 15


def test_begin_round_debits_bet_and_refuses_second_start():
    engine, _, events = make_engine()
    assert engine.begin_round()
    assert engine.credits == 400
    assert engine.round.phase == RoundPhase.ACTIVE
    assert not engine.begin_round()
    assert engine.credits == 400
    assert events[-1].kind == "round_rejected"


def test_insufficient_credits_is_a_no_op():
    engine, _, events = make_engine(credits=50)
    assert not engine.begin_round()
    assert engine.credits == 50
    assert engine.round.phase == RoundPhase.IDLE
    assert events[-1].kind == "round_rejected"
    assert events[-1].data["reason"] == "insufficient_credits"


# ── Marking ──

def test_mark_is_idempotent_and_credits_jackpot_once():
    engine, scheduler, _ = make_engine()
    card = engine.cards[0]
    engine.begin_round()
    while engine.round.current_space != Space("47"):
        tick(engine, scheduler)

    assert engine.mark_space("47", card.id) == MarkResult.ACCEPTED
    winnings = engine.round.winnings
    assert engine.ledger.count(1) == 21

    assert engine.mark_space("47", card.id) == MarkResult.DUPLICATE
    assert engine.round.winnings == winnings
    assert engine.ledger.count(1) == 21


def test_uncalled_space_is_rejected():
    engine, _, events = make_engine()
    card = engine.cards[0]
    engine.begin_round()
    target = card.spaces[0]
    assert engine.mark_space(target.id, card.id) == MarkResult.REJECTED
    assert card.marked_spaces == set()
    assert "mark_rejected" in kinds(events)


def test_free_space_needs_no_call():
    engine, _, _ = make_engine(CLASSIC)
    card = engine.cards[0]
    engine.begin_round()
    assert engine.mark_space("FREE", card.id) == MarkResult.ACCEPTED


def test_called_space_missing_from_card():
    engine, scheduler, _ = make_engine(BONUS)
    card = engine.cards[0]
    engine.begin_round()
    for _ in range(15):
        space = tick(engine, scheduler)
        if not card.contains(space):
            assert engine.mark_space(space.id, card.id) == MarkResult.NOT_ON_CARD
            return
    raise AssertionError("every called space was on the card")


def test_marks_ignored_without_round_or_card():
    engine, scheduler, _ = make_engine()
    card = engine.cards[0]
    assert engine.mark_space(card.spaces[0].id, card.id) == MarkResult.IGNORED
    engine.begin_round()
    space = tick(engine, scheduler)
    assert engine.mark_space(space.id, "no-such-card") == MarkResult.IGNORED


def test_auto_mark_skips_last_call():
    engine, scheduler, events = make_engine(BONUS, auto_mark=True)
    card = engine.cards[0]
    engine.begin_round()
    while engine.round.is_active:
        tick(engine, scheduler)

    called = engine.round.called_set
    for space in card.spaces:
        assert (space in card.marked_spaces) == (space in called)
    assert "last_call_started" not in kinds(events)
    assert engine.games_played == 1


# ── Scenario A: blackout ──

def test_blackout_claims_jackpot_once():
    engine, scheduler, events = make_engine()
    card = engine.cards[0]
    assert engine.begin_round()
    for _ in range(9):
        space = tick(engine, scheduler)
        assert engine.mark_space(space.id, card.id) == MarkResult.ACCEPTED

    assert engine.round.phase == RoundPhase.IDLE
    assert card.is_blackout
    assert engine.round.bingo_count == 8
    assert engine.round.winnings == 4700
    assert kinds(events).count("jackpot_won") == 1
    won = next(e for e in events if e.kind == "jackpot_won")
    assert won.data["amount"] == 21 * 47
    assert engine.credits == 500 - 100 + 4700 + 21 * 47
    assert engine.ledger.count(1) == 20

    scheduler.advance(60)
    assert kinds(events).count("jackpot_won") == 1
    assert kinds(events).count("round_finalized") == 1


def test_multiple_cards_share_round():
    engine, scheduler, events = make_engine(card_count=2)
    first, second = engine.cards
    assert first.id != second.id
    engine.begin_round()
    for _ in range(9):
        space = tick(engine, scheduler)
        assert engine.mark_space(space.id, first.id) == MarkResult.ACCEPTED

    # second card still holds called spaces, so the round waits on it
    assert engine.round.phase == RoundPhase.LAST_CALL
    assert first.is_blackout and not second.is_blackout
    assert engine.round.bingo_count == 8
    assert "jackpot_won" not in kinds(events)

    for space in list(engine.round.called_spaces):
        assert engine.mark_space(space.id, second.id) == MarkResult.ACCEPTED

    assert engine.round.phase == RoundPhase.IDLE
    assert engine.round.bingo_count == 16
    assert kinds(events).count("jackpot_won") == 1
    assert kinds(events).count("jackpot_credited") == 2


# ── Scenario B: last call finished early ──

def test_last_call_ends_when_everything_is_marked():
    engine, scheduler, events = make_engine()
    card = engine.cards[0]
    engine.begin_round()
    for n in range(9):
        space = tick(engine, scheduler)
        if n < 7:
            engine.mark_space(space.id, card.id)

    assert engine.round.phase == RoundPhase.LAST_CALL
    assert engine.round.last_call_seconds_remaining == 10
    assert len(engine.unmarked_called_spaces()) == 2

    scheduler.advance(3.0)
    assert engine.round.last_call_seconds_remaining == 7
    first, second = engine.round.called_spaces[7:9]
    assert engine.mark_space(first.id, card.id) == MarkResult.ACCEPTED
    assert engine.round.phase == RoundPhase.LAST_CALL

    scheduler.advance(1.0)
    assert engine.mark_space(second.id, card.id) == MarkResult.ACCEPTED
    assert engine.round.phase == RoundPhase.IDLE
    assert engine.round.last_call_seconds_remaining == 6

    ticks = kinds(events).count("last_call_tick")
    scheduler.advance(30)
    assert kinds(events).count("last_call_tick") == ticks
    assert engine.round.last_call_seconds_remaining == 6


# ── Scenario C: graceful expiry ──

def test_graceful_bingos_mark_on_expiry():
    engine, scheduler, events = make_engine(graceful_bingos=True)
    card = engine.cards[0]
    engine.begin_round()
    for n in range(9):
        space = tick(engine, scheduler)
        if n < 8:
            engine.mark_space(space.id, card.id)

    assert engine.round.phase == RoundPhase.LAST_CALL
    assert engine.round.bingo_count < 8

    scheduler.advance(10.0)
    assert engine.round.phase == RoundPhase.IDLE
    assert engine.round.bingo_count == 8
    assert engine.round.winnings == 4700
    graceful = [e for e in events if e.kind == "space_marked" and e.data["source"] == "graceful"]
    assert len(graceful) == 1


def test_expiry_without_graceful_leaves_spaces_unmarked():
    engine, scheduler, events = make_engine()
    card = engine.cards[0]
    engine.begin_round()
    for _ in range(9):
        tick(engine, scheduler)
    assert engine.round.phase == RoundPhase.LAST_CALL

    scheduler.advance(9.0)
    assert engine.round.phase == RoundPhase.LAST_CALL
    scheduler.advance(1.0)
    assert engine.round.phase == RoundPhase.IDLE
    assert card.marked_spaces == set()
    assert engine.round.winnings == 0
    assert "jackpot_won" not in kinds(events)
    assert engine.credits == 400


# ── Scenario D: bet locked mid-round ──

def test_bet_toggle_refused_while_active():
    engine, _, _ = make_engine()
    table = engine.payout_table
    engine.begin_round()
    assert not engine.toggle_bet_multiplier()
    assert not engine.lower_bet_to_max_possible()
    assert engine.bet_multiplier == 1
    assert engine.payout_table == table


def test_bet_ladder_between_rounds():
    engine, _, events = make_engine(credits=1200)
    assert engine.toggle_bet_multiplier()
    assert engine.bet_multiplier == 2
    assert engine.payout_table == payout_table(2, TINY)
    assert events[-1].kind == "bet_changed"

    engine.bet_multiplier = TINY.bet_multipliers[-1]
    engine.toggle_bet_multiplier()
    assert engine.bet_multiplier == 1

    engine.lower_bet_to_max_possible()
    assert engine.bet_multiplier == 10


def test_jackpot_credit_uses_round_multiplier():
    engine, scheduler, _ = make_engine(credits=10_000)
    engine.toggle_bet_multiplier()
    engine.toggle_bet_multiplier()
    assert engine.bet_multiplier == 5
    engine.begin_round()
    while engine.round.current_space != Space("47"):
        tick(engine, scheduler)
    engine.mark_space("47", engine.cards[0].id)
    assert engine.ledger.count(5) == 105
    assert engine.ledger.count(1) == 20


# ── Timers ──

def test_stale_callbacks_are_ignored_after_reset():
    engine, scheduler, events = make_engine()
    engine.begin_round()
    old_epoch = engine.round.epoch
    engine.reset()
    assert engine.round.epoch > old_epoch
    assert engine.round.phase == RoundPhase.IDLE

    engine._on_reveal_tick(old_epoch)
    engine._on_last_call_tick(old_epoch)
    scheduler.advance(30)
    assert engine.round.called_spaces == []
    assert "space_called" not in kinds(events)


def test_suspend_resume_preserves_remaining_time():
    engine, scheduler, _ = make_engine()
    engine.begin_round()
    scheduler.advance(1.0)
    engine.suspend()
    scheduler.advance(100)
    assert engine.round.called_spaces == []

    engine.resume()
    scheduler.advance(0.5)
    assert engine.round.called_spaces == []
    scheduler.advance(0.5)
    assert len(engine.round.called_spaces) == 1


def test_suspend_pauses_last_call():
    engine, scheduler, _ = make_engine()
    engine.begin_round()
    for _ in range(9):
        tick(engine, scheduler)
    scheduler.advance(2.0)
    assert engine.round.last_call_seconds_remaining == 8

    engine.suspend()
    scheduler.advance(50)
    assert engine.round.last_call_seconds_remaining == 8
    engine.resume()
    scheduler.advance(1.0)
    assert engine.round.last_call_seconds_remaining == 7


def test_game_speed_sets_call_interval():
    engine, scheduler, _ = make_engine(game_speed="lightning")
    engine.begin_round()
    scheduler.advance(0.15 * 3 + 0.01)
    assert len(engine.round.called_spaces) == 3


# ── End of round ──

def _play_out(engine, scheduler):
    engine.begin_round()
    while engine.round.is_active:
        tick(engine, scheduler)


def test_free_bonus_draws_added_to_next_round():
    variant = BONUS.model_copy(update={"bonus": BonusRules(free_draw_chance=100, free_draw_sizes=[2])})
    engine, scheduler, events = make_engine(variant, auto_mark=True)
    _play_out(engine, scheduler)
    assert engine.pending_bonus_draws == 2
    assert "bonus_draws_granted" in kinds(events)

    engine.begin_round()
    assert engine.round.spaces_to_reveal == 17
    assert engine.pending_bonus_draws == 0


def test_no_free_draws_while_offer_is_live():
    variant = BONUS.model_copy(update={"bonus": BonusRules(free_draw_chance=100)})
    engine, scheduler, _ = make_engine(variant, auto_mark=True)
    engine.bonus.state.pending_offer_size = 5
    engine.bonus.state.rounds_until_offer_expires = 3
    _play_out(engine, scheduler)
    assert engine.pending_bonus_draws == 0
    assert engine.bonus.state.rounds_until_offer_expires == 2


def test_offer_appears_when_reward_ready():
    engine, scheduler, events = make_engine(BONUS, auto_mark=True, reward_available=lambda: True)
    _play_out(engine, scheduler)
    assert engine.bonus.offer in (5, 6, 7)
    assert "bonus_offer_changed" in kinds(events)


def test_stats_and_snapshot():
    engine, scheduler, _ = make_engine(BONUS, auto_mark=True)
    _play_out(engine, scheduler)
    _play_out(engine, scheduler)
    assert engine.games_played == 2

    snap = engine.snapshot()
    json.dumps(snap)
    assert snap["phase"] == "idle"
    assert snap["games_played"] == 2
    assert len(snap["cards"]) == 1
    assert len(snap["payout_table"]) == 8
    assert snap["show_jackpot"] is True


def test_set_cards_only_between_rounds():
    engine, scheduler, events = make_engine()
    new_card = generate_card(TINY, random.Random(99))
    engine.begin_round()
    assert not engine.set_cards([new_card])
    engine.reset()
    assert engine.set_cards([new_card])
    assert engine.cards == [new_card]
    assert events[-1].kind == "cards_changed"


if __name__ == "__main__":
    tests = [v for k, v in sorted(globals().items()) if k.startswith("test_") and callable(v)]

    print(f"\n{'='*60}")
    print(f"Round Engine Tests — {len(tests)} tests")
    print(f"{'='*60}\n")

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
            print(f"✅ {test.__name__}")
        except Exception as e:
            print(f"❌ {test.__name__}: {e}")
            failed += 1

    print(f"\n{'='*60}")
    print(f"Results: {passed} passed, {failed} failed, {passed + failed} total")
    print(f"{'='*60}")

    sys.exit(0 if failed == 0 else 1)
