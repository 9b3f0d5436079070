"""
BINGO47 — Round State Machine

    IDLE ──begin_round──▶ ACTIVE ──draw exhausted──▶ LAST_CALL ──expiry──▶ IDLE
                            │                           │
                            └──all called spaces marked─┴──────────────────▶ IDLE

The engine owns the round and every card mark. It is driven from outside
by intents (begin_round, mark_space, toggle_bet_multiplier, ...) and by
timer ticks from an injected Scheduler; state changes are published as
GameEvents to subscribers. Each timer callback carries the epoch of the
round that scheduled it and is dropped once that round is gone.

Usage:
    engine = BingoEngine(variant, ledger, ManualScheduler(), cards=[card], credits=500)
    engine.subscribe(lambda ev: print(ev.kind, ev.data))
    engine.begin_round()
    engine.scheduler.advance(2.0)     # one call at normal speed
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from config.bingo_schema import GameVariant, UserSettings
from sim_engine.bingo.bonus import BonusOfferScheduler
from sim_engine.bingo.cards import Card, Space
from sim_engine.bingo.clock import Scheduler, TimerHandle
from sim_engine.bingo.draw import generate_draw_order
from sim_engine.bingo.jackpot import JackpotLedger
from sim_engine.bingo.patterns import count_bingos, is_part_of_bingo, winning_spaces
from sim_engine.bingo.payout import PayoutRow, payout_table, winnings_for

logger = logging.getLogger("bingo47.engine")

LAST_CALL_TICK_SECONDS = 1.0


class RoundPhase(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    LAST_CALL = "last_call"


class MarkResult(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"          # already marked; nothing changes
    REJECTED = "rejected"            # not called and not free
    NOT_ON_CARD = "not_on_card"      # called, but this card doesn't have it
    IGNORED = "ignored"              # no round in play, or unknown card


@dataclass
class GameEvent:
    kind: str
    data: dict = field(default_factory=dict)


@dataclass
class RoundState:
    """Ephemeral data for one round. Kept readable after finalize until the next round."""
    epoch: int = 0
    phase: RoundPhase = RoundPhase.IDLE
    bet: int = 0
    bet_multiplier: int = 1
    spaces_to_reveal: int = 0
    draw_queue: list = field(default_factory=list)
    called_spaces: list = field(default_factory=list)
    called_set: set = field(default_factory=set)
    current_space: Optional[Space] = None
    winnings: int = 0
    bingo_count: int = 0
    last_call_seconds_remaining: int = 0
    jackpot_claimed: bool = False

    @property
    def is_active(self) -> bool:
        return self.phase != RoundPhase.IDLE

    @property
    def is_last_call(self) -> bool:
        return self.phase == RoundPhase.LAST_CALL


class BingoEngine:
    """Round state machine plus the credits and bet it plays with."""

    def __init__(
        self,
        variant: GameVariant,
        ledger: JackpotLedger,
        scheduler: Scheduler,
        cards: Optional[list[Card]] = None,
        credits: int = 0,
        bet_multiplier: int = 1,
        settings: Optional[UserSettings] = None,
        bonus: Optional[BonusOfferScheduler] = None,
        rng: Optional[random.Random] = None,
        reward_available: Optional[Callable[[], bool]] = None,
    ):
        self.variant = variant
        self.ledger = ledger
        self.scheduler = scheduler
        self.rng = rng or random.Random()
        self.settings = settings or UserSettings()
        self.bonus = bonus or BonusOfferScheduler(variant.bonus, self.rng)
        self.reward_available = reward_available or (lambda: False)

        self.cards: list[Card] = list(cards or [])
        self.credits = credits
        self.bet_multiplier = bet_multiplier if bet_multiplier in variant.bet_multipliers \
            else variant.bet_multipliers[0]
        self.pending_bonus_draws = 0
        self.games_played = 0
        self.total_bingos = 0

        self.round = RoundState()
        self.payout_table: list[PayoutRow] = payout_table(self.bet_multiplier, variant)
        self.draw_pool = [Space(label) for label in variant.labels]

        self._lock = threading.RLock()
        self._listeners: list[Callable[[GameEvent], None]] = []
        self._reveal_timer: Optional[TimerHandle] = None
        self._last_call_timer: Optional[TimerHandle] = None

    # ── Events ──

    def subscribe(self, callback: Callable[[GameEvent], None]) -> Callable[[], None]:
        """Register a listener. Returns a function that unregisters it."""
        self._listeners.append(callback)

        def _unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return _unsubscribe

    def _emit(self, kind: str, **data):
        event = GameEvent(kind, data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener failed on {kind}")

    @property
    def bet(self) -> int:
        return self.variant.bet_for(self.bet_multiplier)

    # ═══════════════════════════════════════════════════════════
    # Intents
    # ═══════════════════════════════════════════════════════════

    def begin_round(self) -> bool:
        """Debit the bet and start calling spaces. False (no state change) if not allowed."""
        with self._lock:
            if self.round.is_active:
                self._emit("round_rejected", reason="round_in_progress")
                return False
            bet = self.bet
            if self.credits < bet:
                logger.info(f"Round refused: {self.credits} credits < bet {bet}")
                self._emit("round_rejected", reason="insufficient_credits",
                           bet=bet, credits=self.credits)
                return False
            if not self.cards:
                self._emit("round_rejected", reason="no_cards")
                return False

            self.credits -= bet
            self._reset_round()
            requested = self.variant.default_draws + self.pending_bonus_draws
            self.pending_bonus_draws = 0

            r = self.round
            r.bet = bet
            r.bet_multiplier = self.bet_multiplier
            r.draw_queue = generate_draw_order(self.draw_pool, requested, self.rng)
            r.spaces_to_reveal = len(r.draw_queue)
            r.phase = RoundPhase.ACTIVE

            logger.info(f"Round {r.epoch} started: bet {bet}, {r.spaces_to_reveal} draws")
            self._emit("credits_changed", credits=self.credits)
            self._emit("round_started", epoch=r.epoch, bet=bet,
                       bet_multiplier=r.bet_multiplier, spaces_to_reveal=r.spaces_to_reveal)

            epoch = r.epoch
            self._reveal_timer = self.scheduler.schedule_repeating(
                self.settings.game_speed.interval,
                lambda: self._on_reveal_tick(epoch),
            )
            return True

    def mark_space(self, space_id: str, card_id) -> MarkResult:
        with self._lock:
            r = self.round
            if not r.is_active:
                return MarkResult.IGNORED
            card = self.card_by_id(card_id)
            if card is None:
                return MarkResult.IGNORED

            space = card.space_by_id(space_id) or Space(space_id)
            if not space.is_free_space and space not in r.called_set:
                self._emit("mark_rejected", card_id=str(card.id), space_id=space_id)
                return MarkResult.REJECTED

            result = self._apply_mark(space, card, source="player")
            if r.is_last_call and not self.has_unmarked_called_spaces():
                logger.info(f"Last call cleared with {r.last_call_seconds_remaining}s left")
                self._finalize()
            return result

    def toggle_bet_multiplier(self) -> bool:
        """Step to the next rung of the bet ladder. Only between rounds."""
        with self._lock:
            if self.round.is_active:
                return False
            ladder = self.variant.bet_multipliers
            if self.bet_multiplier in ladder:
                nxt = ladder[(ladder.index(self.bet_multiplier) + 1) % len(ladder)]
            else:
                nxt = ladder[0]
            self._set_bet_multiplier(nxt)
            return True

    def lower_bet_to_max_possible(self) -> bool:
        """Drop to the largest multiplier the current credits can cover."""
        with self._lock:
            if self.round.is_active:
                return False
            affordable = [m for m in self.variant.bet_multipliers if self.variant.bet_for(m) <= self.credits]
            self._set_bet_multiplier(max(affordable) if affordable else self.variant.bet_multipliers[0])
            return True

    def set_cards(self, cards: list[Card]) -> bool:
        with self._lock:
            if self.round.is_active or not cards:
                return False
            self._reset_round()
            self.cards = list(cards)
            self._emit("cards_changed", card_ids=[str(c.id) for c in self.cards])
            return True

    def add_credits(self, amount: int):
        with self._lock:
            self.credits += amount
            self._emit("credits_changed", credits=self.credits)

    def set_credits(self, amount: int):
        with self._lock:
            self.credits = amount
            self._emit("credits_changed", credits=self.credits)

    def accept_bonus_offer(self) -> Optional[int]:
        """Take the live offer off the table. The draws are granted separately."""
        with self._lock:
            size = self.bonus.accept()
            if size is not None:
                self._emit("bonus_offer_changed", offer=None)
            return size

    def grant_bonus_draws(self, count: int):
        with self._lock:
            self.pending_bonus_draws += count
            self._emit("bonus_draws_granted", count=count, pending=self.pending_bonus_draws)

    def reset(self):
        """Abandon any round in play. Pending timer callbacks become stale."""
        with self._lock:
            self._reset_round()

    # ── App lifecycle ──

    def suspend(self):
        """Pause both timers, keeping the time left until their next tick."""
        with self._lock:
            for timer in (self._reveal_timer, self._last_call_timer):
                if timer is not None and timer.active:
                    timer.pause()
            logger.debug("Engine suspended")

    def resume(self):
        with self._lock:
            for timer in (self._reveal_timer, self._last_call_timer):
                if timer is not None and timer.active:
                    timer.resume()
            logger.debug("Engine resumed")

    # ═══════════════════════════════════════════════════════════
    # Timer callbacks
    # ═══════════════════════════════════════════════════════════

    def _on_reveal_tick(self, epoch: int):
        with self._lock:
            r = self.round
            if epoch != r.epoch or r.phase != RoundPhase.ACTIVE:
                return
            self._reveal_next()
            if len(r.called_spaces) >= r.spaces_to_reveal:
                self._end_draw()

    def _on_last_call_tick(self, epoch: int):
        with self._lock:
            r = self.round
            if epoch != r.epoch or r.phase != RoundPhase.LAST_CALL:
                return
            r.last_call_seconds_remaining = max(0, r.last_call_seconds_remaining - 1)
            self._emit("last_call_tick", seconds_remaining=r.last_call_seconds_remaining)
            if r.last_call_seconds_remaining == 0:
                self._end_last_call()

    # ═══════════════════════════════════════════════════════════
    # Transitions
    # ═══════════════════════════════════════════════════════════

    def _reveal_next(self):
        r = self.round
        if not r.draw_queue:
            return
        space = r.draw_queue.pop(0)
        r.called_spaces.append(space)
        r.called_set.add(space)
        r.current_space = space
        self._emit("space_called", space_id=space.id, label=space.label,
                   called_count=len(r.called_spaces), spaces_to_reveal=r.spaces_to_reveal)
        if self.settings.auto_mark:
            for card in self.cards:
                self._apply_mark(space, card, source="auto")

    def _apply_mark(self, space: Space, card: Card, source: str) -> MarkResult:
        r = self.round
        if not card.contains(space):
            return MarkResult.NOT_ON_CARD
        if not card.mark(space):
            return MarkResult.DUPLICATE

        previous = r.bingo_count
        self._recompute_winnings()
        self._emit("space_marked", card_id=str(card.id), space_id=space.id, source=source,
                   bingo_count=r.bingo_count, winnings=r.winnings)

        if self.variant.bonus_label is not None and space.id == self.variant.bonus_label:
            count = self.ledger.credit(r.bet_multiplier)
            self._emit("jackpot_credited", bet_multiplier=r.bet_multiplier, count=count)
        if r.bingo_count > previous:
            self._emit("bingo", bingo_count=r.bingo_count, winnings=r.winnings)
        return MarkResult.ACCEPTED

    def _recompute_winnings(self):
        r = self.round
        r.bingo_count = sum(count_bingos(c, self.variant.patterns) for c in self.cards)
        r.winnings = winnings_for(r.bingo_count, r.bet_multiplier, self.variant)

    def _end_draw(self):
        self._cancel(self._reveal_timer)
        self._reveal_timer = None
        if self.has_unmarked_called_spaces():
            self._start_last_call()
        else:
            self._finalize()

    def _start_last_call(self):
        r = self.round
        r.phase = RoundPhase.LAST_CALL
        r.last_call_seconds_remaining = self.variant.last_call_seconds
        self._emit("last_call_started", seconds_remaining=r.last_call_seconds_remaining,
                   unmarked=len(self.unmarked_called_spaces()))
        epoch = r.epoch
        self._last_call_timer = self.scheduler.schedule_repeating(
            LAST_CALL_TICK_SECONDS, lambda: self._on_last_call_tick(epoch),
        )

    def _end_last_call(self):
        self._cancel(self._last_call_timer)
        self._last_call_timer = None
        if self.settings.graceful_bingos:
            for card, space in self.unmarked_called_spaces():
                self._apply_mark(space, card, source="graceful")
        self._finalize()

    def _finalize(self):
        r = self.round
        if r.phase == RoundPhase.IDLE:
            return
        self._cancel_timers()

        if not r.jackpot_claimed and self.cards and all(c.is_blackout for c in self.cards):
            claim = self.ledger.claim(r.bet_multiplier)
            r.jackpot_claimed = True
            self.credits += claim.amount
            self._emit("jackpot_won", amount=claim.amount, count=claim.count,
                       bet_multiplier=claim.bet_multiplier)

        self.credits += r.winnings
        r.phase = RoundPhase.IDLE
        self.games_played += 1
        self.total_bingos += r.bingo_count

        rules = self.variant.bonus
        if self.bonus.offer is None and self.rng.randint(1, 100) <= rules.free_draw_chance:
            free = self.rng.choice(rules.free_draw_sizes)
            self.pending_bonus_draws += free
            self._emit("bonus_draws_granted", count=free, pending=self.pending_bonus_draws)
        previous_offer = self.bonus.offer
        offer = self.bonus.on_round_completed(self.reward_available())
        if offer != previous_offer:
            self._emit("bonus_offer_changed", offer=offer)

        logger.info(f"Round {r.epoch} finalized: {r.bingo_count} bingos, won {r.winnings}")
        self._emit("round_finalized", epoch=r.epoch, winnings=r.winnings,
                   bingo_count=r.bingo_count, jackpot_claimed=r.jackpot_claimed,
                   credits=self.credits)
        self._emit("credits_changed", credits=self.credits)

    def _reset_round(self):
        self._cancel_timers()
        self.round = RoundState(epoch=self.round.epoch + 1)
        for card in self.cards:
            card.clear_marks()

    def _set_bet_multiplier(self, multiplier: int):
        self._reset_round()
        self.bet_multiplier = multiplier
        self.payout_table = payout_table(multiplier, self.variant)
        self._emit("bet_changed", bet_multiplier=multiplier, bet=self.bet,
                   jackpot_count=self.ledger.count(multiplier))

    def _cancel_timers(self):
        self._cancel(self._reveal_timer)
        self._cancel(self._last_call_timer)
        self._reveal_timer = None
        self._last_call_timer = None

    @staticmethod
    def _cancel(timer: Optional[TimerHandle]):
        if timer is not None:
            timer.cancel()

    # ═══════════════════════════════════════════════════════════
    # Queries
    # ═══════════════════════════════════════════════════════════

    def card_by_id(self, card_id) -> Optional[Card]:
        key = str(card_id)
        for card in self.cards:
            if str(card.id) == key:
                return card
        return None

    def unmarked_called_spaces(self) -> list[tuple[Card, Space]]:
        called = self.round.called_set
        return [
            (card, s)
            for card in self.cards
            for s in card.spaces
            if s in called and not s.is_free_space and s not in card.marked_spaces
        ]

    def has_unmarked_called_spaces(self) -> bool:
        return bool(self.unmarked_called_spaces())

    def has_space_been_called(self, space_id: str) -> bool:
        return self.round.is_active and Space(space_id) in self.round.called_set

    def is_part_of_bingo(self, space: Space, card: Card) -> bool:
        return is_part_of_bingo(space, card, self.variant.patterns)

    @property
    def bonus_space_marked(self) -> bool:
        label = self.variant.bonus_label
        return label is not None and any(Space(label) in c.marked_spaces for c in self.cards)

    def snapshot(self) -> dict:
        """Read-only view of everything the presentation layer draws."""
        with self._lock:
            r = self.round
            return {
                "phase": r.phase.value,
                "epoch": r.epoch,
                "variant": self.variant.name,
                "credits": self.credits,
                "bet": self.bet,
                "bet_multiplier": self.bet_multiplier,
                "called_spaces": [s.id for s in r.called_spaces],
                "current_space": r.current_space.id if r.current_space else None,
                "spaces_to_reveal": r.spaces_to_reveal,
                "draws_remaining": len(r.draw_queue),
                "winnings": r.winnings,
                "bingo_count": r.bingo_count,
                "is_last_call": r.is_last_call,
                "last_call_seconds_remaining": r.last_call_seconds_remaining,
                "cards": [
                    {
                        **card.to_dict(),
                        "marked": sorted(s.id for s in card.marked_spaces),
                        "bingo_spaces": sorted(s.id for s in winning_spaces(card, self.variant.patterns)),
                    }
                    for card in self.cards
                ],
                "payout_table": [row.to_dict() for row in self.payout_table],
                "jackpot_count": self.ledger.count(self.bet_multiplier),
                "show_jackpot": not r.is_active or self.bonus_space_marked,
                "pending_bonus_draws": self.pending_bonus_draws,
                "bonus_offer": self.bonus.snapshot(),
                "games_played": self.games_played,
                "total_bingos": self.total_bingos,
            }
