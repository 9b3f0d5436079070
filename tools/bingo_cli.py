#!/usr/bin/env python3
"""
BINGO47 — Command Line

Usage:
    python -m tools.bingo_cli payouts --multiplier 5
    python -m tools.bingo_cli play --rounds 20 --variant classic --seed 7
    python -m tools.bingo_cli jackpot --db bingo47.db
"""

import argparse
import logging
import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.database import GameDatabase
from config.settings import DB_PATH, DEFAULT_VARIANT, LOG_LEVEL
from sim_engine.bingo import VARIANT_NAMES, get_variant
from sim_engine.bingo.clock import ManualScheduler
from sim_engine.bingo.jackpot import JackpotLedger
from sim_engine.bingo.payout import payout_table
from tools.bingo_session import BingoSession

console = Console()


def cmd_payouts(args):
    variant = get_variant(args.variant)
    table = Table(title=f"{variant.display_name} payouts, bet {variant.bet_for(args.multiplier):,}")
    table.add_column("Bingos", justify="right")
    table.add_column("Win", justify="right", style="green")
    for row in payout_table(args.multiplier, variant):
        table.add_row(str(row.bingo_count), f"{row.win_amount:,}")
    console.print(table)


def cmd_jackpot(args):
    variant = get_variant(args.variant)
    with GameDatabase(args.db) as db:
        ledger = JackpotLedger(db, variant.jackpot)
        counts = ledger.counts()
        table = Table(title="Progressive jackpots")
        table.add_column("Bet", justify="right")
        table.add_column("Count", justify="right")
        table.add_column("Pays", justify="right", style="bold yellow")
        for multiplier in variant.bet_multipliers:
            if args.all or multiplier in counts:
                table.add_row(f"x{multiplier:,}", f"{ledger.count(multiplier):,}",
                              f"{ledger.potential_payout(multiplier):,}")
        console.print(table)


def cmd_play(args):
    variant = get_variant(args.variant)
    scheduler = ManualScheduler()
    session = BingoSession(
        GameDatabase(args.db), variant, scheduler, rng=random.Random(args.seed),
    )
    session.update_settings(auto_mark=True)
    for _ in range(args.multiplier_steps):
        session.toggle_bet_multiplier()

    console.print(Panel(
        f"[bold]{variant.display_name}[/bold]  ·  {args.rounds} rounds  ·  "
        f"bet {session.engine.bet:,}  ·  credits {session.engine.credits:,}",
        title="🎱 Bingo 47 autoplay", border_style="cyan",
    ))

    results = Table()
    for col in ("Round", "Draws", "Bingos", "Won", "Jackpot", "Credits"):
        results.add_column(col, justify="right")

    jackpots = []

    def _on_event(ev):
        if ev.kind == "jackpot_won":
            jackpots.append(ev.data["amount"])

    session.engine.subscribe(_on_event)
    interval = session.settings.game_speed.interval

    for n in range(1, args.rounds + 1):
        if not session.begin_round():
            console.print(f"[yellow]⚠️ Round {n} refused: {session.engine.credits:,} credits, "
                          f"bet {session.engine.bet:,}[/yellow]")
            break
        jackpots.clear()
        # Auto-mark leaves nothing for last call, so the round ends with the draw
        while session.engine.round.is_active:
            scheduler.advance(interval)
        r = session.engine.round
        results.add_row(
            str(n), str(len(r.called_spaces)), str(r.bingo_count), f"{r.winnings:,}",
            f"{sum(jackpots):,}" if jackpots else "", f"{session.engine.credits:,}",
        )
        session.generate_new_card()

    console.print(results)
    console.print(f"[bold]Games played:[/bold] {session.engine.games_played}  "
                  f"[bold]Bingos:[/bold] {session.engine.total_bingos}")
    session.close()


def main():
    parser = argparse.ArgumentParser(description="Bingo 47 tools")
    parser.add_argument("--variant", choices=VARIANT_NAMES, default=DEFAULT_VARIANT)
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("payouts", help="Print the payout table")
    p.add_argument("--multiplier", type=int, default=1)
    p.set_defaults(func=cmd_payouts)

    p = sub.add_parser("play", help="Autoplay rounds on a virtual clock")
    p.add_argument("--rounds", type=int, default=10)
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--db", type=str, default=":memory:")
    p.add_argument("--multiplier-steps", type=int, default=0,
                   help="Step the bet ladder this many times before playing")
    p.set_defaults(func=cmd_play)

    p = sub.add_parser("jackpot", help="Show jackpot counts")
    p.add_argument("--db", type=str, default=DB_PATH)
    p.add_argument("--all", action="store_true", help="Include multipliers never played")
    p.set_defaults(func=cmd_jackpot)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, LOG_LEVEL, logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    args.func(args)


if __name__ == "__main__":
    main()
