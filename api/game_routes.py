"""
BINGO47 — Game API

JSON routes over a BingoSession. Every intent answers with the fresh
state snapshot so a client can redraw from a single response; refused
intents (round already running, not enough credits, ...) come back as
409 with ok=false rather than as errors.

The session lives in app.extensions["bingo_session"] (see web_app.create_app).
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from config.bingo_schema import UserSettings
from sim_engine.bingo.engine import MarkResult
from sim_engine.bingo.payout import payout_table

logger = logging.getLogger("bingo47.api")

game_bp = Blueprint("game", __name__, url_prefix="/api/game")


def _session():
    return current_app.extensions["bingo_session"]


def _state(ok: bool = True, status: int = 200, **extra):
    body = {"ok": ok, **extra, "state": _session().snapshot()}
    return jsonify(body), status


def _refused(reason: str):
    return _state(ok=False, status=409, error=reason)


# ═══════════════════════════════════════════════
# Round
# ═══════════════════════════════════════════════

@game_bp.route("/state")
def state():
    return _state()


@game_bp.route("/round", methods=["POST"])
def begin_round():
    if not _session().begin_round():
        return _refused("Round could not start")
    return _state()


@game_bp.route("/mark", methods=["POST"])
def mark_space():
    data = request.get_json(silent=True) or {}
    space_id = data.get("space_id")
    card_id = data.get("card_id")
    if not space_id or not card_id:
        return jsonify({"error": "space_id and card_id required"}), 400
    result = _session().mark_space(str(space_id), card_id)
    ok = result in (MarkResult.ACCEPTED, MarkResult.DUPLICATE)
    return _state(ok=ok, result=result.value)


@game_bp.route("/bet/toggle", methods=["POST"])
def toggle_bet():
    if not _session().toggle_bet_multiplier():
        return _refused("Bet can't change during a round")
    return _state()


@game_bp.route("/bet/lower", methods=["POST"])
def lower_bet():
    if not _session().lower_bet_to_max_possible():
        return _refused("Bet can't change during a round")
    return _state()


@game_bp.route("/suspend", methods=["POST"])
def suspend():
    _session().on_background()
    return _state()


@game_bp.route("/resume", methods=["POST"])
def resume():
    _session().on_foreground()
    return _state()


# ═══════════════════════════════════════════════
# Cards
# ═══════════════════════════════════════════════

@game_bp.route("/cards/new", methods=["POST"])
def new_card():
    data = request.get_json(silent=True) or {}
    try:
        count = int(data.get("count", 1))
    except (TypeError, ValueError):
        return jsonify({"error": "count must be an integer"}), 400
    if not _session().generate_new_card(count):
        return _refused("Cards can't change during a round")
    return _state()


@game_bp.route("/favorites", methods=["GET"])
def list_favorites():
    return jsonify({"favorites": [c.to_dict() for c in _session().favorites]})


@game_bp.route("/favorites", methods=["POST"])
def add_favorite():
    data = request.get_json(silent=True) or {}
    sess = _session()
    card = sess.engine.card_by_id(data.get("card_id", ""))
    if card is None:
        return jsonify({"error": "Unknown card"}), 404
    added = sess.favorite_card(card)
    return _state(ok=added)


@game_bp.route("/favorites/<card_id>", methods=["DELETE"])
def remove_favorite(card_id):
    if not _session().remove_favorite(card_id):
        return jsonify({"error": "Not a favorite"}), 404
    return _state()


@game_bp.route("/favorites/<card_id>/play", methods=["POST"])
def play_favorite(card_id):
    sess = _session()
    card = next((c for c in sess.favorites if str(c.id) == card_id), None)
    if card is None:
        return jsonify({"error": "Not a favorite"}), 404
    if not sess.set_cards([card]):
        return _refused("Cards can't change during a round")
    return _state()


# ═══════════════════════════════════════════════
# Credits, store & bonus draws
# ═══════════════════════════════════════════════

@game_bp.route("/credits/refill", methods=["POST"])
def refill_credits():
    _session().reset_credits()
    return _state()


@game_bp.route("/products")
def products():
    return jsonify({"products": [p.to_dict() for p in _session().fetch_products()]})


@game_bp.route("/purchase", methods=["POST"])
def purchase():
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not product_id:
        return jsonify({"error": "product_id required"}), 400
    if not _session().purchase_credits(product_id):
        return _refused("Purchase not completed")
    return _state()


@game_bp.route("/bonus/accept", methods=["POST"])
def accept_bonus():
    granted = _session().accept_bonus_offer()
    if not granted:
        return _refused("No bonus offer available")
    return _state(granted=granted)


@game_bp.route("/payouts")
def payouts():
    sess = _session()
    if "multiplier" not in request.args:
        multiplier = sess.engine.bet_multiplier
    else:
        multiplier = request.args.get("multiplier", type=int)
        if multiplier not in sess.variant.bet_multipliers:
            return jsonify({"error": f"multiplier must be one of {sess.variant.bet_multipliers}"}), 400
    rows = payout_table(multiplier, sess.variant)
    return jsonify({"bet_multiplier": multiplier, "rows": [r.to_dict() for r in rows]})


@game_bp.route("/jackpots")
def jackpots():
    ledger = _session().ledger
    return jsonify({"jackpots": {str(m): c for m, c in ledger.counts().items()}})


# ═══════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════

@game_bp.route("/settings", methods=["GET"])
def get_settings():
    return jsonify(_session().settings.model_dump(mode="json"))


@game_bp.route("/settings", methods=["POST"])
def update_settings():
    data = request.get_json(silent=True) or {}
    sess = _session()
    unknown = set(data) - set(UserSettings.model_fields)
    if unknown:
        return jsonify({"error": f"Unknown settings: {sorted(unknown)}"}), 400
    try:
        sess.update_settings(**data)
    except ValidationError as e:
        messages = [err["msg"] for err in e.errors()]
        logger.info(f"Rejected settings update: {messages}")
        return jsonify({"error": "Invalid settings", "detail": messages}), 400
    return _state()


@game_bp.route("/mode", methods=["POST"])
def select_mode():
    data = request.get_json(silent=True) or {}
    _session().select_game_mode(bool(data.get("classic", True)))
    return _state()
