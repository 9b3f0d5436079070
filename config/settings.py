"""
BINGO47 — Configuration & Persisted Setting Keys

Environment-driven runtime config (loaded from .env) plus the key names
used for every value the game persists between launches.

    BINGO_DB_PATH     SQLite file for credits, cards, settings, jackpots
    BINGO_VARIANT     Card/payout variant to play ("bonus" or "classic")
    BINGO_SCHEDULER   "threading" (real timers) or "manual" (virtual clock)
    LOG_LEVEL         Root log level for web_app / CLI
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent.parent

DB_PATH = os.getenv("BINGO_DB_PATH", "bingo47.db")
DEFAULT_VARIANT = os.getenv("BINGO_VARIANT", "bonus")
SCHEDULER_MODE = os.getenv("BINGO_SCHEDULER", "threading")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


# ============================================================
# Persisted value keys
#
# Names match what earlier builds of the game wrote, so an
# imported save keeps working.
# ============================================================

class StorageKeys:
    CREDITS = "userCredits"
    BET_MULTIPLIER = "betMultiplier"
    SAVED_CARDS = "savedBingoCards"
    FAVORITE_CARDS = "favoriteBingoCards"
    GAMES_PLAYED = "numberOfGamesPlayed"
    BINGOS = "numberOfBingos"
    LEGACY_JACKPOT = "jackpotStorage"   # string-keyed dict, migrated into jackpot_ledger


class GameSettingsKeys:
    AUTO_MARK = "autoMark"
    SPEAK_SPACES = "speakSpaces"
    GAME_SPEED = "gameSpeed"
    VIBRATION_ENABLED = "vibrationEnabled"
    GRACEFUL_BINGOS = "gracefulBingos"
    HAS_SEEN_GAME_MODE_SELECTION = "hasSeenGameModeSelection"
    BINGO_SPACE_COLOR = "bingoSpaceColorChoice"
    DAUBER_COLOR = "dauberColorChoice"

    # UserSettings field → persisted key
    FIELD_MAP = {
        "auto_mark": AUTO_MARK,
        "speak_spaces": SPEAK_SPACES,
        "game_speed": GAME_SPEED,
        "vibration_enabled": VIBRATION_ENABLED,
        "graceful_bingos": GRACEFUL_BINGOS,
        "has_seen_game_mode_selection": HAS_SEEN_GAME_MODE_SELECTION,
        "bingo_space_color": BINGO_SPACE_COLOR,
        "dauber_color": DAUBER_COLOR,
    }
