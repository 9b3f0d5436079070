"""
BINGO47 — Web Server

Serves the game API (api/game_routes.py) and a small playable page.

    python web_app.py                      # http://localhost:5000
    gunicorn 'web_app:create_app()'
"""
import html, logging, os

from flask import Flask, jsonify, request
from werkzeug.middleware.proxy_fix import ProxyFix
from dotenv import load_dotenv

load_dotenv()

from config.settings import DB_PATH, DEFAULT_VARIANT, LOG_LEVEL, SCHEDULER_MODE

# ── Structured logging ──
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("bingo47")

from api.game_routes import game_bp
from config.database import GameDatabase
from sim_engine.bingo import get_variant
from sim_engine.bingo.clock import ManualScheduler, ThreadingScheduler
from tools.bingo_providers import LocalAdProvider, LocalPurchaseProvider
from tools.bingo_session import BingoSession

_esc = html.escape


def build_session() -> BingoSession:
    """Session from environment config. Demo store and ads complete instantly."""
    scheduler = ManualScheduler() if SCHEDULER_MODE == "manual" else ThreadingScheduler()
    return BingoSession(
        GameDatabase(DB_PATH),
        get_variant(DEFAULT_VARIANT),
        scheduler,
        purchases=LocalPurchaseProvider(),
        ads=LocalAdProvider(),
    )


def create_app(session: BingoSession = None) -> Flask:
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)
    app.extensions["bingo_session"] = session or build_session()
    app.register_blueprint(game_bp)
    logger.info(f"Registered game API at /api/game ({app.extensions['bingo_session'].variant.name})")

    @app.route("/health")
    def health_check():
        """Health check — verifies the database is responsive."""
        try:
            app.extensions["bingo_session"].db.has("userCredits")
            return jsonify({"status": "ok"}), 200
        except Exception as e:
            return jsonify({"status": "error", "detail": str(e)}), 503

    @app.route("/")
    def index():
        variant = app.extensions["bingo_session"].variant
        return INDEX_HTML.replace("%%TITLE%%", _esc(variant.display_name or variant.name))

    @app.errorhandler(404)
    def error_404(e):
        if request.path.startswith("/api/"):
            return jsonify({"error": "Not found"}), 404
        return "<h2>404</h2><p><a href='/'>Play</a></p>", 404

    @app.errorhandler(500)
    def error_500(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    return app


INDEX_HTML = """<!doctype html>
<html><head><meta charset="utf-8"><title>%%TITLE%%</title>
<style>
body{font-family:system-ui;background:#111;color:#eee;text-align:center}
.card{display:inline-grid;gap:6px;margin:16px}
.cell{width:64px;height:64px;border-radius:50%;border:2px solid #555;background:#222;color:#eee;font-size:20px}
.cell.marked{background:#c33}.cell.bingo{box-shadow:0 0 12px gold}
button.act{margin:4px;padding:8px 16px}
</style></head>
<body>
<h1>%%TITLE%%</h1>
<div id="info"></div><div id="cards"></div>
<button class="act" onclick="post('/round')">Play</button>
<button class="act" onclick="post('/bet/toggle')">Bet</button>
<button class="act" onclick="post('/cards/new')">New card</button>
<button class="act" onclick="post('/bonus/accept')">Bonus draws</button>
<button class="act" onclick="post('/credits/refill')">Free credits</button>
<script>
const API = '/api/game';
let state = null;
async function post(path, body) {
  const r = await fetch(API + path, {method: 'POST', headers: {'Content-Type': 'application/json'},
                                      body: JSON.stringify(body || {})});
  render((await r.json()).state);
}
async function refresh() { render((await (await fetch(API + '/state')).json()).state); }
function render(s) {
  if (!s) return;
  state = s;
  document.getElementById('info').textContent =
    `Credits ${s.credits} · Bet ${s.bet} · Called ${s.called_spaces.join(' ')} · ` +
    `Won ${s.winnings} · Jackpot ${s.jackpot_count}` + (s.is_last_call ? ` · LAST CALL ${s.last_call_seconds_remaining}` : '');
  const root = document.getElementById('cards');
  root.innerHTML = '';
  for (const card of s.cards) {
    const grid = document.createElement('div');
    grid.className = 'card';
    grid.style.gridTemplateColumns = `repeat(${card.columns}, 64px)`;
    for (const sp of card.spaces) {
      const b = document.createElement('button');
      b.className = 'cell' + (card.marked.includes(sp.id) ? ' marked' : '') +
                    (card.bingo_spaces.includes(sp.id) ? ' bingo' : '');
      b.textContent = sp.label;
      b.onclick = () => post('/mark', {space_id: sp.id, card_id: card.id});
      grid.appendChild(b);
    }
    root.appendChild(grid);
  }
}
setInterval(refresh, 500);
refresh();
</script></body></html>
"""


if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("PORT", 5000))
    logger.info(f"BINGO47 — http://localhost:{port}")
    app.run(debug=os.getenv("FLASK_DEBUG", "false").lower() == "true", host="0.0.0.0", port=port)
