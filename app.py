import os
import time
import atexit
import logging
from datetime import datetime, timezone

from flask import Flask, Response, jsonify, request, g
from werkzeug.exceptions import HTTPException

from scoresquare import config
from scoresquare.identity_resolver import IdentityResolver
from scoresquare.leaderboard import share_text, summarize
from scoresquare.leaderboard_cache import ResultCache, SQLiteStore
from scoresquare.ledger_client import GameLedgerClient
from scoresquare.pipeline import LeaderboardService

# ── Logging config (controlled by env LOG_LEVEL) ─────────────────────────────
LOG_LEVEL_NAME = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.INFO)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)

SAFE_PATHS = {"/healthz", "/robots.txt", "/favicon.ico"}


def build_service() -> LeaderboardService:
    """One service per process: ledger, resolver and the SQLite-backed cache."""
    cache = ResultCache(SQLiteStore(config.DATABASE))
    return LeaderboardService(GameLedgerClient(), IdentityResolver(), cache)


def _caller_fid():
    fid = request.headers.get("X-Fid")
    if fid is None:
        body = request.get_json(silent=True) or {}
        fid = body.get("fid")
    return fid


def create_app(service: LeaderboardService | None = None) -> Flask:
    app = Flask(__name__)
    app.logger.setLevel(LOG_LEVEL)
    logging.getLogger("werkzeug").setLevel(LOG_LEVEL)

    state = {"service": service}

    def get_service() -> LeaderboardService:
        if state["service"] is None:
            state["service"] = build_service()
            atexit.register(state["service"].shutdown)
        return state["service"]

    @app.errorhandler(Exception)
    def handle_uncaught(e):
        if isinstance(e, HTTPException):
            return e
        app.logger.exception("Unhandled exception")
        return ("Internal Server Error", 500)

    @app.before_request
    def before_every_request():
        g.t0 = time.perf_counter()

    @app.after_request
    def after_every_request(resp):
        if request.path not in SAFE_PATHS and hasattr(g, "t0"):
            app.logger.debug("%s %s -> %s in %.1fms", request.method, request.path,
                             resp.status_code, (time.perf_counter() - g.t0) * 1000)
        return resp

    @app.get("/healthz")
    def healthz():
        return "ok", 200

    @app.get("/robots.txt")
    def robots():
        return Response(
            "User-agent: *\n"
            "Disallow: /leaderboard\n",
            mimetype="text/plain"
        )

    @app.get("/leaderboard")
    def leaderboard():
        view = get_service().get_leaderboard()
        entries = [dict(e.to_dict(), shareText=share_text(e)) for e in view.entries]

        computed_at = None
        if view.snapshot is not None:
            computed_at = datetime.fromtimestamp(
                view.snapshot.computed_at, timezone.utc).isoformat()

        app.logger.info("[leaderboard] status=%s players=%d", view.status, len(entries))
        body = {
            "allPlayers": entries,
            "summary": summarize(view.entries),
            "status": view.status,
            "message": view.message,
            "computedAt": computed_at,
        }
        code = 503 if view.status == "unavailable" else 200
        return jsonify(body), code

    @app.post("/leaderboard/invalidate")
    def invalidate_leaderboard():
        # Same answer for everyone; only privileged FIDs actually clear anything.
        get_service().invalidate(_caller_fid())
        return jsonify({"ok": True}), 202

    return app


app = create_app()


if __name__ == "__main__":
    debug_flag = os.environ.get("FLASK_DEBUG", "0") in ("1", "true", "True")
    app.run(debug=debug_flag)

# LOG_LEVEL=DEBUG python3 app.py
# SCORESQUARE_DEV_FIXTURES=1 NEYNAR_API_KEY=... python3 app.py
# curl -sS http://127.0.0.1:5000/leaderboard
# curl -sS -X POST -H "X-Fid: 4163" http://127.0.0.1:5000/leaderboard/invalidate
