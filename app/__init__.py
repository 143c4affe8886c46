from __future__ import annotations

import atexit
import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, request
from flask_cors import CORS

from app.routes.api import api_bp
from app.routes.core import core_bp
from auth import SessionRegistry
from config import Config
from db import make_session_factory
from services.cloud_store import CloudBackend, resolve_cloud_config
from services.local_store import LocalBackend
from state_store import AppState, default_admin_user
from utils import SimpleRateLimiter, err, now_monotonic


def _configure_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_state(cfg: Config, local: LocalBackend) -> AppState:
    """Pick the mode once: cloud when a usable Firestore configuration exists, else local."""
    cloud = None
    cloud_cfg = resolve_cloud_config(cfg, local)
    if cloud_cfg is not None:
        cloud = CloudBackend.from_config(cloud_cfg)
        if cloud is None:
            logging.getLogger("cloud").warning("cloud configuration unusable, falling back to local mode")

    return AppState(
        local=local,
        cloud=cloud,
        admin=default_admin_user(cfg.DEFAULT_ADMIN_USERNAME, cfg.DEFAULT_ADMIN_PASSWORD),
        balance_cache_size=cfg.BALANCE_CACHE_SIZE,
    )


def create_app(cfg: Config | None = None, state: AppState | None = None) -> Flask:
    load_dotenv()
    cfg = cfg or Config()
    cfg.validate()
    _configure_logging(cfg.LOG_LEVEL)

    session_factory = make_session_factory(cfg.DATABASE_URL)
    local = LocalBackend(session_factory)

    if state is None:
        state = build_state(cfg, local)
    state.start()
    atexit.register(state.close)

    app = Flask(__name__)
    app.config["CFG"] = cfg
    app.json.sort_keys = False

    CORS(app, origins=cfg.ALLOWED_ORIGINS, supports_credentials=False)

    app.extensions["app_state"] = state
    app.extensions["local_store"] = local
    app.extensions["db_session_factory"] = session_factory
    app.extensions["sessions"] = SessionRegistry()
    app.extensions["rate_limiter"] = SimpleRateLimiter()

    @app.before_request
    def _before():
        g.request_id = os.urandom(8).hex()
        g.start_ts = now_monotonic()

    @app.after_request
    def _after(resp):
        resp.headers["X-Request-ID"] = str(getattr(g, "request_id", "") or "")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        resp.headers.setdefault("Cache-Control", "no-store")
        return resp

    @app.errorhandler(404)
    def not_found(_e):
        return err(
            "NOT_FOUND",
            f"Unknown endpoint: {request.path}. Use GET /health, and POST /api for actions.",
            http_status=404,
        )

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return err("BAD_REQUEST", "Method not allowed. Use POST /api for actions.", http_status=405)

    app.register_blueprint(core_bp)
    app.register_blueprint(api_bp)

    logging.getLogger("app").info("started mode=%s env=%s version=%s", state.mode, cfg.ENV, cfg.APP_VERSION)
    return app
