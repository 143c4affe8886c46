from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from db import ping_db
from utils import iso_utc_now

core_bp = Blueprint("core", __name__)


def _cloud_ok() -> bool:
    """Cloud mode is healthy while no subscription or write has reported an error."""
    state = current_app.extensions["app_state"]
    if not state.is_cloud_enabled:
        return True
    return state.cloud_error is None


@core_bp.get("/health")
def health():
    """Lightweight health check (process alive)."""
    cfg = current_app.config["CFG"]
    state = current_app.extensions["app_state"]
    return jsonify({
        "status": "ok",
        "time": iso_utc_now(),
        "version": cfg.APP_VERSION,
        "mode": state.mode,
        "balanceCache": state.balance_cache_stats,
    })


@core_bp.get("/ready")
def ready():
    """
    Readiness check for load balancers.
    Checks the local database and, in cloud mode, the Firestore sync state.
    """
    db_ok = ping_db(current_app.extensions.get("db_session_factory"))
    cloud_ok = _cloud_ok()

    cfg = current_app.config["CFG"]
    state = current_app.extensions["app_state"]
    all_ok = db_ok and cloud_ok
    status = 200 if all_ok else 503

    return (
        jsonify({
            "status": "ok" if all_ok else "degraded",
            "time": iso_utc_now(),
            "version": cfg.APP_VERSION,
            "checks": {
                "db": "ok" if db_ok else "error",
                "cloud": "ok" if cloud_ok else "error",
            },
            "cloudError": state.cloud_error,
        }),
        status,
    )


@core_bp.get("/version")
def version():
    cfg = current_app.config["CFG"]
    return jsonify({"version": cfg.APP_VERSION, "env": cfg.ENV, "time": iso_utc_now()})
