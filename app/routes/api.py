from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from flask import Blueprint, Response, current_app, g, request
from sqlalchemy.exc import SQLAlchemyError

from actions import dispatch
from auth import AuthContext, assert_permission
from services.backup import backup_filename, dumps_backup, export_backup
from utils import ApiError, err, now_monotonic, ok, parse_json_body, redact_for_audit


api_bp = Blueprint("api", __name__)

_log = logging.getLogger("api")


def _header_token() -> str:
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    return str(request.headers.get("X-Session-Token") or "").strip()


def _client_ip() -> str:
    return str(request.headers.get("X-Forwarded-For", request.remote_addr or "") or "").split(",")[0].strip()


def _internal_message(kind: str, detail: str = "") -> str:
    cfg = current_app.config["CFG"]
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if cfg.IS_PRODUCTION or not detail:
        return f"{kind} (requestId: {request_id})" if request_id else kind
    detail = re.sub(r"\s+", " ", detail).strip()
    if len(detail) > 300:
        detail = detail[:300] + "..."
    return f"{kind}: {detail} (requestId: {request_id})" if request_id else f"{kind}: {detail}"


@api_bp.post("/api")
def api_route():
    cfg = current_app.config["CFG"]
    state = current_app.extensions["app_state"]
    sessions = current_app.extensions["sessions"]
    limiter = current_app.extensions["rate_limiter"]

    raw = request.get_data(as_text=True)
    auth: AuthContext | None = None
    action_u = ""
    data: Any = {}

    try:
        body = parse_json_body(raw)
        action_u = str(body.get("action") or "").upper().strip()
        token = body.get("token") or _header_token()
        data = body.get("data") or {}

        if not action_u:
            raise ApiError("BAD_REQUEST", "Missing action")
        if not isinstance(data, dict):
            raise ApiError("BAD_REQUEST", "data must be a JSON object")
        _log.debug("request_id=%s action=%s data=%s", g.request_id, action_u, redact_for_audit(data))

        if action_u == "LOGIN":
            limiter.check(f"{_client_ip()}:LOGIN", cfg.RATE_LIMIT_LOGIN)

        auth = sessions.validate(token, state)
        assert_permission(auth, action_u)

        out = dispatch(action_u, data, auth, state, cfg)

        latency_ms = int((now_monotonic() - g.start_ts) * 1000)
        _log.info(
            "request_id=%s action=%s user=%s latency_ms=%s",
            g.request_id,
            action_u,
            (auth.userId if auth and auth.valid else "PUBLIC"),
            latency_ms,
        )
        return ok(out)[0]
    except ApiError as e:
        _log.info("request_id=%s action=%s rejected code=%s %s", g.request_id, action_u, e.code, e.message)
        return err(e.code, e.message, http_status=e.http_status)[0], e.http_status
    except SQLAlchemyError as e:
        _log.exception("request_id=%s action=%s", g.request_id, action_u)
        orig = getattr(e, "orig", None)
        api_err = ApiError("INTERNAL", _internal_message("Database error", str(orig or "")), http_status=500)
        return err(api_err.code, api_err.message, http_status=api_err.http_status)[0], api_err.http_status
    except Exception as e:
        _log.exception("request_id=%s action=%s", g.request_id, action_u)
        api_err = ApiError("INTERNAL", _internal_message("Unexpected error", type(e).__name__), http_status=500)
        return err(api_err.code, api_err.message, http_status=api_err.http_status)[0], api_err.http_status


@api_bp.get("/api/export")
def export_route():
    """Download the full backup file."""
    state = current_app.extensions["app_state"]
    sessions = current_app.extensions["sessions"]

    token = _header_token() or str(request.args.get("token") or "").strip()
    try:
        auth = sessions.validate(token, state)
        assert_permission(auth, "BACKUP_EXPORT")
    except ApiError as e:
        return err(e.code, e.message, http_status=e.http_status)[0], e.http_status

    now = datetime.now(timezone.utc)
    payload = dumps_backup(export_backup(state, now))
    _log.info("request_id=%s backup download user=%s", g.request_id, auth.userId)
    return Response(
        payload,
        mimetype="application/json",
        headers={"Content-Disposition": f'attachment; filename="{backup_filename(now)}"'},
    )
