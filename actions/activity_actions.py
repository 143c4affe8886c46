from __future__ import annotations

from auth import AuthContext
from entities import encode_document
from utils import ApiError


def activity_logs_list(data, auth: AuthContext | None, state, cfg):
    data = data or {}
    try:
        limit = int(data.get("limit") or 200)
    except (TypeError, ValueError):
        raise ApiError("BAD_REQUEST", "Invalid limit")
    limit = max(1, min(limit, 1000))
    entity_type = str(data.get("entityType") or "").strip()
    action = str(data.get("action") or "").strip().upper()

    logs = state.activity_logs
    if entity_type:
        logs = [e for e in logs if e.entityType == entity_type]
    if action:
        logs = [e for e in logs if e.action == action]
    return {"items": [encode_document(e) for e in logs[:limit]], "total": len(logs)}
