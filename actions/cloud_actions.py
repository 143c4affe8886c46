from __future__ import annotations

import logging

from actions.helpers import extension
from auth import AuthContext
from services.cloud_store import (
    check_cloud_config,
    clear_cloud_config,
    load_cloud_config,
    parse_cloud_config,
    save_cloud_config,
)
from utils import ApiError


_log = logging.getLogger("cloud")


def _local():
    local = extension("local_store")
    if local is None:
        raise ApiError("INTERNAL", "Local storage is not initialized")
    return local


def cloud_status(data, auth: AuthContext | None, state, cfg):
    stored = load_cloud_config(_local())
    return {
        "mode": state.mode,
        "enabled": state.is_cloud_enabled,
        "cloudError": state.cloud_error,
        "storageError": state.storage_error,
        "configured": bool(cfg.FIRESTORE_PROJECT_ID) or stored is not None,
        "projectId": cfg.FIRESTORE_PROJECT_ID or (stored.project_id if stored else ""),
    }


def cloud_sync(data, auth: AuthContext | None, state, cfg):
    if not state.is_cloud_enabled:
        raise ApiError("CONFLICT", "Cloud sync is not enabled")
    state.clear_cloud_error()
    ok = state.sync_local_to_cloud(wait=True)
    if not ok:
        raise ApiError("INTERNAL", state.cloud_error or "Cloud sync failed")
    return {"synced": True}


def cloud_config_test(data, auth: AuthContext | None, state, cfg):
    return check_cloud_config((data or {}).get("config"))


def cloud_config_save(data, auth: AuthContext | None, state, cfg):
    raw = (data or {}).get("config")
    res = check_cloud_config(raw)
    if not res.get("success"):
        raise ApiError("BAD_REQUEST", res.get("error") or "Invalid Configuration object.")
    config = parse_cloud_config(raw)
    save_cloud_config(_local(), config)
    _log.info("cloud configuration saved project=%s", config.project_id)
    return {"saved": True, "restartRequired": True}


def cloud_config_clear(data, auth: AuthContext | None, state, cfg):
    clear_cloud_config(_local())
    _log.info("cloud configuration cleared")
    return {"cleared": True, "restartRequired": True}
