from __future__ import annotations

from datetime import datetime, timezone

from auth import AuthContext
from services.backup import backup_filename, export_backup, import_backup, write_backup
from utils import ApiError


def backup_export(data, auth: AuthContext | None, state, cfg):
    now = datetime.now(timezone.utc)
    if bool((data or {}).get("writeToDisk")):
        path = write_backup(state, cfg.BACKUP_DIR, now)
        return {"filename": backup_filename(now), "path": path}
    return {"filename": backup_filename(now), "backup": export_backup(state, now)}


def backup_import(data, auth: AuthContext | None, state, cfg):
    raw = (data or {}).get("backup")
    if raw is None:
        raise ApiError("BAD_REQUEST", "Missing backup")
    return import_backup(state, raw, wait=True)
