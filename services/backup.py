"""
Full-state export and import.

A backup is one JSON object holding the seven collections plus `exportDate`.
Import replaces every collection present in the file and leaves absent ones
alone. The file is validated as a whole before anything is applied.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import Any

from entities import COLLECTIONS, DocumentError, decode_collection, decode_statuses
from utils import ApiError, to_iso_utc


_log = logging.getLogger("backup")


def export_backup(state, now: datetime | None = None) -> dict[str, Any]:
    out = state.snapshot()
    out["exportDate"] = to_iso_utc(now or datetime.now(timezone.utc))
    return out


def backup_filename(now: datetime | None = None) -> str:
    day = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return f"SPR_Backup_{day}.json"


def dumps_backup(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def write_backup(state, directory: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, backup_filename(now))
    payload = dumps_backup(export_backup(state, now))

    fd, tmp_path = tempfile.mkstemp(prefix=".backup-", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    _log.info("backup written path=%s", path)
    return path


def parse_backup(raw: Any) -> dict[str, list]:
    """Decode a backup document into model lists, keyed by the collections it contains."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8-sig")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ApiError("BAD_REQUEST", f"Backup file is not valid JSON: {e.msg}")
    if not isinstance(raw, dict):
        raise ApiError("BAD_REQUEST", "Backup file must contain a JSON object")

    out: dict[str, list] = {}
    try:
        for name in COLLECTIONS:
            if raw.get(name) is None:
                continue
            if name == "candidateStatuses":
                out[name] = decode_statuses(raw[name])
            else:
                items, _problems = decode_collection(name, raw[name])
                out[name] = items
    except DocumentError as e:
        raise ApiError("BAD_REQUEST", f"Invalid backup file: {e}")

    if not out:
        raise ApiError("BAD_REQUEST", "Backup file contains no known collections")
    return out


def import_backup(state, raw: Any, *, wait: bool = False) -> dict[str, Any]:
    collections = parse_backup(raw)
    cloud_ok = state.restore(collections, wait=wait)
    restored = [name for name in COLLECTIONS if name in collections]
    _log.info("backup imported collections=%s", ",".join(restored))
    return {
        "restored": restored,
        "cloud": state.is_cloud_enabled,
        "cloudUploadOk": cloud_ok if state.is_cloud_enabled else None,
    }
