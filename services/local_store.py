"""
Local persistence: a single JSON blob under a fixed key.

The blob is read once at start and rewritten in full after every state
change. There are no partial writes and no migrations; a missing or malformed
blob reads back as None and the caller falls back to defaults.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models import LocalStorageEntry
from utils import iso_utc_now


_log = logging.getLogger("local_store")

STATE_KEY = "SPR_TECHFORGE_DB_V3"


class LocalBackend:
    def __init__(self, session_factory: sessionmaker, *, key: str = STATE_KEY):
        self._session_factory = session_factory
        self.key = key

    def get_item(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as db:
                row = db.execute(select(LocalStorageEntry).where(LocalStorageEntry.key == key)).scalars().first()
                return str(row.value) if row is not None else None
        except SQLAlchemyError:
            _log.exception("read failed key=%s", key)
            return None

    def set_item(self, key: str, value: str) -> None:
        with self._session_factory() as db:
            row = db.get(LocalStorageEntry, key)
            if row is None:
                db.add(LocalStorageEntry(key=key, value=value, updatedAt=iso_utc_now()))
            else:
                row.value = value
                row.updatedAt = iso_utc_now()
            db.commit()

    def remove_item(self, key: str) -> None:
        with self._session_factory() as db:
            row = db.get(LocalStorageEntry, key)
            if row is not None:
                db.delete(row)
                db.commit()

    def load(self) -> Optional[dict[str, Any]]:
        raw = self.get_item(self.key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            _log.warning("stored state under %s is not valid JSON, using defaults", self.key)
            return None
        if not isinstance(data, dict):
            _log.warning("stored state under %s is not an object, using defaults", self.key)
            return None
        return data

    def save(self, blob: dict[str, Any]) -> None:
        self.set_item(self.key, json.dumps(blob, ensure_ascii=False, separators=(",", ":")))
