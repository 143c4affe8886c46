from __future__ import annotations

import json
import threading
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any

from flask import jsonify


class ApiError(Exception):
    def __init__(self, code: str, message: str, *, http_status: int = 200):
        super().__init__(message)
        self.code = str(code or "INTERNAL")
        self.message = str(message or "")
        self.http_status = int(http_status)

    def __repr__(self) -> str:
        return f"ApiError({self.code!r}, {self.message!r})"


def iso_utc_now() -> str:
    return to_iso_utc(datetime.now(timezone.utc))


def to_iso_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_datetime_maybe(value: Any) -> datetime | None:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def new_uuid() -> str:
    return str(uuid.uuid4())


def now_monotonic() -> float:
    return time.monotonic()


def ok(data: Any):
    return jsonify({"ok": True, "data": data}), 200


def err(code: str, message: str, *, http_status: int = 200):
    return jsonify({"ok": False, "error": {"code": code, "message": message}}), http_status


def parse_json_body(raw: str) -> dict:
    s = str(raw or "").strip()
    if not s:
        raise ApiError("BAD_REQUEST", "Empty request body")
    try:
        body = json.loads(s)
    except json.JSONDecodeError:
        raise ApiError("BAD_REQUEST", "Invalid JSON body")
    if not isinstance(body, dict):
        raise ApiError("BAD_REQUEST", "Request body must be a JSON object")
    return body


_REDACT_KEYS = {"password", "newpassword", "oldpassword", "token", "credentials"}


def redact_for_audit(data: Any) -> Any:
    if isinstance(data, dict):
        out = {}
        for k, v in data.items():
            if str(k).lower() in _REDACT_KEYS:
                out[k] = "***"
            else:
                out[k] = redact_for_audit(v)
        return out
    if isinstance(data, list):
        return [redact_for_audit(v) for v in data[:20]]
    return data


class SimpleRateLimiter:
    """Sliding one-minute window per key. `limit` is requests per minute; 0 disables."""

    def __init__(self):
        self._hits: dict[str, deque] = {}
        self._lock = threading.Lock()

    def check(self, key: str, limit: int) -> None:
        if not limit or limit <= 0:
            return
        now = now_monotonic()
        with self._lock:
            q = self._hits.setdefault(key, deque())
            while q and now - q[0] > 60.0:
                q.popleft()
            if len(q) >= limit:
                raise ApiError("RATE_LIMITED", "Too many requests, try again in a minute", http_status=429)
            q.append(now)
