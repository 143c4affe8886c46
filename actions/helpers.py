from __future__ import annotations

from typing import Any

from flask import current_app

from entities import encode_document
from utils import ApiError


def require_str(data: dict | None, key: str, *, label: str = "") -> str:
    s = str((data or {}).get(key) or "").strip()
    if not s:
        raise ApiError("BAD_REQUEST", f"Missing {label or key}")
    return s


def require_dict(data: dict | None, key: str) -> dict:
    v = (data or {}).get(key)
    if not isinstance(v, dict):
        raise ApiError("BAD_REQUEST", f"Missing {key}")
    return v


def merge_patch(existing, patch: dict[str, Any]) -> dict[str, Any]:
    """Existing document with `patch` applied on top; the id is never changed."""
    out = encode_document(existing)
    for k, v in (patch or {}).items():
        if k == "id":
            continue
        out[k] = v
    return out


def not_found(kind: str, entity_id: str) -> ApiError:
    return ApiError("NOT_FOUND", f"{kind} not found: {entity_id}")


def extension(name: str):
    return current_app.extensions.get(name)
