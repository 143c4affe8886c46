from __future__ import annotations

from actions.helpers import merge_patch, not_found, require_dict, require_str
from auth import AuthContext
from entities import encode_document
from utils import ApiError


def _serialize_candidate(state, c) -> dict:
    out = encode_document(c)
    out["payment"] = state.get_candidate_payment_summary(c.id)
    return out


def candidates_list(data, auth: AuthContext | None, state, cfg):
    data = data or {}
    status = str(data.get("status") or "").strip()
    batch_id = str(data.get("batchId") or "").strip()
    q = str(data.get("q") or "").strip().lower()
    active_only = bool(data.get("activeOnly"))

    items = []
    for c in state.candidates:
        if status and c.status != status:
            continue
        if batch_id and c.batchId != batch_id:
            continue
        if active_only and not c.isActive:
            continue
        if q and q not in f"{c.name} {c.email} {c.phone} {c.batchId}".lower():
            continue
        items.append(_serialize_candidate(state, c))
    return {"items": items, "total": len(items)}


def candidate_add(data, auth: AuthContext | None, state, cfg):
    payload = require_dict(data, "candidate")
    c = state.add_candidate(payload)
    return {"candidate": _serialize_candidate(state, c)}


def candidate_update(data, auth: AuthContext | None, state, cfg):
    candidate_id = require_str(data, "candidateId")
    patch = require_dict(data, "patch")
    existing = state.get_candidate(candidate_id)
    if existing is None:
        raise not_found("Candidate", candidate_id)
    c = state.update_candidate(merge_patch(existing, patch))
    if c is None:
        raise not_found("Candidate", candidate_id)
    return {"candidate": _serialize_candidate(state, c)}


def candidate_delete(data, auth: AuthContext | None, state, cfg):
    candidate_id = require_str(data, "candidateId")
    if not state.delete_candidate(candidate_id):
        raise not_found("Candidate", candidate_id)
    return {"candidateId": candidate_id, "deleted": True}


def candidate_statuses_list(data, auth: AuthContext | None, state, cfg):
    return {"items": state.candidate_statuses}


def candidate_status_add(data, auth: AuthContext | None, state, cfg):
    label = require_str(data, "status")
    if not state.add_candidate_status(label):
        raise ApiError("CONFLICT", f"Status already exists: {label.strip()}")
    return {"items": state.candidate_statuses}
