from __future__ import annotations

from actions.helpers import merge_patch, not_found, require_dict, require_str
from auth import AuthContext
from entities import EntityKind, encode_document
from utils import ApiError


def _entity_kind(data) -> str:
    kind = str((data or {}).get("entityType") or "").strip()
    if kind not in {k.value for k in EntityKind}:
        raise ApiError("BAD_REQUEST", f"Invalid entityType: {kind or '(empty)'}")
    return kind


def _serialize_account(state, a) -> dict:
    out = encode_document(a)
    out["balance"] = state.get_entity_balance(a.id, EntityKind.ACCOUNT)
    return out


def _serialize_transaction(state, t) -> dict:
    out = encode_document(t)
    out["fromName"] = state.get_entity_name(t.fromEntityId, t.fromEntityType)
    out["toName"] = state.get_entity_name(t.toEntityId, t.toEntityType)
    return out


def accounts_list(data, auth: AuthContext | None, state, cfg):
    items = [_serialize_account(state, a) for a in state.accounts]
    return {"items": items, "total": len(items)}


def account_add(data, auth: AuthContext | None, state, cfg):
    payload = require_dict(data, "account")
    a = state.add_account(payload)
    return {"account": _serialize_account(state, a)}


def account_update(data, auth: AuthContext | None, state, cfg):
    account_id = require_str(data, "accountId")
    patch = require_dict(data, "patch")
    existing = state.get_account(account_id)
    if existing is None:
        raise not_found("Account", account_id)
    a = state.update_account(merge_patch(existing, patch))
    if a is None:
        raise not_found("Account", account_id)
    return {"account": _serialize_account(state, a)}


def account_delete(data, auth: AuthContext | None, state, cfg):
    account_id = require_str(data, "accountId")
    if not state.delete_account(account_id):
        raise not_found("Account", account_id)
    return {"accountId": account_id, "deleted": True}


def transactions_list(data, auth: AuthContext | None, state, cfg):
    data = data or {}
    entity_id = str(data.get("entityId") or "").strip()
    tx_type = str(data.get("type") or "").strip()

    items = []
    for t in state.transactions:
        if entity_id and entity_id not in (t.fromEntityId, t.toEntityId):
            continue
        if tx_type and t.type != tx_type:
            continue
        items.append(_serialize_transaction(state, t))
    return {"items": items, "total": len(items)}


def transaction_add(data, auth: AuthContext | None, state, cfg):
    payload = require_dict(data, "transaction")
    t = state.add_transaction(payload)
    return {"transaction": _serialize_transaction(state, t)}


def transaction_update(data, auth: AuthContext | None, state, cfg):
    transaction_id = require_str(data, "transactionId")
    patch = require_dict(data, "patch")
    existing = state.get_transaction(transaction_id)
    if existing is None:
        raise not_found("Transaction", transaction_id)
    t = state.update_transaction(merge_patch(existing, patch))
    if t is None:
        raise not_found("Transaction", transaction_id)
    return {"transaction": _serialize_transaction(state, t)}


def transaction_delete(data, auth: AuthContext | None, state, cfg):
    transaction_id = require_str(data, "transactionId")
    if not state.delete_transaction(transaction_id):
        raise not_found("Transaction", transaction_id)
    return {"transactionId": transaction_id, "deleted": True}


def transaction_lock(data, auth: AuthContext | None, state, cfg):
    transaction_id = require_str(data, "transactionId")
    t = state.lock_transaction(transaction_id)
    if t is None:
        raise not_found("Transaction", transaction_id)
    return {"transaction": _serialize_transaction(state, t)}


def entity_balance(data, auth: AuthContext | None, state, cfg):
    entity_id = require_str(data, "entityId")
    kind = _entity_kind(data)
    out = {
        "entityId": entity_id,
        "entityType": kind,
        "name": state.get_entity_name(entity_id, kind),
        "balance": state.get_entity_balance(entity_id, kind),
    }
    if kind == EntityKind.CANDIDATE.value:
        out["payment"] = state.get_candidate_payment_summary(entity_id)
    return out


def entity_statement(data, auth: AuthContext | None, state, cfg):
    entity_id = require_str(data, "entityId")
    return state.get_account_statement(entity_id, _entity_kind(data))
