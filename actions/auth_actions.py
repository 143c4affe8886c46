from __future__ import annotations

import logging

from actions.helpers import extension, require_str
from auth import AuthContext, serialize_user
from entities import Role, encode_document
from utils import ApiError


def login(data, auth: AuthContext | None, state, cfg):
    res = state.login((data or {}).get("username"), (data or {}).get("password"))
    if not res.ok:
        logging.getLogger("auth").info("login rejected reason=%s", res.reason)
        raise ApiError("AUTH_INVALID", res.message)

    issued = extension("sessions").issue(res.user)
    return {
        **issued,
        "me": serialize_user(res.user),
        "mustChangePassword": res.user.isPasswordChanged is False,
    }


def logout(data, auth: AuthContext | None, state, cfg):
    state.logout()
    extension("sessions").revoke()
    return {"loggedOut": True}


def me(data, auth: AuthContext | None, state, cfg):
    user = state.current_user
    return {
        "me": serialize_user(user),
        "mode": state.mode,
        "cloudError": state.cloud_error,
        "storageError": state.storage_error,
    }


def password_reset_request(data, auth: AuthContext | None, state, cfg):
    username = require_str(data, "username")
    req = state.add_password_reset_request(username)
    # Same answer whether or not the username exists.
    return {"requestId": req.id, "status": req.status}


def password_reset_list(data, auth: AuthContext | None, state, cfg):
    items = [encode_document(r) for r in state.password_reset_requests]
    return {"items": items, "total": len(items)}


def password_reset_resolve(data, auth: AuthContext | None, state, cfg):
    request_id = require_str(data, "requestId")
    if not state.resolve_password_reset_request(request_id):
        raise ApiError("NOT_FOUND", f"Password reset request not found: {request_id}")
    return {"requestId": request_id, "resolved": True}


def is_admin(auth: AuthContext | None) -> bool:
    return bool(auth and auth.valid and auth.user and auth.user.role == Role.ADMIN)
