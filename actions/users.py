from __future__ import annotations

from actions.auth_actions import is_admin
from actions.helpers import merge_patch, not_found, require_dict, require_str
from auth import AuthContext, serialize_user


def users_list(data, auth: AuthContext | None, state, cfg):
    # Passwords are stored in plaintext so administrators can read them back.
    show_passwords = is_admin(auth)
    items = [serialize_user(u, include_password=show_passwords) for u in state.users]
    return {"items": items, "total": len(items)}


def user_add(data, auth: AuthContext | None, state, cfg):
    payload = require_dict(data, "user")
    user = state.add_user(payload)
    return {"user": serialize_user(user, include_password=is_admin(auth))}


def user_update(data, auth: AuthContext | None, state, cfg):
    user_id = require_str(data, "userId")
    patch = require_dict(data, "patch")
    existing = state.get_user(user_id)
    if existing is None:
        raise not_found("User", user_id)
    updated = state.update_user(merge_patch(existing, patch))
    if updated is None:
        raise not_found("User", user_id)
    return {"user": serialize_user(updated, include_password=is_admin(auth))}


def user_delete(data, auth: AuthContext | None, state, cfg):
    user_id = require_str(data, "userId")
    if not state.delete_user(user_id):
        raise not_found("User", user_id)
    return {"userId": user_id, "deleted": True}
