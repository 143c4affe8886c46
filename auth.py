from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from typing import Optional

from entities import Module, Role, User
from state_store import has_module
from utils import ApiError, iso_utc_now, new_uuid


PUBLIC_ACTIONS = {
    "LOGIN",
    "PASSWORD_RESET_REQUEST",
    "CLOUD_STATUS",
}

# Any signed-in user.
SESSION_ACTIONS = {
    "LOGOUT",
    "ME",
}

# Role admin only, whatever modules are enabled.
ADMIN_ACTIONS = {
    "BACKUP_EXPORT",
    "BACKUP_IMPORT",
    "CLOUD_SYNC",
    "CLOUD_CONFIG_TEST",
    "CLOUD_CONFIG_SAVE",
    "CLOUD_CONFIG_CLEAR",
}

ACTION_MODULES: dict[str, str] = {
    "USERS_LIST": Module.USERS.value,
    "USER_ADD": Module.USERS.value,
    "USER_UPDATE": Module.USERS.value,
    "USER_DELETE": Module.USERS.value,
    "PASSWORD_RESET_LIST": Module.USERS.value,
    "PASSWORD_RESET_RESOLVE": Module.USERS.value,
    "ACTIVITY_LOGS_LIST": Module.USERS.value,
    "CANDIDATES_LIST": Module.CANDIDATES.value,
    "CANDIDATE_ADD": Module.CANDIDATES.value,
    "CANDIDATE_UPDATE": Module.CANDIDATES.value,
    "CANDIDATE_DELETE": Module.CANDIDATES.value,
    "CANDIDATE_STATUSES_LIST": Module.CANDIDATES.value,
    "CANDIDATE_STATUS_ADD": Module.CANDIDATES.value,
    "ACCOUNTS_LIST": Module.FINANCE.value,
    "ACCOUNT_ADD": Module.FINANCE.value,
    "ACCOUNT_UPDATE": Module.FINANCE.value,
    "ACCOUNT_DELETE": Module.FINANCE.value,
    "TRANSACTIONS_LIST": Module.FINANCE.value,
    "TRANSACTION_ADD": Module.FINANCE.value,
    "TRANSACTION_UPDATE": Module.FINANCE.value,
    "TRANSACTION_DELETE": Module.FINANCE.value,
    "TRANSACTION_LOCK": Module.FINANCE.value,
    "ENTITY_BALANCE": Module.FINANCE.value,
    "ENTITY_STATEMENT": Module.FINANCE.value,
}


@dataclass(frozen=True)
class AuthContext:
    valid: bool
    user: Optional[User] = None
    issuedAt: str = ""

    @property
    def userId(self) -> str:
        return self.user.id if self.user else ""

    @property
    def role(self) -> str:
        return str(self.user.role) if self.user else ""


def is_public_action(action: str) -> bool:
    return str(action or "").upper() in PUBLIC_ACTIONS


def is_known_action(action: str) -> bool:
    a = str(action or "").upper()
    return a in PUBLIC_ACTIONS or a in SESSION_ACTIONS or a in ADMIN_ACTIONS or a in ACTION_MODULES


def _sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class SessionRegistry:
    """
    Bearer token for the one session the state store holds.

    Logging in issues a fresh token and invalidates the previous one. Only the
    hash is kept.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._token_hash = ""
        self._user_id = ""
        self._issued_at = ""

    def issue(self, user: User) -> dict[str, str]:
        token = "ST-" + new_uuid().replace("-", "") + new_uuid().replace("-", "")
        with self._lock:
            self._token_hash = _sha256_hex(token)
            self._user_id = user.id
            self._issued_at = iso_utc_now()
            issued_at = self._issued_at
        return {"sessionToken": token, "issuedAt": issued_at}

    def revoke(self) -> None:
        with self._lock:
            self._token_hash = ""
            self._user_id = ""
            self._issued_at = ""

    def validate(self, token, state) -> AuthContext:
        if not token or not isinstance(token, str):
            return AuthContext(valid=False)
        with self._lock:
            token_hash, user_id, issued_at = self._token_hash, self._user_id, self._issued_at
        if not token_hash or _sha256_hex(token) != token_hash:
            return AuthContext(valid=False)
        user = state.current_user
        if user is None or user.id != user_id:
            return AuthContext(valid=False)
        return AuthContext(valid=True, user=user, issuedAt=issued_at)


def assert_permission(auth: Optional[AuthContext], action: str) -> None:
    action_u = str(action or "").upper().strip()

    if is_public_action(action_u):
        return
    if not is_known_action(action_u):
        raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")

    user = auth.user if auth and auth.valid else None
    if user is None:
        raise ApiError("AUTH_INVALID", "Login required")

    if action_u in SESSION_ACTIONS:
        return
    if action_u in ADMIN_ACTIONS:
        if user.role != Role.ADMIN:
            raise ApiError("FORBIDDEN", f"Not allowed for role: {user.role}")
        return

    module = ACTION_MODULES[action_u]
    if not has_module(user, module):
        raise ApiError("FORBIDDEN", f"Module not enabled for this user: {module}")


def serialize_user(user: Optional[User], *, include_password: bool = False) -> Optional[dict]:
    if user is None:
        return None
    from entities import encode_document

    out = encode_document(user)
    if not include_password:
        out.pop("password", None)
    return out
