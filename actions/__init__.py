from __future__ import annotations

from typing import Any, Callable

from actions import activity_actions, auth_actions, backup_actions, candidates, cloud_actions, finance, users
from utils import ApiError


Handler = Callable[[dict, Any, Any, Any], Any]

ACTION_HANDLERS: dict[str, Handler] = {
    "LOGIN": auth_actions.login,
    "LOGOUT": auth_actions.logout,
    "ME": auth_actions.me,
    "PASSWORD_RESET_REQUEST": auth_actions.password_reset_request,
    "PASSWORD_RESET_LIST": auth_actions.password_reset_list,
    "PASSWORD_RESET_RESOLVE": auth_actions.password_reset_resolve,
    "USERS_LIST": users.users_list,
    "USER_ADD": users.user_add,
    "USER_UPDATE": users.user_update,
    "USER_DELETE": users.user_delete,
    "CANDIDATES_LIST": candidates.candidates_list,
    "CANDIDATE_ADD": candidates.candidate_add,
    "CANDIDATE_UPDATE": candidates.candidate_update,
    "CANDIDATE_DELETE": candidates.candidate_delete,
    "CANDIDATE_STATUSES_LIST": candidates.candidate_statuses_list,
    "CANDIDATE_STATUS_ADD": candidates.candidate_status_add,
    "ACCOUNTS_LIST": finance.accounts_list,
    "ACCOUNT_ADD": finance.account_add,
    "ACCOUNT_UPDATE": finance.account_update,
    "ACCOUNT_DELETE": finance.account_delete,
    "TRANSACTIONS_LIST": finance.transactions_list,
    "TRANSACTION_ADD": finance.transaction_add,
    "TRANSACTION_UPDATE": finance.transaction_update,
    "TRANSACTION_DELETE": finance.transaction_delete,
    "TRANSACTION_LOCK": finance.transaction_lock,
    "ENTITY_BALANCE": finance.entity_balance,
    "ENTITY_STATEMENT": finance.entity_statement,
    "BACKUP_EXPORT": backup_actions.backup_export,
    "BACKUP_IMPORT": backup_actions.backup_import,
    "CLOUD_STATUS": cloud_actions.cloud_status,
    "CLOUD_SYNC": cloud_actions.cloud_sync,
    "CLOUD_CONFIG_TEST": cloud_actions.cloud_config_test,
    "CLOUD_CONFIG_SAVE": cloud_actions.cloud_config_save,
    "CLOUD_CONFIG_CLEAR": cloud_actions.cloud_config_clear,
    "ACTIVITY_LOGS_LIST": activity_actions.activity_logs_list,
}


def dispatch(action: str, data: dict, auth, state, cfg) -> Any:
    action_u = str(action or "").upper().strip()
    handler = ACTION_HANDLERS.get(action_u)
    if handler is None:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")
    return handler(data or {}, auth, state, cfg)
