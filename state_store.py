from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, wait as wait_futures
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from activity import ActivityLogger
from cache_layer import BalanceCache, make_cache_key
from entities import (
    ALL_MODULES,
    DEFAULT_CANDIDATE_STATUSES,
    Account,
    AccountType,
    ActivityAction,
    ActivityLog,
    Candidate,
    COLLECTIONS,
    DocumentError,
    EntityKind,
    PasswordResetRequest,
    ResetStatus,
    Role,
    Transaction,
    User,
    decode_collection,
    decode_document,
    decode_statuses,
    encode_collection,
    encode_document,
    new_id,
)
from ledger import account_statement, calculate_entity_balance, candidate_payment_summary
from utils import ApiError, iso_utc_now, parse_datetime_maybe


_log = logging.getLogger("state")

SETTINGS_COLLECTION = "settings"
STATUSES_DOC_ID = "candidateStatuses"

UNKNOWN_CANDIDATE = "Unknown Candidate"
UNKNOWN_ACCOUNT = "Unknown Account"
UNKNOWN_ENTITY = "Unknown"


def default_admin_user(username: str = "", password: str = "") -> User:
    return User(
        id="admin-01",
        name="Administrator",
        username=username or "admin@sprtechforge.com",
        password=password or "Admin@2026",
        role=Role.ADMIN,
        modules=list(ALL_MODULES),
        authProvider="local",
        isPasswordChanged=True,
    )


def default_accounts() -> list[Account]:
    return [
        Account(id="cash-01", name="Office Cash", type=AccountType.CASH, openingBalance=0, isSystem=True),
        Account(id="bank-01", name="HDFC Bank", type=AccountType.BANK, openingBalance=0),
    ]


def has_module(user: Optional[User], module: str) -> bool:
    if user is None:
        return False
    if user.role == Role.ADMIN:
        return True
    return str(module) in (user.modules or [])


@dataclass(frozen=True)
class LoginResult:
    ok: bool
    reason: str = ""
    message: str = ""
    user: Optional[User] = None


def _fmt_amount(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else str(amount)


def _log_sort_key(entry: ActivityLog) -> float:
    dt = parse_datetime_maybe(entry.timestamp)
    return dt.timestamp() if dt else 0.0


class AppState:
    """
    The single authoritative holder of application data for one session.

    Construct with a LocalBackend (local mode) or a CloudBackend (cloud mode),
    call start(), and close() at teardown. Every mutation updates memory first,
    then writes to the cloud (cloud mode) or rewrites the local blob (local
    mode), and appends one activity entry.
    """

    def __init__(
        self,
        *,
        local=None,
        cloud=None,
        clock: Callable[[], datetime] | None = None,
        admin: Optional[User] = None,
        balance_cache_size: int = 4096,
    ):
        if local is None and cloud is None:
            raise ValueError("AppState needs a local or a cloud backend")
        self._local = local
        self._cloud = cloud
        self._lock = threading.RLock()
        self._default_admin = admin or default_admin_user()

        self._users: list[User] = [self._default_admin]
        self._candidates: list[Candidate] = []
        self._accounts: list[Account] = default_accounts()
        self._transactions: list[Transaction] = []
        self._statuses: list[str] = list(DEFAULT_CANDIDATE_STATUSES)
        self._reset_requests: list[PasswordResetRequest] = []
        self._logs: list[ActivityLog] = []

        self._current_user: Optional[User] = None
        self._cloud_error: Optional[str] = None
        self._storage_error: Optional[str] = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._started = False

        self._tx_version = 0
        self._balances = BalanceCache(balance_cache_size)
        self._activity = ActivityLogger(
            sink=self._record_activity,
            actor_provider=lambda: self._current_user,
            clock=clock,
        )

    # Lifecycle

    @property
    def mode(self) -> str:
        return "cloud" if self._cloud is not None else "local"

    @property
    def is_cloud_enabled(self) -> bool:
        return self._cloud is not None

    def start(self) -> "AppState":
        if self._started:
            return self
        if self._cloud is not None:
            _log.info("running in cloud mode")
            self._subscribe_all()
        else:
            _log.info("running in local mode")
            self._load_local()
        self._started = True
        if self._cloud is None:
            self._persist()
        return self

    def close(self) -> None:
        with self._lock:
            unsubscribers = list(self._unsubscribers)
            self._unsubscribers.clear()
        for unsub in unsubscribers:
            unsub()
        if self._cloud is not None:
            self._cloud.close()
        self._started = False

    def __enter__(self) -> "AppState":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _load_local(self) -> None:
        data = self._local.load()
        if data is None:
            return

        def _lenient(name: str) -> list:
            items, problems = decode_collection(name, data.get(name), strict=False)
            for p in problems:
                _log.warning("skipping stored document: %s", p)
            return items

        with self._lock:
            users = _lenient("users")
            self._users = users or [self._default_admin]
            self._candidates = _lenient("candidates")
            accounts = _lenient("accounts")
            if accounts:
                self._accounts = accounts
            self._set_transactions(_lenient("transactions"))
            statuses = decode_statuses(data.get("candidateStatuses"), strict=False)
            if statuses:
                self._statuses = statuses
            self._reset_requests = _lenient("passwordResetRequests")
            self._logs = _lenient("activityLogs")

    def _subscribe_all(self) -> None:
        handlers = {
            "users": self._on_users,
            "candidates": self._on_candidates,
            "accounts": self._on_accounts,
            "transactions": self._on_transactions,
            SETTINGS_COLLECTION: self._on_settings,
            "passwordResetRequests": self._on_reset_requests,
            "activityLogs": self._on_activity_logs,
        }
        self._cloud_error = None
        for name, handler in handlers.items():
            unsub = self._cloud.subscribe(name, handler, self._subscription_error_handler(name))
            self._unsubscribers.append(unsub)

    # Cloud snapshot handlers: each push replaces the whole local collection.

    def _decode_snapshot(self, name: str, items: list) -> list:
        decoded, problems = decode_collection(name, items, strict=False)
        if problems:
            for p in problems:
                _log.warning("skipping cloud document: %s", p)
            self._cloud_error = f"Cloud Error: skipped {len(problems)} invalid document(s) in {name}"
        return decoded

    def _on_users(self, items: list) -> None:
        users = self._decode_snapshot("users", items)
        with self._lock:
            self._users = users or [self._default_admin]
            if self._current_user is not None:
                fresh = next((u for u in self._users if u.id == self._current_user.id), None)
                if fresh is not None:
                    self._current_user = fresh

    def _on_candidates(self, items: list) -> None:
        candidates = self._decode_snapshot("candidates", items)
        with self._lock:
            self._candidates = candidates

    def _on_accounts(self, items: list) -> None:
        accounts = self._decode_snapshot("accounts", items)
        with self._lock:
            self._accounts = accounts
            self._bump_version()

    def _on_transactions(self, items: list) -> None:
        transactions = self._decode_snapshot("transactions", items)
        with self._lock:
            self._set_transactions(transactions)

    def _on_settings(self, items: list) -> None:
        doc = next((d for d in items if str(d.get("id") or "") == STATUSES_DOC_ID), None)
        if not doc or not doc.get("values"):
            return
        try:
            statuses = decode_statuses(doc.get("values"))
        except DocumentError as e:
            _log.warning("ignoring cloud statuses document: %s", e)
            self._cloud_error = f"Cloud Error: {e}"
            return
        with self._lock:
            self._statuses = statuses

    def _on_reset_requests(self, items: list) -> None:
        requests_ = self._decode_snapshot("passwordResetRequests", items)
        with self._lock:
            self._reset_requests = requests_

    def _on_activity_logs(self, items: list) -> None:
        logs = self._decode_snapshot("activityLogs", items)
        logs.sort(key=_log_sort_key, reverse=True)
        with self._lock:
            self._logs = logs

    def _subscription_error_handler(self, name: str) -> Callable[[Exception], None]:
        from services.cloud_store import describe_cloud_error

        def _handler(exc: Exception) -> None:
            self._cloud_error = describe_cloud_error(exc)
            _log.error("subscription to %s failed: %s", name, self._cloud_error)

        return _handler

    # Read access

    @property
    def current_user(self) -> Optional[User]:
        return self._current_user

    @property
    def cloud_error(self) -> Optional[str]:
        return self._cloud_error

    def clear_cloud_error(self) -> None:
        self._cloud_error = None

    @property
    def storage_error(self) -> Optional[str]:
        return self._storage_error

    @property
    def users(self) -> list[User]:
        with self._lock:
            return list(self._users)

    @property
    def candidates(self) -> list[Candidate]:
        with self._lock:
            return list(self._candidates)

    @property
    def accounts(self) -> list[Account]:
        with self._lock:
            return list(self._accounts)

    @property
    def transactions(self) -> list[Transaction]:
        with self._lock:
            return list(self._transactions)

    @property
    def candidate_statuses(self) -> list[str]:
        with self._lock:
            return list(self._statuses)

    @property
    def password_reset_requests(self) -> list[PasswordResetRequest]:
        with self._lock:
            return list(self._reset_requests)

    @property
    def activity_logs(self) -> list[ActivityLog]:
        with self._lock:
            return list(self._logs)

    @property
    def balance_cache_stats(self) -> dict:
        return self._balances.stats()

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return next((u for u in self._users if u.id == user_id), None)

    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        with self._lock:
            return next((c for c in self._candidates if c.id == candidate_id), None)

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._lock:
            return next((a for a in self._accounts if a.id == account_id), None)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            return next((t for t in self._transactions if t.id == transaction_id), None)

    # Persistence plumbing

    def _bump_version(self) -> None:
        self._tx_version += 1
        self._balances.invalidate()

    def _set_transactions(self, transactions: list[Transaction]) -> None:
        self._transactions = transactions
        self._bump_version()

    def _blob(self) -> dict[str, Any]:
        with self._lock:
            return {
                "users": encode_collection(self._users),
                "candidates": encode_collection(self._candidates),
                "accounts": encode_collection(self._accounts),
                "transactions": encode_collection(self._transactions),
                "candidateStatuses": list(self._statuses),
                "passwordResetRequests": encode_collection(self._reset_requests),
                "activityLogs": encode_collection(self._logs),
            }

    def snapshot(self) -> dict[str, Any]:
        return self._blob()

    def _persist(self) -> None:
        # Local mode: one full-blob rewrite per state change.
        if self._cloud is not None or not self._started:
            return
        try:
            self._local.save(self._blob())
        except SQLAlchemyError as e:
            _log.exception("local save failed")
            self._storage_error = f"Failed to save locally: {e}"
            return
        self._storage_error = None

    def _watch(self, fut: Future, prefix: str) -> Future:
        from services.cloud_store import describe_cloud_error

        def _done(f: Future) -> None:
            exc = f.exception()
            if exc is not None:
                self._cloud_error = describe_cloud_error(exc, prefix)
                _log.error("%s", self._cloud_error)

        fut.add_done_callback(_done)
        return fut

    def _save_remote(self, collection: str, item: dict[str, Any]) -> Optional[Future]:
        if self._cloud is None:
            return None
        return self._watch(self._cloud.save_item(collection, item), "Failed to save")

    def _delete_remote(self, collection: str, doc_id: str) -> Optional[Future]:
        if self._cloud is None:
            return None
        return self._watch(self._cloud.delete_item(collection, doc_id), "Failed to delete")

    def _upload_remote(self, collection: str, items: list[dict[str, Any]]) -> Optional[Future]:
        if self._cloud is None:
            return None
        return self._watch(self._cloud.upload_batch(collection, items), "Failed to upload")

    def _record_activity(self, entry: ActivityLog) -> None:
        with self._lock:
            self._logs = [entry] + self._logs
        self._save_remote("activityLogs", encode_document(entry))

    def _log_activity(self, action: ActivityAction, entity_type: str, description: str, entity_id: str | None = None, **kw):
        return self._activity.append(action, entity_type, description, entity_id, **kw)

    @staticmethod
    def _coerce(collection: str, value: Any, *, assign_id: bool = False):
        if isinstance(value, (User, Candidate, Account, Transaction, PasswordResetRequest)):
            value = encode_document(value)
        if not isinstance(value, dict):
            raise ApiError("BAD_REQUEST", f"Expected an object for {collection}")
        value = dict(value)
        if assign_id and not str(value.get("id") or "").strip():
            value["id"] = new_id()
        try:
            return decode_document(collection, value)
        except DocumentError as e:
            raise ApiError("BAD_REQUEST", str(e))

    # Authentication

    def login(self, username: str | None, password: str | None) -> LoginResult:
        if not username or not password:
            return LoginResult(False, "CREDENTIALS_MISSING", "Credentials missing")

        wanted = str(username).strip().lower()
        with self._lock:
            found = next((u for u in self._users if str(u.username or "").lower() == wanted), None)
        if found is None:
            return LoginResult(False, "USER_NOT_FOUND", "User not found")
        if found.password != password:
            return LoginResult(False, "INCORRECT_PASSWORD", "Incorrect password")

        self._current_user = found
        self._log_activity(ActivityAction.LOGIN, "User", "User logged in", actor=found)
        self._persist()
        return LoginResult(True, user=found)

    def logout(self) -> None:
        if self._current_user is not None:
            # Logged under the LOGIN tag, like the login entry.
            self._log_activity(ActivityAction.LOGIN, "User", "User logged out")
        self._current_user = None
        self._persist()

    # Users

    def add_user(self, user: User | dict) -> User:
        u = self._coerce("users", user, assign_id=True)
        with self._lock:
            if any(x.id == u.id for x in self._users):
                raise ApiError("CONFLICT", f"User {u.id} already exists")
            if any(str(x.username).lower() == str(u.username).lower() for x in self._users):
                raise ApiError("CONFLICT", f"Username {u.username} already exists")
            self._users = self._users + [u]
        self._save_remote("users", encode_document(u))
        self._log_activity(ActivityAction.CREATE, "User", f"Created user {u.username}", u.id)
        self._persist()
        return u

    def update_user(self, user: User | dict) -> Optional[User]:
        u = self._coerce("users", user)
        with self._lock:
            if not any(x.id == u.id for x in self._users):
                return None
            if any(x.id != u.id and str(x.username).lower() == str(u.username).lower() for x in self._users):
                raise ApiError("CONFLICT", f"Username {u.username} already exists")
            self._users = [u if x.id == u.id else x for x in self._users]
            if self._current_user is not None and self._current_user.id == u.id:
                self._current_user = u
        self._save_remote("users", encode_document(u))
        self._log_activity(ActivityAction.UPDATE, "User", f"Updated user {u.username}", u.id)
        self._persist()
        return u

    def delete_user(self, user_id: str) -> bool:
        with self._lock:
            target = next((u for u in self._users if u.id == user_id), None)
            if target is None:
                return False
            if len(self._users) <= 1:
                raise ApiError("CONFLICT", "Cannot delete the last user.")
            self._users = [u for u in self._users if u.id != user_id]
        self._delete_remote("users", user_id)
        self._log_activity(ActivityAction.DELETE, "User", f"Deleted user {target.username}", user_id)
        if self._current_user is not None and self._current_user.id == user_id:
            self._current_user = None
        self._persist()
        return True

    # Password reset requests

    def add_password_reset_request(self, username: str) -> PasswordResetRequest:
        name = str(username or "").strip()
        if not name:
            raise ApiError("BAD_REQUEST", "Missing username")
        req = PasswordResetRequest(id=new_id(), username=name, requestDate=iso_utc_now(), status=ResetStatus.PENDING)
        with self._lock:
            self._reset_requests = self._reset_requests + [req]
        self._save_remote("passwordResetRequests", encode_document(req))
        # Requested before login, so never attributed to the session user.
        self._log_activity(ActivityAction.OTHER, "User", f"Password reset requested for {name}", as_system=True)
        self._persist()
        return req

    def resolve_password_reset_request(self, request_id: str) -> bool:
        with self._lock:
            if not any(r.id == request_id for r in self._reset_requests):
                return False
            self._reset_requests = [r for r in self._reset_requests if r.id != request_id]
        self._delete_remote("passwordResetRequests", request_id)
        self._log_activity(ActivityAction.UPDATE, "User", "Resolved password reset request", request_id)
        self._persist()
        return True

    # Candidates

    def add_candidate(self, candidate: Candidate | dict) -> Candidate:
        c = self._coerce("candidates", candidate, assign_id=True)
        with self._lock:
            if any(x.id == c.id for x in self._candidates):
                raise ApiError("CONFLICT", f"Candidate {c.id} already exists")
            self._candidates = self._candidates + [c]
        self._save_remote("candidates", encode_document(c))
        self._log_activity(ActivityAction.CREATE, "Candidate", f"Created candidate {c.name} ({c.batchId})", c.id)
        self._persist()
        return c

    def update_candidate(self, candidate: Candidate | dict) -> Optional[Candidate]:
        c = self._coerce("candidates", candidate)
        with self._lock:
            if not any(x.id == c.id for x in self._candidates):
                return None
            self._candidates = [c if x.id == c.id else x for x in self._candidates]
            self._bump_version()
        self._save_remote("candidates", encode_document(c))
        self._log_activity(ActivityAction.UPDATE, "Candidate", f"Updated candidate {c.name}", c.id)
        self._persist()
        return c

    def delete_candidate(self, candidate_id: str) -> bool:
        # Transactions keep their reference; lookups fall back to "Unknown Candidate".
        with self._lock:
            target = next((c for c in self._candidates if c.id == candidate_id), None)
            if target is None:
                return False
            self._candidates = [c for c in self._candidates if c.id != candidate_id]
            self._bump_version()
        self._delete_remote("candidates", candidate_id)
        self._log_activity(ActivityAction.DELETE, "Candidate", f"Deleted candidate {target.name}", candidate_id)
        self._persist()
        return True

    def add_candidate_status(self, status: str) -> bool:
        label = str(status or "").strip()
        with self._lock:
            if not label or label in self._statuses:
                return False
            self._statuses = self._statuses + [label]
            values = list(self._statuses)
        self._save_remote(SETTINGS_COLLECTION, {"id": STATUSES_DOC_ID, "values": values})
        self._log_activity(ActivityAction.UPDATE, "Settings", f"Added candidate status: {label}")
        self._persist()
        return True

    # Accounts

    def add_account(self, account: Account | dict) -> Account:
        a = self._coerce("accounts", account, assign_id=True)
        with self._lock:
            if any(x.id == a.id for x in self._accounts):
                raise ApiError("CONFLICT", f"Account {a.id} already exists")
            self._accounts = self._accounts + [a]
            self._bump_version()
        self._save_remote("accounts", encode_document(a))
        self._log_activity(ActivityAction.CREATE, "Account", f"Created account {a.name}", a.id)
        self._persist()
        return a

    def update_account(self, account: Account | dict) -> Optional[Account]:
        a = self._coerce("accounts", account)
        with self._lock:
            if not any(x.id == a.id for x in self._accounts):
                return None
            self._accounts = [a if x.id == a.id else x for x in self._accounts]
            self._bump_version()
        self._save_remote("accounts", encode_document(a))
        self._log_activity(ActivityAction.UPDATE, "Account", f"Updated account {a.name}", a.id)
        self._persist()
        return a

    def delete_account(self, account_id: str) -> bool:
        with self._lock:
            target = next((a for a in self._accounts if a.id == account_id), None)
            if target is None:
                return False
            if target.isSystem:
                raise ApiError("CONFLICT", "Cannot delete a System Account.")
            self._accounts = [a for a in self._accounts if a.id != account_id]
            self._bump_version()
        self._delete_remote("accounts", account_id)
        self._log_activity(ActivityAction.DELETE, "Account", f"Deleted account {target.name}", account_id)
        self._persist()
        return True

    # Transactions

    @staticmethod
    def _check_transaction(t: Transaction) -> None:
        if not (t.amount > 0):
            raise ApiError("BAD_REQUEST", "Amount must be greater than zero")
        if not str(t.fromEntityId or "").strip() or not str(t.toEntityId or "").strip():
            raise ApiError("BAD_REQUEST", "Transaction needs both a from and a to party")

    def add_transaction(self, transaction: Transaction | dict) -> Transaction:
        t = self._coerce("transactions", transaction, assign_id=True)
        self._check_transaction(t)
        with self._lock:
            if any(x.id == t.id for x in self._transactions):
                raise ApiError("CONFLICT", f"Transaction {t.id} already exists")
            # Newest first.
            self._set_transactions([t] + self._transactions)
        self._save_remote("transactions", encode_document(t))
        self._log_activity(ActivityAction.CREATE, "Transaction", f"Recorded {t.type} of {_fmt_amount(t.amount)}", t.id)
        self._persist()
        return t

    def update_transaction(self, transaction: Transaction | dict) -> Optional[Transaction]:
        t = self._coerce("transactions", transaction)
        self._check_transaction(t)
        with self._lock:
            current = next((x for x in self._transactions if x.id == t.id), None)
            if current is None:
                return None
            if current.isLocked:
                raise ApiError("CONFLICT", "Transaction is locked and cannot be edited.")
            self._set_transactions([t if x.id == t.id else x for x in self._transactions])
        self._save_remote("transactions", encode_document(t))
        self._log_activity(ActivityAction.UPDATE, "Transaction", f"Updated transaction {t.id}", t.id)
        self._persist()
        return t

    def delete_transaction(self, transaction_id: str) -> bool:
        with self._lock:
            current = next((x for x in self._transactions if x.id == transaction_id), None)
            if current is None:
                return False
            if current.isLocked:
                raise ApiError("CONFLICT", "Transaction is locked and cannot be deleted.")
            self._set_transactions([x for x in self._transactions if x.id != transaction_id])
        self._delete_remote("transactions", transaction_id)
        self._log_activity(ActivityAction.DELETE, "Transaction", f"Deleted transaction {transaction_id}", transaction_id)
        self._persist()
        return True

    def lock_transaction(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            current = next((x for x in self._transactions if x.id == transaction_id), None)
            if current is None:
                return None
            if current.isLocked:
                return current
            locked = current.model_copy(update={"isLocked": True})
            self._set_transactions([locked if x.id == transaction_id else x for x in self._transactions])
        self._save_remote("transactions", encode_document(locked))
        self._log_activity(ActivityAction.UPDATE, "Transaction", f"Locked transaction {transaction_id}", transaction_id)
        self._persist()
        return locked

    # Derived lookups

    def get_entity_name(self, entity_id: str, entity_kind: EntityKind | str) -> str:
        kind = str(getattr(entity_kind, "value", entity_kind) or "")
        if kind == EntityKind.CANDIDATE.value:
            c = self.get_candidate(entity_id)
            return f"{c.name} ({c.batchId})" if c else UNKNOWN_CANDIDATE
        if kind == EntityKind.ACCOUNT.value:
            a = self.get_account(entity_id)
            return a.name if a else UNKNOWN_ACCOUNT
        return UNKNOWN_ENTITY

    def _opening_balance(self, entity_id: str, kind: str) -> float:
        if kind != EntityKind.ACCOUNT.value:
            return 0.0
        a = self.get_account(entity_id)
        return float(a.openingBalance or 0) if a else 0.0

    def get_entity_balance(self, entity_id: str, entity_kind: EntityKind | str) -> float:
        kind = str(getattr(entity_kind, "value", entity_kind) or "")
        with self._lock:
            opening = self._opening_balance(entity_id, kind)
            version = self._tx_version
            transactions = self._transactions
        key = make_cache_key("BALANCE", version=version, scope=[kind, entity_id, opening])
        return self._balances.get_or_set(
            key, lambda: calculate_entity_balance(entity_id, kind, transactions, opening)
        )

    def get_candidate_payment_summary(self, candidate_id: str) -> dict:
        with self._lock:
            c = next((x for x in self._candidates if x.id == candidate_id), None)
            agreed = float(c.agreedAmount or 0) if c else 0.0
            version = self._tx_version
            transactions = self._transactions
        key = make_cache_key("DUE", version=version, scope=[candidate_id, agreed])
        return dict(
            self._balances.get_or_set(key, lambda: candidate_payment_summary(candidate_id, agreed, transactions))
        )

    def get_candidate_balance_due(self, candidate_id: str) -> float:
        return self.get_candidate_payment_summary(candidate_id)["balanceDue"]

    def get_account_statement(self, entity_id: str, entity_kind: EntityKind | str) -> dict:
        kind = str(getattr(entity_kind, "value", entity_kind) or "")
        with self._lock:
            opening = self._opening_balance(entity_id, kind)
            transactions = list(self._transactions)
        out = account_statement(entity_id, kind, transactions, opening)
        out["name"] = self.get_entity_name(entity_id, kind)
        return out

    # Bulk operations (restore / cloud sync)

    def restore(self, collections: dict[str, list], *, wait: bool = False) -> bool:
        """
        Replace every collection present in `collections` (already decoded).

        Absent collections are left untouched. Appends one RESTORE entry and,
        in cloud mode, re-uploads each present collection.
        """
        collections = dict(collections)
        if "users" in collections and not collections["users"]:
            # At least one user must always exist.
            collections["users"] = [self._default_admin]
        present = [name for name in COLLECTIONS if name in collections]
        with self._lock:
            if "users" in collections:
                self._users = list(collections["users"])
            if "candidates" in collections:
                self._candidates = list(collections["candidates"])
            if "accounts" in collections:
                self._accounts = list(collections["accounts"])
            if "transactions" in collections:
                self._transactions = list(collections["transactions"])
            if "candidateStatuses" in collections:
                self._statuses = list(collections["candidateStatuses"])
            if "passwordResetRequests" in collections:
                self._reset_requests = list(collections["passwordResetRequests"])
            if "activityLogs" in collections:
                self._logs = list(collections["activityLogs"])
            self._bump_version()

        self._log_activity(ActivityAction.RESTORE, "System", "Database restored from backup file")
        self._persist()
        _log.info("restored collections=%s mode=%s", ",".join(present), self.mode)

        if self._cloud is None:
            return True
        futures = []
        for name in present:
            if name == "candidateStatuses":
                continue
            futures.append(self._upload_remote(name, encode_collection(collections[name])))
        if "candidateStatuses" in collections:
            futures.append(
                self._save_remote(SETTINGS_COLLECTION, {"id": STATUSES_DOC_ID, "values": list(collections["candidateStatuses"])})
            )
        return self._maybe_wait(futures, wait)

    def sync_local_to_cloud(self, *, wait: bool = False) -> bool:
        if self._cloud is None:
            return False
        blob = self._blob()
        futures = [self._upload_remote(name, blob[name]) for name in COLLECTIONS if name != "candidateStatuses"]
        futures.append(self._save_remote(SETTINGS_COLLECTION, {"id": STATUSES_DOC_ID, "values": blob["candidateStatuses"]}))
        return self._maybe_wait(futures, wait)

    @staticmethod
    def _maybe_wait(futures: list, wait: bool) -> bool:
        futures = [f for f in futures if f is not None]
        if not wait:
            return True
        wait_futures(futures)
        return all(f.exception() is None for f in futures)
