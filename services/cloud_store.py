"""
Cloud persistence on Google Cloud Firestore.

Each entity kind is one collection keyed by the entity id. Writes are
fire-and-forget for the caller: they run on a single worker thread (so they
land in call order) and return a Future whose failure the state store turns
into a banner message. Subscriptions deliver the full collection on every
change, never deltas.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.oauth2 import service_account


_log = logging.getLogger("cloud")

CONFIG_KEY = "SPR_TECHFORGE_FIREBASE_CONFIG"
BATCH_LIMIT = 500

PERMISSION_DENIED_MESSAGE = (
    "Permission Denied: Your Firestore Rules are blocking access. "
    "Update the security rules for this project to allow the service account to read and write."
)


class CloudError(Exception):
    code = "unknown"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        if code:
            self.code = code
        self.message = str(message or "")


class PermissionDeniedError(CloudError):
    code = "permission-denied"


class CloudUnavailableError(CloudError):
    code = "unavailable"


def classify_cloud_error(exc: BaseException) -> CloudError:
    if isinstance(exc, CloudError):
        return exc
    if isinstance(exc, google_exceptions.PermissionDenied) or getattr(exc, "code", None) == "permission-denied":
        return PermissionDeniedError(str(getattr(exc, "message", "") or exc))
    if isinstance(exc, (google_exceptions.ServiceUnavailable, google_exceptions.FailedPrecondition)):
        code = "unavailable" if isinstance(exc, google_exceptions.ServiceUnavailable) else "failed-precondition"
        return CloudUnavailableError(str(getattr(exc, "message", "") or exc), code=code)
    return CloudError(str(exc) or type(exc).__name__)


def describe_cloud_error(exc: BaseException, prefix: str = "Cloud Error") -> str:
    err = classify_cloud_error(exc)
    if isinstance(err, PermissionDeniedError):
        return PERMISSION_DENIED_MESSAGE
    return f"{prefix}: {err.message}"


@dataclass(frozen=True)
class CloudConfig:
    project_id: str
    credentials_file: str = ""
    database: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Optional["CloudConfig"]:
        if not isinstance(data, dict):
            return None
        return cls(
            project_id=str(data.get("projectId") or "").strip(),
            credentials_file=str(data.get("credentialsFile") or "").strip(),
            database=str(data.get("database") or "").strip(),
        )

    def to_dict(self) -> dict[str, str]:
        out = {"projectId": self.project_id}
        if self.credentials_file:
            out["credentialsFile"] = self.credentials_file
        if self.database:
            out["database"] = self.database
        return out

    def problems(self) -> list[str]:
        out = []
        if not self.project_id:
            out.append("Missing projectId")
        if self.credentials_file and not os.path.isfile(self.credentials_file):
            out.append(f"Credentials file not found: {self.credentials_file}")
        return out

    def is_valid(self) -> bool:
        return not self.problems()


def make_firestore_client(config: CloudConfig) -> firestore.Client:
    kwargs: dict[str, Any] = {"project": config.project_id}
    if config.credentials_file:
        kwargs["credentials"] = service_account.Credentials.from_service_account_file(config.credentials_file)
    if config.database:
        kwargs["database"] = config.database
    return firestore.Client(**kwargs)


class CloudBackend:
    def __init__(self, client, *, batch_limit: int = BATCH_LIMIT):
        self._client = client
        self._batch_limit = max(1, int(batch_limit))
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cloud-write")
        self._watches: list = []
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Optional[CloudConfig]) -> Optional["CloudBackend"]:
        if config is None or not config.is_valid():
            return None
        try:
            client = make_firestore_client(config)
        except Exception:
            _log.exception("Firestore initialization failed project=%s", config.project_id)
            return None
        _log.info("Firestore initialized project=%s", config.project_id)
        return cls(client)

    # Subscriptions

    def subscribe(
        self,
        collection: str,
        on_items: Callable[[list[dict[str, Any]]], None],
        on_error: Callable[[CloudError], None] | None = None,
    ) -> Callable[[], None]:
        col_ref = self._client.collection(collection)

        def _report(exc: BaseException) -> None:
            err = classify_cloud_error(exc)
            _log.error("subscription error collection=%s code=%s %s", collection, err.code, err.message)
            if on_error is not None:
                on_error(err)

        def _on_snapshot(docs, _changes, _read_time):
            try:
                items = []
                for d in docs:
                    data = d.to_dict() or {}
                    data["id"] = d.id
                    items.append(data)
                _log.debug("sync: received %s items from %s", len(items), collection)
                on_items(items)
            except Exception as e:
                _report(e)

        watch = col_ref.on_snapshot(_on_snapshot)
        with self._lock:
            self._watches.append(watch)

        # The watch stream does not hand RPC failures to the callback; a one-document
        # read surfaces permission problems for this collection.
        def _probe():
            try:
                col_ref.limit(1).get()
            except Exception as e:
                _report(e)

        self._executor.submit(_probe)

        cancelled = threading.Event()

        def _unsubscribe() -> None:
            if cancelled.is_set():
                return
            cancelled.set()
            try:
                watch.unsubscribe()
            except Exception:
                _log.warning("unsubscribe failed collection=%s", collection, exc_info=True)
            with self._lock:
                if watch in self._watches:
                    self._watches.remove(watch)

        return _unsubscribe

    # Writes

    def _submit(self, fn: Callable[[], Any]) -> Future:
        def _run():
            try:
                return fn()
            except CloudError:
                raise
            except Exception as e:
                raise classify_cloud_error(e) from e

        return self._executor.submit(_run)

    def save_item(self, collection: str, item: dict[str, Any]) -> Future:
        doc_id = str((item or {}).get("id") or "").strip()
        if not doc_id:
            raise ValueError("Item must have an id")
        data = dict(item)
        return self._submit(lambda: self._client.collection(collection).document(doc_id).set(data))

    def delete_item(self, collection: str, doc_id: str) -> Future:
        doc_id = str(doc_id or "").strip()
        if not doc_id:
            raise ValueError("Missing document id")
        return self._submit(lambda: self._client.collection(collection).document(doc_id).delete())

    def upload_batch(self, collection: str, items: list[dict[str, Any]]) -> Future:
        docs = [dict(i) for i in (items or [])]
        for d in docs:
            if not str(d.get("id") or "").strip():
                raise ValueError(f"Item in {collection} must have an id")

        def _upload() -> int:
            written = 0
            col_ref = self._client.collection(collection)
            for start in range(0, len(docs), self._batch_limit):
                chunk = docs[start : start + self._batch_limit]
                batch = self._client.batch()
                for d in chunk:
                    batch.set(col_ref.document(str(d["id"])), d)
                batch.commit()
                written += len(chunk)
                _log.info("uploaded batch of %s to %s", len(chunk), collection)
            return written

        return self._submit(_upload)

    def close(self) -> None:
        with self._lock:
            watches = list(self._watches)
            self._watches.clear()
        for w in watches:
            try:
                w.unsubscribe()
            except Exception:
                _log.warning("unsubscribe failed during close", exc_info=True)
        self._executor.shutdown(wait=True)


def parse_cloud_config(raw: Any) -> Optional[CloudConfig]:
    data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    return CloudConfig.from_dict(data)


def check_cloud_config(raw: Any, *, client_factory: Callable[[CloudConfig], Any] = make_firestore_client) -> dict:
    """
    Check a candidate configuration before saving it.

    Permission denied still proves the project is reachable; unavailable or
    failed-precondition does not.
    """
    try:
        config = parse_cloud_config(raw)
    except json.JSONDecodeError as e:
        return {"success": False, "error": f"Invalid JSON format: {e.msg}"}
    if config is None:
        return {"success": False, "error": "Invalid Configuration object."}
    problems = config.problems()
    if problems:
        return {"success": False, "error": "Invalid Configuration object. " + "; ".join(problems)}

    try:
        client = client_factory(config)
        client.collection("system_check").document("connection_test").get()
    except Exception as e:
        err = classify_cloud_error(e)
        if isinstance(err, PermissionDeniedError):
            return {"success": True}
        if isinstance(err, CloudUnavailableError):
            return {"success": False, "error": "Could not reach Firestore. Check your network connection."}
        return {"success": False, "error": err.message}
    return {"success": True}


def load_cloud_config(local) -> Optional[CloudConfig]:
    raw = local.get_item(CONFIG_KEY)
    if not raw:
        return None
    try:
        return CloudConfig.from_dict(json.loads(raw))
    except json.JSONDecodeError:
        _log.warning("stored cloud configuration is not valid JSON, ignoring")
        return None


def save_cloud_config(local, config: CloudConfig) -> None:
    local.set_item(CONFIG_KEY, json.dumps(config.to_dict()))


def clear_cloud_config(local) -> None:
    local.remove_item(CONFIG_KEY)


def resolve_cloud_config(cfg, local=None) -> Optional[CloudConfig]:
    project_id = str(getattr(cfg, "FIRESTORE_PROJECT_ID", "") or "").strip()
    if project_id:
        return CloudConfig(
            project_id=project_id,
            credentials_file=str(getattr(cfg, "FIRESTORE_CREDENTIALS_FILE", "") or "").strip(),
            database=str(getattr(cfg, "FIRESTORE_DATABASE", "") or "").strip(),
        )
    if local is not None:
        return load_cloud_config(local)
    return None
