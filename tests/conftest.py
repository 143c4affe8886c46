from __future__ import annotations

from concurrent.futures import Future

import pytest

from config import Config
from db import make_session_factory
from services.local_store import LocalBackend
from state_store import AppState


ADMIN_USERNAME = "admin@sprtechforge.com"
ADMIN_PASSWORD = "Admin@2026"


class FakeCloudBackend:
    """In-memory stand-in for CloudBackend: writes complete synchronously, snapshots are pushed by the test."""

    def __init__(self):
        self.docs: dict[str, dict[str, dict]] = {}
        self.listeners: dict[str, tuple] = {}
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None
        self.closed = False

    def subscribe(self, collection, on_items, on_error=None):
        self.listeners[collection] = (on_items, on_error)

        def _unsubscribe():
            self.listeners.pop(collection, None)

        return _unsubscribe

    def _future(self, fn) -> Future:
        fut: Future = Future()
        if self.fail_with is not None:
            fut.set_exception(self.fail_with)
        else:
            fut.set_result(fn())
        return fut

    def save_item(self, collection, item):
        self.calls.append(("save", collection, item["id"]))
        return self._future(lambda: self.docs.setdefault(collection, {}).__setitem__(item["id"], dict(item)))

    def delete_item(self, collection, doc_id):
        self.calls.append(("delete", collection, doc_id))
        return self._future(lambda: self.docs.get(collection, {}).pop(doc_id, None))

    def upload_batch(self, collection, items):
        self.calls.append(("upload", collection, len(items)))

        def _upload():
            for d in items:
                self.docs.setdefault(collection, {})[d["id"]] = dict(d)
            return len(items)

        return self._future(_upload)

    def push(self, collection, items=None):
        on_items, _on_error = self.listeners[collection]
        if items is None:
            items = list(self.docs.get(collection, {}).values())
        on_items(items)

    def fail(self, collection, exc):
        _on_items, on_error = self.listeners[collection]
        on_error(exc)

    def close(self):
        self.closed = True


@pytest.fixture()
def session_factory(tmp_path):
    return make_session_factory(f"sqlite:///{tmp_path / 'state.db'}")


@pytest.fixture()
def local_backend(session_factory):
    return LocalBackend(session_factory)


@pytest.fixture()
def make_state(local_backend):
    created = []

    def _make(**kwargs):
        kwargs.setdefault("local", local_backend)
        st = AppState(**kwargs)
        st.start()
        created.append(st)
        return st

    yield _make
    for st in created:
        st.close()


@pytest.fixture()
def state(make_state):
    return make_state()


@pytest.fixture()
def logged_in_state(state):
    res = state.login(ADMIN_USERNAME, ADMIN_PASSWORD)
    assert res.ok
    return state


@pytest.fixture()
def fake_cloud():
    return FakeCloudBackend()


@pytest.fixture()
def cloud_state(fake_cloud):
    st = AppState(cloud=fake_cloud)
    st.start()
    yield st
    st.close()


@pytest.fixture()
def app_config(tmp_path, monkeypatch):
    for name in ("FIRESTORE_PROJECT_ID", "FIRESTORE_CREDENTIALS_FILE", "FIRESTORE_DATABASE"):
        monkeypatch.delenv(name, raising=False)
    cfg = Config()
    cfg.DATABASE_URL = f"sqlite:///{tmp_path / 'app.db'}"
    cfg.BACKUP_DIR = str(tmp_path / "backups")
    cfg.DEFAULT_ADMIN_USERNAME = ADMIN_USERNAME
    cfg.DEFAULT_ADMIN_PASSWORD = ADMIN_PASSWORD
    cfg.RATE_LIMIT_LOGIN = 50
    return cfg


@pytest.fixture()
def app_client(app_config):
    from app import create_app

    app = create_app(app_config)
    app.config["TESTING"] = True
    yield app, app.test_client()
    app.extensions["app_state"].close()
