from __future__ import annotations

import json
from unittest.mock import patch


ADMIN_USERNAME = "admin@sprtechforge.com"
ADMIN_PASSWORD = "Admin@2026"


def _api(client, payload: dict):
    return client.post("/api", data=json.dumps(payload), content_type="text/plain; charset=utf-8")


def _login(client, username: str = ADMIN_USERNAME, password: str = ADMIN_PASSWORD) -> str:
    res = _api(client, {"action": "LOGIN", "token": None, "data": {"username": username, "password": password}})
    assert res.status_code == 200
    body = res.get_json()
    assert body["ok"] is True, body
    return body["data"]["sessionToken"]


def _ok(res):
    body = res.get_json()
    assert body["ok"] is True, body
    return body["data"]


def _error_code(res) -> str:
    body = res.get_json()
    assert body["ok"] is False, body
    return body["error"]["code"]


def _add_candidate(client, token, **kw) -> dict:
    candidate = {"name": "Asha", "batchId": "B-12", "agreedAmount": 30000}
    candidate.update(kw)
    res = _api(client, {"action": "CANDIDATE_ADD", "token": token, "data": {"candidate": candidate}})
    return _ok(res)["candidate"]


def _add_income(client, token, candidate_id: str, amount: float) -> dict:
    tx = {
        "type": "Income",
        "amount": amount,
        "fromEntityId": candidate_id,
        "fromEntityType": "Candidate",
        "toEntityId": "cash-01",
        "toEntityType": "Account",
        "date": "2026-01-10",
        "description": "Fee",
    }
    res = _api(client, {"action": "TRANSACTION_ADD", "token": token, "data": {"transaction": tx}})
    return _ok(res)["transaction"]


def test_login_and_me(app_client):
    _app, client = app_client

    token = _login(client)
    data = _ok(_api(client, {"action": "ME", "token": token, "data": {}}))

    assert data["me"]["id"] == "admin-01"
    assert "password" not in data["me"]
    assert data["mode"] == "local"


def test_login_failure_reasons(app_client):
    _app, client = app_client

    res = _api(client, {"action": "LOGIN", "data": {"username": ADMIN_USERNAME, "password": "nope"}})
    assert _error_code(res) == "AUTH_INVALID"
    assert res.get_json()["error"]["message"] == "Incorrect password"

    res = _api(client, {"action": "LOGIN", "data": {"username": "ghost@example.com", "password": "x"}})
    assert res.get_json()["error"]["message"] == "User not found"


def test_actions_require_a_session(app_client):
    _app, client = app_client

    assert _error_code(_api(client, {"action": "CANDIDATES_LIST", "data": {}})) == "AUTH_INVALID"
    assert _error_code(_api(client, {"action": "CANDIDATES_LIST", "token": "ST-bogus", "data": {}})) == "AUTH_INVALID"


def test_malformed_requests(app_client):
    _app, client = app_client
    token = _login(client)

    assert _error_code(client.post("/api", data="not json", content_type="text/plain")) == "BAD_REQUEST"
    assert _error_code(_api(client, {"token": token, "data": {}})) == "BAD_REQUEST"
    assert _error_code(_api(client, {"action": "NOPE", "token": token, "data": {}})) == "BAD_REQUEST"


def test_bearer_header_is_accepted(app_client):
    _app, client = app_client
    token = _login(client)

    res = client.post(
        "/api",
        data=json.dumps({"action": "ACCOUNTS_LIST", "data": {}}),
        content_type="text/plain; charset=utf-8",
        headers={"Authorization": f"Bearer {token}"},
    )

    items = _ok(res)["items"]
    assert [a["id"] for a in items] == ["cash-01", "bank-01"]
    assert items[0]["balance"] == 0


def test_module_access_is_enforced(app_client):
    _app, client = app_client
    admin_token = _login(client)
    _ok(
        _api(
            client,
            {
                "action": "USER_ADD",
                "token": admin_token,
                "data": {
                    "user": {
                        "name": "Desk",
                        "username": "desk@example.com",
                        "password": "desk-pw",
                        "role": "staff",
                        "modules": ["candidates"],
                    }
                },
            },
        )
    )

    staff_token = _login(client, "desk@example.com", "desk-pw")

    assert _ok(_api(client, {"action": "CANDIDATES_LIST", "token": staff_token, "data": {}}))["total"] == 0
    assert _error_code(_api(client, {"action": "ACCOUNTS_LIST", "token": staff_token, "data": {}})) == "FORBIDDEN"
    assert _error_code(_api(client, {"action": "BACKUP_EXPORT", "token": staff_token, "data": {}})) == "FORBIDDEN"
    # The staff login replaced the admin session.
    assert _error_code(_api(client, {"action": "ME", "token": admin_token, "data": {}})) == "AUTH_INVALID"


def test_admin_sees_passwords_in_user_list(app_client):
    _app, client = app_client
    token = _login(client)

    items = _ok(_api(client, {"action": "USERS_LIST", "token": token, "data": {}}))["items"]

    assert items[0]["password"] == ADMIN_PASSWORD


def test_candidate_and_ledger_flow(app_client):
    _app, client = app_client
    token = _login(client)

    cand = _add_candidate(client, token)
    assert cand["payment"]["balanceDue"] == 30000
    tx = _add_income(client, token, cand["id"], 5000)
    assert tx["fromName"] == "Asha (B-12)"
    assert tx["toName"] == "Office Cash"

    listed = _ok(_api(client, {"action": "CANDIDATES_LIST", "token": token, "data": {"q": "asha"}}))
    assert listed["items"][0]["payment"]["balanceDue"] == 25000

    bal = _ok(
        _api(client, {"action": "ENTITY_BALANCE", "token": token, "data": {"entityId": "cash-01", "entityType": "Account"}})
    )
    assert bal["balance"] == 5000
    assert bal["name"] == "Office Cash"

    stmt = _ok(
        _api(client, {"action": "ENTITY_STATEMENT", "token": token, "data": {"entityId": "cash-01", "entityType": "Account"}})
    )
    assert stmt["closingBalance"] == 5000

    upd = _ok(
        _api(
            client,
            {
                "action": "CANDIDATE_UPDATE",
                "token": token,
                "data": {"candidateId": cand["id"], "patch": {"status": "Placed", "placedCompany": "Acme"}},
            },
        )
    )
    assert upd["candidate"]["status"] == "Placed"
    assert upd["candidate"]["name"] == "Asha"


def test_bad_entity_type_is_rejected(app_client):
    _app, client = app_client
    token = _login(client)

    res = _api(client, {"action": "ENTITY_BALANCE", "token": token, "data": {"entityId": "cash-01", "entityType": "Bank"}})

    assert _error_code(res) == "BAD_REQUEST"


def test_locked_transaction_rejects_edits(app_client):
    _app, client = app_client
    token = _login(client)
    cand = _add_candidate(client, token)
    tx = _add_income(client, token, cand["id"], 5000)

    locked = _ok(_api(client, {"action": "TRANSACTION_LOCK", "token": token, "data": {"transactionId": tx["id"]}}))
    assert locked["transaction"]["isLocked"] is True

    res = _api(
        client,
        {"action": "TRANSACTION_UPDATE", "token": token, "data": {"transactionId": tx["id"], "patch": {"amount": 1}}},
    )
    assert _error_code(res) == "CONFLICT"

    res = _api(client, {"action": "TRANSACTION_DELETE", "token": token, "data": {"transactionId": tx["id"]}})
    assert _error_code(res) == "CONFLICT"


def test_protected_deletes(app_client):
    _app, client = app_client
    token = _login(client)

    res = _api(client, {"action": "ACCOUNT_DELETE", "token": token, "data": {"accountId": "cash-01"}})
    assert _error_code(res) == "CONFLICT"
    assert res.get_json()["error"]["message"] == "Cannot delete a System Account."

    res = _api(client, {"action": "USER_DELETE", "token": token, "data": {"userId": "admin-01"}})
    assert _error_code(res) == "CONFLICT"

    res = _api(client, {"action": "CANDIDATE_DELETE", "token": token, "data": {"candidateId": "ghost"}})
    assert _error_code(res) == "NOT_FOUND"


def test_candidate_statuses(app_client):
    _app, client = app_client
    token = _login(client)

    items = _ok(_api(client, {"action": "CANDIDATE_STATUS_ADD", "token": token, "data": {"status": " On Hold "}}))["items"]
    assert items[-1] == "On Hold"

    res = _api(client, {"action": "CANDIDATE_STATUS_ADD", "token": token, "data": {"status": "On Hold"}})
    assert _error_code(res) == "CONFLICT"


def test_password_reset_flow(app_client):
    _app, client = app_client

    req = _ok(_api(client, {"action": "PASSWORD_RESET_REQUEST", "data": {"username": "forgot@example.com"}}))
    assert req["status"] == "pending"

    token = _login(client)
    listed = _ok(_api(client, {"action": "PASSWORD_RESET_LIST", "token": token, "data": {}}))
    assert [r["id"] for r in listed["items"]] == [req["requestId"]]

    _ok(_api(client, {"action": "PASSWORD_RESET_RESOLVE", "token": token, "data": {"requestId": req["requestId"]}}))
    listed = _ok(_api(client, {"action": "PASSWORD_RESET_LIST", "token": token, "data": {}}))
    assert listed["total"] == 0


def test_activity_logs_list(app_client):
    _app, client = app_client
    token = _login(client)
    _add_candidate(client, token)

    data = _ok(_api(client, {"action": "ACTIVITY_LOGS_LIST", "token": token, "data": {"limit": 1}}))
    assert data["total"] == 2
    assert data["items"][0]["description"] == "Created candidate Asha (B-12)"

    only_logins = _ok(_api(client, {"action": "ACTIVITY_LOGS_LIST", "token": token, "data": {"action": "login"}}))
    assert [e["description"] for e in only_logins["items"]] == ["User logged in"]


def test_backup_export_and_import(app_client):
    _app, client = app_client
    token = _login(client)
    _add_candidate(client, token)

    exported = _ok(_api(client, {"action": "BACKUP_EXPORT", "token": token, "data": {}}))
    assert exported["filename"].startswith("SPR_Backup_")
    backup = exported["backup"]
    assert len(backup["candidates"]) == 1

    backup["candidates"] = []
    res = _ok(_api(client, {"action": "BACKUP_IMPORT", "token": token, "data": {"backup": json.dumps(backup)}}))
    assert "candidates" in res["restored"]
    assert _ok(_api(client, {"action": "CANDIDATES_LIST", "token": token, "data": {}}))["total"] == 0

    bad = _api(client, {"action": "BACKUP_IMPORT", "token": token, "data": {"backup": "{oops"}})
    assert _error_code(bad) == "BAD_REQUEST"


def test_backup_write_to_disk(app_client):
    app, client = app_client
    token = _login(client)

    data = _ok(_api(client, {"action": "BACKUP_EXPORT", "token": token, "data": {"writeToDisk": True}}))

    assert data["path"].startswith(app.config["CFG"].BACKUP_DIR)


def test_export_download(app_client):
    _app, client = app_client
    token = _login(client)

    denied = client.get("/api/export")
    assert denied.get_json()["error"]["code"] == "AUTH_INVALID"

    res = client.get("/api/export", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert "attachment; filename=\"SPR_Backup_" in res.headers["Content-Disposition"]
    assert res.get_json()["users"][0]["id"] == "admin-01"


def test_cloud_status_is_public(app_client):
    _app, client = app_client

    data = _ok(_api(client, {"action": "CLOUD_STATUS", "data": {}}))

    assert data["mode"] == "local"
    assert data["enabled"] is False
    assert data["configured"] is False


def test_cloud_sync_needs_cloud_mode(app_client):
    _app, client = app_client
    token = _login(client)

    assert _error_code(_api(client, {"action": "CLOUD_SYNC", "token": token, "data": {}})) == "CONFLICT"


def test_cloud_config_save_and_clear(app_client):
    _app, client = app_client
    token = _login(client)

    with patch("actions.cloud_actions.check_cloud_config", return_value={"success": False, "error": "Missing projectId"}):
        res = _api(client, {"action": "CLOUD_CONFIG_SAVE", "token": token, "data": {"config": "{}"}})
    assert _error_code(res) == "BAD_REQUEST"

    with patch("actions.cloud_actions.check_cloud_config", return_value={"success": True}):
        saved = _ok(
            _api(client, {"action": "CLOUD_CONFIG_SAVE", "token": token, "data": {"config": '{"projectId": "spr-admin"}'}})
        )
    assert saved["restartRequired"] is True

    status = _ok(_api(client, {"action": "CLOUD_STATUS", "data": {}}))
    assert status["configured"] is True
    assert status["projectId"] == "spr-admin"
    # Mode is decided at start.
    assert status["mode"] == "local"

    _ok(_api(client, {"action": "CLOUD_CONFIG_CLEAR", "token": token, "data": {}}))
    assert _ok(_api(client, {"action": "CLOUD_STATUS", "data": {}}))["configured"] is False


def test_cloud_config_test_reports_result(app_client):
    _app, client = app_client
    token = _login(client)

    with patch("actions.cloud_actions.check_cloud_config", return_value={"success": False, "error": "Could not reach Firestore."}):
        data = _ok(_api(client, {"action": "CLOUD_CONFIG_TEST", "token": token, "data": {"config": "{}"}}))

    assert data == {"success": False, "error": "Could not reach Firestore."}


def test_logout_revokes_token(app_client):
    _app, client = app_client
    token = _login(client)

    _ok(_api(client, {"action": "LOGOUT", "token": token, "data": {}}))

    assert _error_code(_api(client, {"action": "ME", "token": token, "data": {}})) == "AUTH_INVALID"


def test_login_is_rate_limited(app_client):
    app, client = app_client
    app.config["CFG"].RATE_LIMIT_LOGIN = 2

    for _ in range(2):
        _api(client, {"action": "LOGIN", "data": {"username": ADMIN_USERNAME, "password": "nope"}})
    res = _api(client, {"action": "LOGIN", "data": {"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD}})

    assert res.status_code == 429
    assert res.get_json()["error"]["code"] == "RATE_LIMITED"


def test_unknown_endpoint_uses_error_envelope(app_client):
    _app, client = app_client

    res = client.get("/nope")

    assert res.status_code == 404
    assert res.get_json()["error"]["code"] == "NOT_FOUND"
