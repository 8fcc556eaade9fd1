import pytest
from starlette.websockets import WebSocketDisconnect

from core.config import settings
from domain.webhook import EmailAllowList
from shared.codes import BusinessCode
from factories import make_token


def _bearer(email="alice@example.com", **kwargs):
    return {"Authorization": f"Bearer {make_token(email, **kwargs)}"}


def _capture(client, path="/api/v1/webhook/orders?x=1", body=b'{"order": 42}', method="POST"):
    return client.request(method, path, content=body, headers={"content-type": "application/json", "x-signature": "sig"})


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}


def test_capture_returns_receipt(client):
    resp = _capture(client)
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["code"] == BusinessCode.SUCCESS
    assert payload["message"] == "Webhook received"
    assert len(payload["data"]["id"]) == 12
    assert payload["data"]["received_at"].endswith("Z")


@pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE"])
def test_capture_accepts_any_method(client, method):
    resp = client.request(method, "/api/v1/webhook")
    assert resp.status_code == 200


def test_entries_require_token(client):
    resp = client.get("/api/v1/entries")
    assert resp.status_code == 401
    assert resp.json()["code"] == BusinessCode.UNAUTHORIZED
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_invalid_and_expired_tokens(client):
    bad = client.get("/api/v1/entries", headers=_bearer(secret="other-secret"))
    assert bad.status_code == 401
    assert bad.json()["code"] == BusinessCode.UNAUTHORIZED

    expired = client.get("/api/v1/entries", headers=_bearer(expires_in=-60))
    assert expired.status_code == 401
    assert expired.json()["code"] == BusinessCode.TOKEN_EXPIRED

    no_email = client.get("/api/v1/entries", headers=_bearer(None))
    assert no_email.status_code == 401


def test_allow_list_forbids_other_domains(client):
    client.app.state.allow_list = EmailAllowList(domains=["corp.io"])
    resp = client.get("/api/v1/entries", headers=_bearer("eve@example.com"))
    assert resp.status_code == 403
    assert resp.json()["code"] == BusinessCode.FORBIDDEN
    assert client.get("/api/v1/entries", headers=_bearer("dev@corp.io")).status_code == 200


def test_live_capture_reaches_active_inbox(client):
    token = make_token("alice@example.com")
    with client.websocket_connect(f"/api/v1/ws?token={token}") as ws:
        initial = ws.receive_json()
        assert initial["type"] == "InitialData"
        assert initial["data"]["entries"] == []

        receipt = _capture(client).json()["data"]

        pushed = ws.receive_json()
        assert pushed["type"] == "NewWebhook"
        assert pushed["data"]["entry"]["id"] == receipt["id"]

        entries = client.get("/api/v1/entries", headers=_bearer()).json()["data"]
        assert len(entries) == 1
        entry = entries[0]
        assert entry["channel"] == "orders"
        assert entry["method"] == "POST"
        assert entry["query_string"] == "?x=1"
        assert entry["body"] == '{"order": 42}'
        assert entry["headers"]["x-signature"] == "sig"
        assert entry["content_length"] == len(b'{"order": 42}')


def test_reconnect_picks_up_missed_entries(client):
    token = make_token("alice@example.com")
    with client.websocket_connect(f"/api/v1/ws?token={token}") as ws:
        assert ws.receive_json()["type"] == "InitialData"

    _capture(client)
    _capture(client, path="/api/v1/webhook/billing")

    with client.websocket_connect(f"/api/v1/ws?access_token={token}") as ws:
        snapshot = ws.receive_json()
        assert snapshot["type"] == "InitialData"
        assert {e["channel"] for e in snapshot["data"]["entries"]} == {"orders", "billing"}


def test_entry_lifecycle_over_http(client):
    headers = _bearer()
    with client.websocket_connect(f"/api/v1/ws?token={make_token()}") as ws:
        ws.receive_json()
        first = _capture(client).json()["data"]["id"]
        _capture(client)
        ws.receive_json()
        ws.receive_json()

        got = client.get(f"/api/v1/entries/{first}", headers=headers)
        assert got.status_code == 200
        assert got.json()["data"]["id"] == first

        assert client.delete(f"/api/v1/entries/{first}", headers=headers).status_code == 200
        deleted = ws.receive_json()
        assert deleted["type"] == "EntryDeleted"
        assert deleted["data"] == {"id": first}

        missing = client.get(f"/api/v1/entries/{first}", headers=headers)
        assert missing.status_code == 404
        assert missing.json()["code"] == BusinessCode.ENTRY_NOT_FOUND
        assert client.delete(f"/api/v1/entries/{first}", headers=headers).status_code == 404

        cleared = client.delete("/api/v1/entries", headers=headers)
        assert cleared.json()["data"] == {"deleted": 1}
        assert ws.receive_json()["type"] == "AllCleared"

        restored = client.post("/api/v1/entries/restore", headers=headers)
        assert len(restored.json()["data"]) == 2
        assert ws.receive_json()["type"] == "AllRestored"


def test_ws_commands(client):
    token = make_token("bob@example.com")
    _capture(client)
    with client.websocket_connect(f"/api/v1/ws?token={token}") as ws:
        entries = ws.receive_json()["data"]["entries"]
        assert len(entries) == 1

        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"

        ws.send_json({"type": "DeleteEntry", "id": entries[0]["id"]})
        deleted = ws.receive_json()
        assert deleted["type"] == "EntryDeleted"
        assert deleted["data"] == {"id": entries[0]["id"]}

        ws.send_json({"type": "RestoreAll"})
        restored = ws.receive_json()
        assert restored["type"] == "AllRestored"
        assert [e["id"] for e in restored["data"]["entries"]] == [entries[0]["id"]]

        ws.send_json({"type": "ClearAll"})
        assert ws.receive_json()["type"] == "AllCleared"

        ws.send_json({"type": "bogus"})
        assert ws.receive_json()["type"] == "error"


def test_ws_rejects_missing_or_bad_token(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/api/v1/ws") as ws:
            ws.receive_json()
    assert exc_info.value.code == 1008

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/api/v1/ws?token={make_token(secret='nope')}") as ws:
            ws.receive_json()
    assert exc_info.value.code == 1008


def test_validate_email(client):
    open_resp = client.post("/api/v1/auth/validate-email", json={"email": "x@anything.dev"})
    assert open_resp.json()["data"] == {"valid": True, "reason": None}

    client.app.state.allow_list = EmailAllowList(domains=["corp.io"])
    denied = client.post("/api/v1/auth/validate-email", json={"email": "x@anything.dev"}).json()["data"]
    assert denied["valid"] is False
    assert "anything.dev" in denied["reason"]

    assert client.post("/api/v1/auth/validate-email", json={"email": "not-an-email"}).status_code == 422


def test_admin_cleanup_requires_configured_secret(client, monkeypatch):
    assert client.post("/api/v1/admin/cleanup").status_code == 403

    monkeypatch.setattr(settings, "CLEANUP_SECRET", "s3cret")
    assert client.post("/api/v1/admin/cleanup", headers={"X-Cleanup-Secret": "wrong"}).status_code == 401

    _capture(client)
    ok = client.post("/api/v1/admin/cleanup", headers={"X-Cleanup-Secret": "s3cret"})
    assert ok.status_code == 200
    assert ok.json()["data"]["master_deleted"] == 0
    assert ok.json()["data"]["inbox_deleted"] == 0


def test_capture_records_forwarded_source_ip(client):
    with client.websocket_connect(f"/api/v1/ws?token={make_token()}") as ws:
        ws.receive_json()
        client.post("/api/v1/webhook/ip", content=b"", headers={"X-Forwarded-For": "198.51.100.9, 10.0.0.1"})
        pushed = ws.receive_json()
        assert pushed["data"]["entry"]["source_ip"] == "198.51.100.9"
        assert pushed["data"]["entry"]["content_length"] == 0


@pytest.mark.parametrize("method", ["PURGE", "PROPFIND", "TRACE"])
def test_capture_accepts_non_standard_methods(client, method):
    with client.websocket_connect(f"/api/v1/ws?token={make_token()}") as ws:
        ws.receive_json()
        resp = client.request(method, "/api/v1/webhook/cache")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Webhook received"

        entry = ws.receive_json()["data"]["entry"]
        assert entry["method"] == method
        assert entry["channel"] == "cache"


def test_capture_joins_repeated_headers(client):
    with client.websocket_connect(f"/api/v1/ws?token={make_token()}") as ws:
        ws.receive_json()
        client.post("/api/v1/webhook", content=b"{}", headers=[("x-dup", "a"), ("x-dup", "b"), ("x-single", "c")])
        headers = ws.receive_json()["data"]["entry"]["headers"]
        assert headers["x-dup"] == "a,b"
        assert headers["x-single"] == "c"
