"""HTTP API tests with a scripted gateway behind the chat session."""

import asyncio
import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from pocketphone.app import create_app, create_chat_session
from pocketphone.errors import GatewayUnavailable

FIVE = "[STATUS: 开心] [MSG_SPLIT] a [MSG_SPLIT] b [MSG_SPLIT] c [MSG_SPLIT] d [MSG_SPLIT] e"
FIVE_B = "[STATUS: 忙碌] [MSG_SPLIT] v [MSG_SPLIT] w [MSG_SPLIT] x [MSG_SPLIT] y [MSG_SPLIT] z"


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by delivery and claim timers, recorded instead of waited."""
    return []


@pytest.fixture
def record_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
        await asyncio.sleep(0)
    return _sleep


@pytest.fixture
def gateway(scripted):
    return scripted(FIVE, FIVE_B)


@pytest.fixture
def client(tmp_path, gateway, record_sleep):
    app = create_app(tmp_path)
    app.state.chat = create_chat_session(gateway, sleep=record_sleep)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def lin(client) -> dict:
    resp = client.post("/api/contacts", json={"name": "Lin", "persona": "A sleepy art student."})
    return resp.json()


def _poll(client, contact_id, predicate):
    for _ in range(200):
        log = client.get(f"/api/contacts/{contact_id}/messages").json()
        if predicate(log):
            return log
        time.sleep(0.01)
    raise AssertionError("timed out waiting for the conversation log")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_settings_round_trip(client):
    resp = client.patch("/api/settings", json={"delivery_delay_ms": [100, 300]})
    assert resp.status_code == 200
    assert client.get("/api/settings").json()["delivery_delay_ms"] == [100, 300]


def test_settings_rejects_inverted_range(client):
    resp = client.patch("/api/settings", json={"delivery_delay_ms": [300, 100]})
    assert resp.status_code == 400


@pytest.mark.parametrize("body", [
    {"gateway_timeout": "soon"},
    {"gateway_timeout": 0},
    {"active_preset_id": 5},
    {"claim_delay_ms": [1]},
])
def test_settings_rejects_invalid_values(client, body):
    before = client.get("/api/settings").json()
    assert client.patch("/api/settings", json=body).status_code == 400
    assert client.get("/api/settings").json() == before


def test_delivery_pacing_applies_without_restart(client, lin, sleeps):
    client.patch("/api/settings", json={"delivery_delay_ms": [10, 20]})
    client.post(f"/api/contacts/{lin['id']}/messages", json={"text": "hi"})
    _poll(client, lin["id"], lambda log: len(log) == 6)

    client.patch("/api/settings", json={"delivery_delay_ms": [30, 40]})
    client.post(f"/api/contacts/{lin['id']}/regenerate")
    _poll(client, lin["id"], lambda log: [m["text"] for m in log][-1] == "z")

    assert len(sleeps) == 10
    assert all(0.01 <= d < 0.02 for d in sleeps[:5])
    assert all(0.03 <= d < 0.04 for d in sleeps[5:])


def test_claim_pacing_applies_without_restart(client, lin, sleeps):
    client.patch("/api/settings", json={"claim_delay_ms": [5, 6]})
    client.post(
        f"/api/contacts/{lin['id']}/messages",
        json={"type": "transfer", "transfer_amount": "52.00", "reply": False},
    )
    _poll(client, lin["id"], lambda log: log[0]["status"] == "claimed")
    assert len(sleeps) == 1
    assert 0.005 <= sleeps[0] < 0.006


def test_check_connection_ok(client):
    resp = httpx.Response(200, json={"data": [{"id": "gpt-x"}]}, request=httpx.Request("GET", "http://x"))
    with patch("httpx.AsyncClient.get", AsyncMock(return_value=resp)) as mock_get:
        body = client.post("/api/check-connection", json={"base_url": "https://api.x.com"}).json()
    assert body == {"ok": True, "models": ["gpt-x"]}
    assert mock_get.call_args[0][0] == "https://api.x.com/v1/models"


def test_check_connection_unreachable(client):
    with patch("httpx.AsyncClient.get", AsyncMock(side_effect=httpx.ConnectError("refused"))):
        body = client.post("/api/check-connection", json={"base_url": "http://localhost:1"}).json()
    assert body["ok"] is False
    assert body["models"] == []
    assert "Cannot connect" in body["error"]


# ---------------------------------------------------------------------------
# Contacts and profile
# ---------------------------------------------------------------------------

def test_create_contact(client, lin):
    assert lin["name"] == "Lin"
    assert lin["max_words"] == 50
    assert client.get(f"/api/contacts/{lin['id']}").json()["persona"] == "A sleepy art student."


def test_create_contact_requires_name(client):
    assert client.post("/api/contacts", json={"name": "  "}).status_code == 400


def test_create_contact_requires_persona(client):
    assert client.post("/api/contacts", json={"name": "Lin"}).status_code == 400
    assert client.post("/api/contacts", json={"name": "Lin", "persona": " \n"}).status_code == 400
    assert client.get("/api/contacts").json() == []


def test_update_contact_rejects_blank_persona(client, lin):
    assert client.patch(f"/api/contacts/{lin['id']}", json={"persona": "  "}).status_code == 400
    assert client.get(f"/api/contacts/{lin['id']}").json()["persona"] == "A sleepy art student."


def test_update_contact(client, lin):
    resp = client.patch(f"/api/contacts/{lin['id']}", json={"persona": "Night-shift nurse."})
    assert resp.json()["persona"] == "Night-shift nurse."
    assert resp.json()["name"] == "Lin"


def test_missing_contact(client):
    assert client.get("/api/contacts/missing").status_code == 404
    assert client.patch("/api/contacts/missing", json={"name": "x"}).status_code == 404
    assert client.delete("/api/contacts/missing").status_code == 404


def test_delete_contact(client, lin):
    assert client.delete(f"/api/contacts/{lin['id']}").json() == {"ok": True}
    assert client.get("/api/contacts").json() == []


def test_profile(client):
    client.put("/api/profile", json={"name": "阿川", "signature": "加油"})
    assert client.get("/api/profile").json()["name"] == "阿川"


# ---------------------------------------------------------------------------
# World book and restricted terms
# ---------------------------------------------------------------------------

def test_lorebook_scoping(client, lin):
    client.post("/api/lorebook", json={"name": "City", "content": "Rainy."})
    client.post("/api/lorebook", json={"name": "Cat", "content": "Orange.", "scope": "local", "character_name": "Lin"})
    client.post("/api/lorebook", json={"name": "Drums", "content": "Loud.", "scope": "local", "character_name": "Yu"})

    assert len(client.get("/api/lorebook").json()) == 3
    visible = client.get(f"/api/contacts/{lin['id']}/lorebook").json()
    assert [e["name"] for e in visible] == ["City", "Cat"]


def test_local_entry_needs_character(client):
    resp = client.post("/api/lorebook", json={"name": "Cat", "content": "x", "scope": "local"})
    assert resp.status_code == 400


def test_delete_lore_entry(client):
    entry = client.post("/api/lorebook", json={"name": "City", "content": "Rainy."}).json()
    assert client.delete(f"/api/lorebook/{entry['id']}").status_code == 200
    assert client.delete(f"/api/lorebook/{entry['id']}").status_code == 404


def test_restricted_terms(client):
    client.put("/api/restricted-terms", json=[{"word": "AI"}, {"word": "robot", "category": "immersion"}])
    assert [t["word"] for t in client.get("/api/restricted-terms").json()] == ["AI", "robot"]


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

def test_send_message_and_receive_reply(client, lin, gateway):
    resp = client.post(f"/api/contacts/{lin['id']}/messages", json={"text": "hi"})
    assert resp.status_code == 202
    assert resp.json()["message"]["is_self"] is True

    log = _poll(client, lin["id"], lambda log: len(log) == 6)
    assert [m["text"] for m in log] == ["hi", "a", "b", "c", "d", "e"]
    assert "sleepy art student" in gateway.requests[0].system

    status = client.get(f"/api/contacts/{lin['id']}/status").json()
    assert status["mood"] == "开心"
    assert status["last_error"] is None


def test_send_without_reply(client, lin, gateway):
    client.post(f"/api/contacts/{lin['id']}/messages", json={"text": "brb", "reply": False})
    assert [m["text"] for m in client.get(f"/api/contacts/{lin['id']}/messages").json()] == ["brb"]
    assert gateway.requests == []


def test_transfer_is_claimed(client, lin):
    resp = client.post(
        f"/api/contacts/{lin['id']}/messages",
        json={"type": "transfer", "transfer_amount": "52.00", "reply": False},
    )
    assert resp.json()["message"]["status"] == "unclaimed"
    log = _poll(client, lin["id"], lambda log: log[0]["status"] == "claimed")
    assert log[0]["transfer_amount"] == "52.00"


def test_messages_for_missing_contact(client):
    assert client.get("/api/contacts/missing/messages").status_code == 404
    assert client.post("/api/contacts/missing/messages", json={"text": "hi"}).status_code == 404


def test_regenerate_without_user_message(client, lin, gateway):
    resp = client.post(f"/api/contacts/{lin['id']}/regenerate")
    assert resp.status_code == 200
    assert resp.json() == {"regenerated": False}
    assert gateway.requests == []


def test_regenerate_replaces_reply(client, lin):
    client.post(f"/api/contacts/{lin['id']}/messages", json={"text": "hi"})
    _poll(client, lin["id"], lambda log: len(log) == 6)

    resp = client.post(f"/api/contacts/{lin['id']}/regenerate")
    assert resp.status_code == 202
    log = _poll(client, lin["id"], lambda log: [m["text"] for m in log][-1] == "z")
    assert [m["text"] for m in log] == ["hi", "v", "w", "x", "y", "z"]


def test_edit_and_delete_messages(client, lin):
    ids = [
        client.post(f"/api/contacts/{lin['id']}/messages", json={"text": t, "reply": False}).json()["message"]["id"]
        for t in ("one", "two", "three")
    ]
    edited = client.patch(f"/api/contacts/{lin['id']}/messages/{ids[0]}", json={"text": "uno"})
    assert edited.json()["text"] == "uno"

    assert client.delete(f"/api/contacts/{lin['id']}/messages/{ids[1]}").json() == {"ok": True}
    assert client.delete(f"/api/contacts/{lin['id']}/messages/{ids[1]}").status_code == 404

    resp = client.post(f"/api/contacts/{lin['id']}/messages/delete", json={"ids": [ids[0], ids[2]]})
    assert resp.json() == {"deleted": 2}
    assert client.get(f"/api/contacts/{lin['id']}/messages").json() == []


def test_edit_missing_message(client, lin):
    resp = client.patch(f"/api/contacts/{lin['id']}/messages/missing", json={"text": "x"})
    assert resp.status_code == 404


def test_gateway_error_surfaces_in_status(tmp_path, scripted, record_sleep):
    app = create_app(tmp_path)
    app.state.chat = create_chat_session(
        scripted(GatewayUnavailable("Model endpoint returned HTTP 500")), sleep=record_sleep,
    )
    with TestClient(app) as client:
        lin = client.post("/api/contacts", json={"name": "Lin", "persona": "x"}).json()
        client.post(f"/api/contacts/{lin['id']}/messages", json={"text": "hi"})
        for _ in range(200):
            status = client.get(f"/api/contacts/{lin['id']}/status").json()
            if status["last_error"]:
                break
            time.sleep(0.01)
        assert status["last_error"] == "Model endpoint returned HTTP 500"
        assert status["typing"] is False
        assert [m["text"] for m in client.get(f"/api/contacts/{lin['id']}/messages").json()] == ["hi"]
