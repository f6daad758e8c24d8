from __future__ import annotations

import json

import pytest

from docongo.agents.prompts import EMERGENCY_RESPONSE
from docongo.api.dependencies import get_conversation_gateway, get_prescription_gateway

from conftest import PRESCRIPTION_JSON, model_reply

CHAT = "/api/conversation/chat"


def _chat(client, session_id, message, headers=None):
    return client.post(CHAT, json={"session_id": session_id, "message": message}, headers=headers or {})


@pytest.fixture
def no_model_key(client):
    import main

    main.app.dependency_overrides[get_conversation_gateway] = lambda: None
    main.app.dependency_overrides.pop(get_prescription_gateway, None)
    return client


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "DocOnGo API is running"
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["dependencies"]["llm"] == "per-request key"


def test_chat_turn(client, gateway):
    gateway.queue(model_reply(message="How long?", current_stage="symptom_collection", detected_symptoms=["headache"]))

    response = _chat(client, "s1", "I have a headache")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "How long?"
    assert body["metadata"]["stage"] == "symptom_collection"
    assert body["metadata"]["detected_symptoms"] == ["headache"]


@pytest.mark.parametrize(
    "payload",
    [
        {"session_id": "s1", "message": "   "},
        {"session_id": "", "message": "hello"},
        {"session_id": "s1"},
    ],
)
def test_chat_requires_session_and_message(client, gateway, payload):
    response = client.post(CHAT, json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"
    assert gateway.calls == []


def test_chat_without_model_key_is_unauthorized(no_model_key):
    response = _chat(no_model_key, "s1", "I have a cough")
    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHORIZED"


def test_emergency_reply_needs_no_model_key(no_model_key):
    response = _chat(no_model_key, "s1", "my father is unconscious")
    assert response.status_code == 200
    assert response.json()["message"] == EMERGENCY_RESPONSE
    assert response.json()["metadata"]["stage"] == "emergency"


def test_transport_failure_is_a_normal_reply(client, gateway):
    from docongo.errors import ModelTransportError

    gateway.queue(ModelTransportError("upstream 503"))
    response = _chat(client, "s1", "hello")
    assert response.status_code == 200
    assert response.json()["metadata"]["error"] == "model_transport"


def test_status_and_reset(client, gateway):
    assert client.get("/api/conversation/status/s1").json()["exists"] is False

    gateway.queue(model_reply(detected_symptoms=["cough"]))
    _chat(client, "s1", "I have a cough")

    status = client.get("/api/conversation/status/s1").json()
    assert status["exists"] is True
    assert status["stage"] == "greeting"
    assert status["messages_count"] == 3
    assert status["detected_symptoms"] == ["cough"]

    assert client.post("/api/conversation/reset", json={"session_id": "s1"}).json()["success"] is True
    assert client.get("/api/conversation/status/s1").json()["exists"] is False


def test_owned_session_is_gated(client, gateway, auth_headers):
    alice, bob = auth_headers("alice"), auth_headers("bob")
    gateway.queue(model_reply())
    assert _chat(client, "s1", "hello", alice).status_code == 200

    assert _chat(client, "s1", "hi", bob).status_code == 403
    assert _chat(client, "s1", "hi").status_code == 401
    emergency = _chat(client, "s1", "I have severe chest pain")
    assert emergency.status_code == 200
    assert emergency.json()["message"] == EMERGENCY_RESPONSE
    assert client.get("/api/conversation/status/s1").status_code == 401
    assert client.get("/api/conversation/status/s1", headers=bob).status_code == 403
    assert client.post("/api/conversation/reset", json={"session_id": "s1"}, headers=bob).status_code == 403

    assert client.get("/api/conversation/status/s1", headers=alice).json()["exists"] is True


def test_invalid_token_is_treated_as_anonymous(client, gateway, jwt_secret):
    gateway.queue(model_reply())
    response = _chat(client, "s1", "hello", {"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 200


def _consult(client, gateway, session_id, headers, turns=2):
    for i in range(turns):
        gateway.queue(model_reply(message=f"question {i}", detected_symptoms=["headache"]))
        assert _chat(client, session_id, f"answer {i}", headers).status_code == 200


def test_prescription_flow(client, gateway, auth_headers):
    alice = auth_headers("alice")
    _consult(client, gateway, "s1", alice)
    url = "/api/conversation/s1/prescription"

    assert client.get(url, headers=alice).status_code == 404

    gateway.queue(json.dumps(PRESCRIPTION_JSON))
    first = client.post(url, headers=alice)
    assert first.status_code == 200
    assert first.json()["cached"] is False
    assert first.json()["prescription"]["payload"]["medicines"][0]["dosage"] == "500mg twice daily"

    second = client.post(url, headers=alice)
    assert second.json()["cached"] is True
    assert second.json()["prescription"]["payload"] == first.json()["prescription"]["payload"]
    assert len(gateway.calls) == 3

    fetched = client.get(url, headers=alice)
    assert fetched.status_code == 200
    assert fetched.json()["disclaimer_text"] == first.json()["prescription"]["disclaimer_text"]


def test_prescription_needs_enough_conversation(client, gateway, auth_headers):
    alice = auth_headers("alice")
    _consult(client, gateway, "s1", alice, turns=1)

    response = client.post("/api/conversation/s1/prescription", headers=alice)
    assert response.status_code == 400
    assert len(gateway.calls) == 1


def test_prescription_access_rules(client, gateway, auth_headers):
    _consult(client, gateway, "s1", auth_headers("alice"))
    url = "/api/conversation/s1/prescription"

    assert client.post(url).status_code == 401
    assert client.post(url, headers=auth_headers("bob")).status_code == 403
    assert client.post("/api/conversation/missing/prescription", headers=auth_headers("bob")).status_code == 404


def test_anonymous_session_prescription(client, gateway):
    _consult(client, gateway, "anon", headers=None)
    url = "/api/conversation/anon/prescription"
    gateway.queue(json.dumps(PRESCRIPTION_JSON))

    generated = client.post(url)
    assert generated.status_code == 200
    assert generated.json()["cached"] is False
    assert client.get(url).status_code == 200


def test_prescription_parse_failure(client, gateway, auth_headers):
    alice = auth_headers("alice")
    _consult(client, gateway, "s1", alice)
    gateway.queue("Sorry, I can't do that.")

    response = client.post("/api/conversation/s1/prescription", headers=alice)
    assert response.status_code == 500
    assert response.json()["error"] == "CONTENT_PARSE_FAILURE"


def test_prescription_without_model_key(no_model_key, auth_headers):
    response = no_model_key.post("/api/conversation/s1/prescription", headers=auth_headers("alice"))
    assert response.status_code == 401


def test_history_is_scoped_to_caller(client, gateway, auth_headers):
    alice, bob = auth_headers("alice"), auth_headers("bob")
    _consult(client, gateway, "a1", alice, turns=1)
    _consult(client, gateway, "a2", alice, turns=1)
    _consult(client, gateway, "b1", bob, turns=1)

    body = client.get("/api/conversation/history", headers=alice).json()
    assert body["total"] == 2
    assert {s["session_id"] for s in body["sessions"]} == {"a1", "a2"}
    assert body["sessions"][0]["message_count"] == 2
    assert body["sessions"][0]["title"] == "answer 0"

    paged = client.get("/api/conversation/history?limit=1&offset=1", headers=alice).json()
    assert len(paged["sessions"]) == 1

    assert client.get("/api/conversation/history").status_code == 401


def test_conversation_details_rename_and_delete(client, gateway, auth_headers):
    alice, bob = auth_headers("alice"), auth_headers("bob")
    _consult(client, gateway, "s1", alice, turns=1)
    url = "/api/conversation/s1"

    details = client.get(url, headers=alice).json()
    assert [m["role"] for m in details["messages"]] == ["user", "assistant"]
    assert client.get(url, headers=bob).status_code == 403

    assert client.patch(url, json={"title": "Headache"}, headers=bob).status_code == 403
    renamed = client.patch(url, json={"title": "  Headache  "}, headers=alice)
    assert renamed.status_code == 200
    assert renamed.json()["title"] == "Headache"

    assert client.delete(url, headers=bob).status_code == 403
    assert client.delete(url, headers=alice).status_code == 200
    assert client.get(url, headers=alice).status_code == 404
