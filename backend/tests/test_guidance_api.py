from __future__ import annotations

from datetime import date

from fake_providers import FakeProvider

from healthguide_core import ModelGateway
from healthguide_core.gateway import CHAT_APOLOGY, FALLBACK_APPOINTMENT, FALLBACK_HEALTH_TIP
from healthguide_core.safety import SAFE_REDIRECT
from healthguide_core.service import DEFAULT_ATTRIBUTION


SYMPTOM_PAYLOAD = {
    "symptoms": [
        {"name": "fever", "severity": "moderate", "duration": {"value": 2, "unit": "days"}},
        {"name": "cough", "severity": "mild"},
    ]
}


def _use_fake_model(backend_module, *replies) -> FakeProvider:
    provider = FakeProvider(*replies)
    container = backend_module.container
    container.service.gateway = ModelGateway(provider, hooks=container.hooks)
    return provider


def _start_chat(client, headers, **body) -> str:
    response = client.post("/chat/start", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["chat"]["id"]


def test_healthz_reports_model_unavailable_without_credentials(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "model_available": False}


def test_requests_without_identity_are_rejected(client):
    assert client.post("/symptoms/check", json=SYMPTOM_PAYLOAD).status_code == 401
    assert client.post("/chat/start", json={}).status_code == 401


def test_symptom_check_uses_heuristic_when_no_model(client, auth_headers):
    response = client.post("/symptoms/check", json=SYMPTOM_PAYLOAD, headers=auth_headers("user-a"))
    assert response.status_code == 201, response.text
    body = response.json()
    assessment = body["assessment"]
    assert assessment["source"] == "heuristic"
    assert assessment["possibleConditions"][0]["condition"] == "Viral respiratory infection"
    assert assessment["possibleConditions"][0]["riskLevel"] == "medium"
    assert body["checked_at"].endswith("Z")


def test_symptom_check_validates_input(client, auth_headers):
    headers = auth_headers("user-a")
    bad_severity = {"symptoms": [{"name": "fever", "severity": "extreme"}]}
    assert client.post("/symptoms/check", json=bad_severity, headers=headers).status_code == 422
    assert client.post("/symptoms/check", json={"symptoms": []}, headers=headers).status_code == 422


def test_sixth_symptom_check_in_an_hour_is_rate_limited(client, auth_headers):
    headers = auth_headers("user-a")
    for _ in range(5):
        assert client.post("/symptoms/check", json=SYMPTOM_PAYLOAD, headers=headers).status_code == 201
    limited = client.post("/symptoms/check", json=SYMPTOM_PAYLOAD, headers=headers)
    assert limited.status_code == 429
    assert client.post("/symptoms/check", json=SYMPTOM_PAYLOAD, headers=auth_headers("user-b")).status_code == 201


def test_symptom_check_uses_model_when_configured(backend_module, client, auth_headers):
    provider = _use_fake_model(
        backend_module,
        'Sure! {"possibleConditions": [{"condition": "Common cold", "probability": 60, "confidence": 70}],'
        ' "generalAdvice": "Rest and fluids."}',
    )
    response = client.post("/symptoms/check", json=SYMPTOM_PAYLOAD, headers=auth_headers("user-a"))
    assessment = response.json()["assessment"]
    assert assessment["source"] == "model"
    assert assessment["possibleConditions"][0]["condition"] == "Common cold"
    assert assessment["recommendations"][0]["title"] == "Consult Healthcare Provider"
    assert "- fever: moderate severity, 2.0 days" in provider.calls[0]["system_prompt"]


def test_profile_round_trip_feeds_chat_context(client, auth_headers):
    headers = auth_headers("user-a")
    assert client.get("/profile", headers=headers).json() == {}
    saved = client.post(
        "/profile",
        json={"dateOfBirth": "1990-01-01", "gender": "female", "conditions": ["Asthma"]},
        headers=headers,
    )
    assert saved.json() == {"ok": True}

    profile = client.get("/profile", headers=headers).json()
    assert profile["user_id"] == "user-a"
    assert profile["context"]["existingConditions"] == ["Asthma"]

    session_id = _start_chat(client, headers, category="symptoms")
    chat = client.get(f"/chat/{session_id}", headers=headers).json()["chat"]
    user_profile = chat["context"]["userProfile"]
    assert user_profile["age"] == date.today().year - 1990
    assert user_profile["existingConditions"] == ["Asthma"]
    assert chat["category"] == "symptoms"


def test_who_made_question_answers_without_model(backend_module, client, auth_headers):
    provider = _use_fake_model(backend_module, "model should not be called")
    headers = auth_headers("user-a")
    session_id = _start_chat(client, headers)

    response = client.post(f"/chat/{session_id}/message", json={"content": "Who made this app?"}, headers=headers)
    assert response.status_code == 200, response.text
    assert response.json()["response"] == DEFAULT_ATTRIBUTION
    assert provider.calls == []


def test_chat_reply_and_urgency_tracking(backend_module, client, auth_headers):
    provider = _use_fake_model(backend_module, "Please call emergency services right away.", "Keep resting.")
    headers = auth_headers("user-a")
    session_id = _start_chat(client, headers)

    first = client.post(f"/chat/{session_id}/message", json={"content": "I have severe chest pain"}, headers=headers)
    assert first.json()["response"] == "Please call emergency services right away."
    assert first.json()["chat"]["urgencyLevel"] == "high"

    second = client.post(f"/chat/{session_id}/message", json={"content": "now my back hurts"}, headers=headers)
    assert second.json()["chat"]["urgencyLevel"] == "high"
    assert second.json()["chat"]["messageCount"] == 4

    second_call = provider.calls[1]
    assert [turn["role"] for turn in second_call["messages"]] == ["user", "assistant", "user"]
    assert second_call["messages"][-1]["content"] == "now my back hurts"

    chat = client.get(f"/chat/{session_id}", headers=headers).json()["chat"]
    assert chat["insights"]["primaryConcern"] == "symptoms"
    assert chat["context"]["emotionalState"] == "urgent"


def test_chat_without_model_returns_apology(client, auth_headers):
    headers = auth_headers("user-a")
    session_id = _start_chat(client, headers)
    response = client.post(f"/chat/{session_id}/message", json={"content": "Is coffee healthy?"}, headers=headers)
    assert response.json()["response"] == CHAT_APOLOGY


def test_unsafe_chat_reply_is_replaced_and_audited(backend_module, client, auth_headers):
    _use_fake_model(backend_module, "A natural cure is all you need.")
    headers = auth_headers("user-a")
    session_id = _start_chat(client, headers)

    response = client.post(f"/chat/{session_id}/message", json={"content": "What helps a cold?"}, headers=headers)
    assert response.json()["response"] == SAFE_REDIRECT

    events = backend_module.container.events.list_events("unsafe_content_replaced")
    assert len(events) == 1
    assert events[0]["details"]["source"] == "chat"
    assert events[0]["details"]["matched"] == ["natural cure"]
    assert (events[0]["user_id"], events[0]["session_key"]) == ("user-a", session_id)


def test_completed_session_rejects_messages_and_cannot_reopen(client, auth_headers):
    headers = auth_headers("user-a")
    session_id = _start_chat(client, headers)

    updated = client.put(f"/chat/{session_id}", json={"status": "completed"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["chat"]["status"] == "completed"

    message = client.post(f"/chat/{session_id}/message", json={"content": "one more thing"}, headers=headers)
    assert message.status_code == 404

    reopen = client.put(f"/chat/{session_id}", json={"status": "active"}, headers=headers)
    assert reopen.status_code == 409


def test_sessions_are_scoped_to_their_owner(client, auth_headers):
    session_id = _start_chat(client, auth_headers("user-a"))
    other = auth_headers("user-b")
    assert client.get(f"/chat/{session_id}", headers=other).status_code == 404
    assert client.post(f"/chat/{session_id}/message", json={"content": "hi"}, headers=other).status_code == 404
    assert client.get("/chat/missing-session", headers=auth_headers("user-a")).status_code == 404


def test_history_lists_summaries_with_filters(client, auth_headers):
    headers = auth_headers("user-a")
    general_id = _start_chat(client, headers)
    _start_chat(client, headers, category="medication")
    client.put(f"/chat/{general_id}", json={"status": "archived"}, headers=headers)
    _start_chat(client, auth_headers("user-b"))

    everything = client.get("/chat/history", headers=headers).json()
    assert everything["pagination"]["totalItems"] == 2
    assert {chat["category"] for chat in everything["chats"]} == {"general", "medication"}

    archived = client.get("/chat/history", params={"status": "archived"}, headers=headers).json()
    assert [chat["id"] for chat in archived["chats"]] == [general_id]


def test_chat_messages_are_rate_limited(backend_module, client, auth_headers, monkeypatch):
    monkeypatch.setenv("HEALTHGUIDE_CHAT_MESSAGE_LIMIT", "2")
    _use_fake_model(backend_module, "Noted.")
    headers = auth_headers("user-a")
    session_id = _start_chat(client, headers)
    for _ in range(2):
        assert client.post(f"/chat/{session_id}/message", json={"content": "hi"}, headers=headers).status_code == 200
    assert client.post(f"/chat/{session_id}/message", json={"content": "hi"}, headers=headers).status_code == 429


def test_health_tip_and_appointment_fallbacks(client, auth_headers):
    tip = client.get("/health-tips/daily").json()
    assert tip["tip"] == FALLBACK_HEALTH_TIP
    assert tip["personalized"] is False
    assert client.get("/health-tips/daily", headers=auth_headers("user-a")).json()["personalized"] is True

    suggestion = client.post("/appointments/suggest", json={"symptoms": ["fever"]}, headers=auth_headers("user-a"))
    assert suggestion.json() == {"suggestion": FALLBACK_APPOINTMENT}


def test_symptom_fallback_audit_row_names_the_user(backend_module, client, auth_headers):
    _use_fake_model(backend_module, RuntimeError("provider offline"))
    response = client.post("/symptoms/check", json=SYMPTOM_PAYLOAD, headers=auth_headers("user-a"))
    assert response.json()["assessment"]["source"] == "heuristic"

    (event,) = backend_module.container.events.list_events("model_fallback")
    assert event["user_id"] == "user-a"
    assert event["details"]["operation"] == "assess"


def test_app_starts_with_malformed_model_timeout(monkeypatch, request):
    monkeypatch.setenv("HEALTHGUIDE_MODEL_TIMEOUT_SECONDS", "twenty")
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
    backend_module = request.getfixturevalue("backend_module")

    chain = backend_module.container.service.gateway.provider
    assert chain.deadline_seconds == 25.0
    assert [provider.timeout_seconds for provider in chain.providers] == [25.0]
