from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient
import pytest

from listenos.api import build_router, create_app
from listenos.config import ListenConfig
from listenos.messages import ActionEnvelope, ActionType, VoiceMode
from listenos.resolver import IntentResolver

from tests.helpers.fakes import FakeClassifier


@pytest.fixture
def classifier():
    return FakeClassifier(ActionEnvelope.type_text("Hello there."))


def _client(classifier, api_key="desk-key", session_validator=None) -> TestClient:
    app = FastAPI()
    app.include_router(
        build_router(IntentResolver(classifier), api_key=api_key, session_validator=session_validator)
    )
    return TestClient(app)


def test_missing_api_key_is_unauthorized(classifier):
    response = _client(classifier).post("/intent/process", json={"text": "hello"})
    assert response.status_code == 401
    assert classifier.calls == []


def test_wrong_api_key_is_unauthorized(classifier):
    response = _client(classifier).post(
        "/intent/process", json={"text": "hello"}, headers={"X-API-Key": "nope"}
    )
    assert response.status_code == 401


def test_empty_text_is_bad_request(classifier):
    response = _client(classifier).post(
        "/intent/process", json={"text": "   "}, headers={"X-API-Key": "desk-key"}
    )
    assert response.status_code == 400


def test_local_command_returns_envelope(classifier):
    response = _client(classifier).post(
        "/intent/process",
        json={"text": "volume up", "context": {"active_app": "Chrome", "os": "windows", "mode": "command"}},
        headers={"X-API-Key": "desk-key"},
    )
    assert response.status_code == 200
    assert response.json() == {
        "action_type": "VolumeControl",
        "payload": {"direction": "up"},
        "refined_text": None,
        "response_text": None,
        "requires_confirmation": False,
    }
    assert classifier.calls == []


def test_remote_path_receives_request_fields():
    seen = {}

    class _Classifier:
        def classify(self, text, context=None, history=None, custom_commands=None, dictation_style=None):
            seen.update(context=context, history=history, commands=custom_commands, style=dictation_style)
            return ActionEnvelope.type_text("Let's meet at noon.")

    response = _client(_Classifier()).post(
        "/intent/process",
        json={
            "text": "lets meet at noon",
            "context": {"active_app": "Slack", "os": "macos", "mode": "dictation"},
            "conversation_history": "[09:00:00] user: hi",
            "custom_commands": [{"trigger": "ship it", "name": "Deploy", "id": "c1"}],
            "dictation_style": "casual",
        },
        headers={"X-API-Key": "desk-key"},
    )
    assert response.status_code == 200
    assert response.json()["refined_text"] == "Let's meet at noon."
    assert seen["context"].active_app == "Slack"
    assert seen["context"].mode == VoiceMode.DICTATION
    assert seen["history"] == "[09:00:00] user: hi"
    assert seen["commands"][0].name == "Deploy"
    assert seen["style"] == "casual"


def test_farewell_guard_applies_over_http():
    classifier = FakeClassifier(ActionEnvelope.command(ActionType.SYSTEM_CONTROL, action="shutdown"))
    response = _client(classifier).post(
        "/intent/process", json={"text": "goodbye"}, headers={"X-API-Key": "desk-key"}
    )
    body = response.json()
    assert body["action_type"] == "NoAction"
    assert body["payload"]["reason"] == "farewell_phrase"


def test_session_validator_authorizes(classifier):
    client = _client(
        classifier,
        session_validator=lambda request: request.cookies.get("session") == "valid",
    )
    client.cookies.set("session", "valid")
    response = client.post("/intent/process", json={"text": "hello"})
    assert response.status_code == 200


def test_open_mode_without_key(classifier):
    response = _client(classifier, api_key=None).post("/intent/process", json={"text": "hello"})
    assert response.status_code == 200
    assert response.json()["action_type"] == "TypeText"


def test_create_app_health(monkeypatch, classifier):
    monkeypatch.setenv("LISTENOS_API_KEY", "abc")
    app = create_app(config=ListenConfig.from_env(), resolver=IntentResolver(classifier))
    client = TestClient(app)
    assert client.get("/health").json() == {"status": "ok", "auth": "api_key"}
    response = client.post("/intent/process", json={"text": "open github"}, headers={"X-API-Key": "abc"})
    assert response.json()["payload"] == {"url": "https://github.com"}
