"""Tests for the FastAPI routes in workmate.channels.http_channel."""

import pytest
from fastapi.testclient import TestClient

from workmate.main import build_channel


@pytest.fixture
def channel(config, fake_llm, task_api):
    return build_channel(config, llm_client=fake_llm, task_api=task_api)


@pytest.fixture
def client(channel):
    with TestClient(channel.app) as client:
        yield client


class TestServiceRoutes:

    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.text == "AI Work Assistant Server is running!"

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert "timestamp" in body
        assert body["jobs"]["queueSize"] == 0
        assert body["jobs"]["isProcessing"] is False

    def test_job_status(self, client):
        body = client.get("/job-status").json()
        assert body == {
            "queueSize": 0,
            "isProcessing": False,
            "totalProcessed": 0,
            "totalFailed": 0,
            "totalDropped": 0,
            "lastProcessed": None,
        }

    def test_process_jobs(self, client):
        body = client.post("/process-jobs").json()
        assert body["queueSize"] == 0
        assert "triggered" in body["message"]

    def test_unknown_route(self, client):
        resp = client.get("/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": {"message": "Route /nope not found", "status": 404}}


class TestChat:

    def test_empty_message_returns_intro(self, client, fake_llm):
        resp = client.post("/chat", json={"message": ""})
        assert resp.status_code == 200
        assert len(resp.json()["messages"]) == 2
        assert fake_llm.calls == []

    def test_invalid_json(self, client):
        resp = client.post("/chat", content="{not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["error"]["status"] == 400

    def test_conversation_is_delivered_after_reply(self, client, fake_llm, task_service):
        fake_llm.add(
            {"intentType": "conversation", "confidence": 0.9},
            {"mode": "conversation", "intent": "greet", "confidence": 0.9, "messages": [{"text": "Chào!"}]},
        )

        resp = client.post("/chat", json={"message": "Chào", "sessionId": "web-1", "userId": "u1"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["messages"][0]["text"] == "Chào!"
        assert body["metadata"]["sessionId"] == "web-1"
        delivered = task_service.requests_to("POST", "/process-conversation")
        assert len(delivered) == 1
        assert delivered[0]["headers"]["x-source"] == "workmate"
        assert delivered[0]["json"]["session_id"] == "web-1"
        assert client.get("/job-status").json()["totalProcessed"] == 1

    def test_usage_limit_blocks_chat(self, channel, client, fake_llm, task_service):
        channel.usage_guard.enabled = True
        task_service.usage_reply = {"can_proceed": False, "reason": "Monthly token limit exceeded"}

        resp = client.post("/chat", json={"message": "Chào", "userId": "u1"})

        assert resp.status_code == 429
        assert resp.json()["error"] == "subscription_limit_exceeded"
        assert fake_llm.calls == []
