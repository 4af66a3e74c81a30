"""Shared fixtures and fakes for the workmate test suite."""

import json
import re
from typing import Any, Dict, List, Optional

import httpx
import pytest

from workmate.core.types import AssistantConfig
from workmate.integrations.llm_client import JSONCompletion, LLMUsage
from workmate.integrations.task_api import TaskAPIClient


class FakeLLM:
    """Returns scripted JSON replies in order; exceptions in the script are raised."""

    def __init__(self, replies: Optional[List[Any]] = None):
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    def add(self, *replies: Any):
        self.replies.extend(replies)

    async def complete_json(self, model, messages, max_tokens=1024, temperature=0.7):
        self.calls.append({"model": model, "messages": [dict(m) for m in messages], "temperature": temperature})
        if not self.replies:
            raise RuntimeError("FakeLLM has no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return JSONCompletion(data=reply, raw=json.dumps(reply, ensure_ascii=False), usage=LLMUsage(10, 20))

    async def synthesize_speech(self, text, model, voice):
        return b""


class FakeAudio:
    """Audio service stand-in that records which prefixes were voiced."""

    def __init__(self):
        self.prefixes: List[str] = []

    async def generate_messages_audio(self, messages, prefix="message"):
        self.prefixes.append(prefix)
        return messages

    async def load_or_generate_audio(self, messages, prefix):
        self.prefixes.append(prefix)
        return messages


class FakeTaskService:
    """In-memory task service behind an httpx.MockTransport."""

    def __init__(self):
        self.tasks: Dict[str, List[Dict[str, Any]]] = {}
        self.requests: List[Dict[str, Any]] = []
        self.delivery_failures = 0
        self.update_resets = 0
        self.update_status: Optional[int] = None
        self.usage_reply: Dict[str, Any] = {"can_proceed": True}
        self.usage_status = 200

    def requests_to(self, method: str, pattern: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r["method"] == method and re.fullmatch(pattern, r["path"])]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.replace("/api/v1", "", 1)
        body = json.loads(request.content) if request.content else None
        self.requests.append({
            "method": request.method,
            "path": path,
            "params": dict(request.url.params),
            "json": body,
            "headers": dict(request.headers),
        })

        if request.method == "POST" and path == "/process-conversation":
            if self.delivery_failures > 0:
                self.delivery_failures -= 1
                return httpx.Response(503, json={"detail": "unavailable"})
            return httpx.Response(200, json={"success": True})

        match = re.fullmatch(r"/tasks-user/([^/]+)", path)
        if request.method == "GET" and match:
            tasks = self.tasks.get(match.group(1), [])
            status = request.url.params.get("status")
            if status:
                tasks = [t for t in tasks if t.get("status") == status]
            return httpx.Response(200, json=tasks)

        match = re.fullmatch(r"/tasks/([^/]+)/complete", path)
        if request.method == "PUT" and match:
            if self.update_resets > 0:
                self.update_resets -= 1
                raise httpx.ConnectError("Connection reset by peer", request=request)
            return httpx.Response(200, json={"id": match.group(1), "status": "completed", "completed_at": "2025-01-01T00:00:00Z"})

        match = re.fullmatch(r"/tasks/([^/]+)", path)
        if request.method == "PUT" and match:
            if self.update_resets > 0:
                self.update_resets -= 1
                raise httpx.ConnectError("Connection reset by peer", request=request)
            if self.update_status:
                return httpx.Response(self.update_status, json={"detail": "rejected"})
            return httpx.Response(200, json={"id": match.group(1), **(body or {})})
        if request.method == "DELETE" and match:
            return httpx.Response(200, json={"success": True})

        if request.method == "GET" and path.startswith("/profile/"):
            return httpx.Response(404, json={"detail": "not found"})

        if request.method == "POST" and path == "/usage/check-limit":
            return httpx.Response(self.usage_status, json=self.usage_reply)

        return httpx.Response(404, json={"detail": "unknown route"})


@pytest.fixture
def task_service():
    return FakeTaskService()


@pytest.fixture
def task_api(task_service):
    return TaskAPIClient(
        "http://tasks.test",
        prefix="/api/v1",
        timeout=5.0,
        transport=httpx.MockTransport(task_service.handler),
    )


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_audio():
    return FakeAudio()


@pytest.fixture
def config(tmp_path):
    return AssistantConfig(
        api_key="test-key",
        audio_enabled=False,
        audio_dir=str(tmp_path / "audios"),
        job_retry_delay=0.0,
        job_send_interval=0.0,
        operation_retry_delay=0.0,
        log_file=str(tmp_path / "workmate.log"),
    )
