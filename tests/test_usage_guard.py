"""Tests for workmate.core.usage_guard."""

import pytest

from workmate.core.usage_guard import UsageGuard, limit_exceeded_message


@pytest.fixture
def guard(task_api):
    return UsageGuard(task_api, enabled=True)


class TestUsageGuard:

    def test_estimate(self):
        assert UsageGuard.estimate_tokens("") == 100
        assert UsageGuard.estimate_tokens("abcd") == 2 + 2500

    @pytest.mark.asyncio
    async def test_disabled_guard_skips_the_service(self, task_api, task_service):
        decision = await UsageGuard(task_api, enabled=False).check("u1", "hi")
        assert decision.allowed
        assert task_service.requests == []

    @pytest.mark.asyncio
    async def test_allowed(self, guard, task_service):
        decision = await guard.check("u1", "hello")
        assert decision.allowed
        sent = task_service.requests_to("POST", "/usage/check-limit")[0]["json"]
        assert sent == {"user_id": "u1", "estimated_tokens": 2502}

    @pytest.mark.asyncio
    async def test_limit_exceeded(self, guard, task_service):
        task_service.usage_reply = {
            "can_proceed": False,
            "reason": "Request limit reached",
            "subscription": {"plan_type": "free", "requests_used": 50, "requests_limit": 50},
        }
        decision = await guard.check("u1", "hello")

        assert not decision.allowed
        assert decision.status_code == 429
        assert decision.body["message"] == limit_exceeded_message("request limit")
        assert decision.body["details"]["subscription"] == {"plan_type": "free", "requests_used": 50, "requests_limit": 50}

    @pytest.mark.asyncio
    async def test_server_error_fails_open(self, guard, task_service):
        task_service.usage_status = 502
        assert (await guard.check("u1", "hello")).allowed

    @pytest.mark.asyncio
    async def test_client_error_blocks(self, guard, task_service):
        task_service.usage_status = 403
        decision = await guard.check("u1", "hello")
        assert decision.status_code == 503
        assert decision.body["error"] == "subscription_check_failed"

    def test_messages_by_reason(self):
        assert "hết hạn" in limit_exceeded_message("Subscription expired")
        assert "hủy" in limit_exceeded_message("cancelled")
        assert "giới hạn subscription" in limit_exceeded_message("")
