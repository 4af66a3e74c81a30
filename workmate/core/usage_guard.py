"""Optional subscription limit check run before each chat turn."""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Any

from ..integrations.task_api import TaskAPIError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_TOKENS = 2000
RESPONSE_TOKENS = 500
MIN_ESTIMATE = 100


@dataclass
class UsageDecision:
    allowed: bool
    status_code: int = 200
    body: Dict[str, Any] = field(default_factory=dict)


def limit_exceeded_message(reason: str) -> str:
    reason = (reason or "").lower()
    if "token limit" in reason:
        return "Bạn đã sử dụng hết quota tokens cho gói hiện tại. Vui lòng nâng cấp gói để tiếp tục sử dụng."
    if "request limit" in reason:
        return "Bạn đã đạt giới hạn số requests cho gói hiện tại. Vui lòng nâng cấp gói để tiếp tục."
    if "expired" in reason:
        return "Gói subscription của bạn đã hết hạn. Vui lòng gia hạn để tiếp tục sử dụng."
    if "cancelled" in reason:
        return "Gói subscription của bạn đã bị hủy. Vui lòng đăng ký lại để sử dụng dịch vụ."
    return "Không thể thực hiện request do giới hạn subscription. Vui lòng kiểm tra gói của bạn."


class UsageGuard:
    """Asks the task service whether a user may spend another chat turn."""

    def __init__(self, task_api, enabled: bool = False):
        self.task_api = task_api
        self.enabled = enabled

    @staticmethod
    def estimate_tokens(message: str) -> int:
        """Rough token estimate: ~3 characters per token plus prompt and reply overhead."""
        if not message:
            return MIN_ESTIMATE
        return math.ceil(len(message) / 3) + SYSTEM_PROMPT_TOKENS + RESPONSE_TOKENS

    async def check(self, user_id: str, message: str) -> UsageDecision:
        if not self.enabled:
            return UsageDecision(allowed=True)

        estimated = self.estimate_tokens(message)
        logger.info(f"🔒 Checking usage limits for user {user_id}, estimated tokens: {estimated}")

        try:
            result = await self.task_api.check_usage_limit(user_id, estimated)
        except TaskAPIError as e:
            if e.status_code is not None and e.status_code >= 500:
                logger.warning(f"⚠️ Usage service error ({e.status_code}), allowing request to proceed")
                return UsageDecision(allowed=True)
            logger.error(f"❌ Error checking usage limits: {e}")
            return UsageDecision(
                allowed=False,
                status_code=503,
                body={
                    "success": False,
                    "error": "subscription_check_failed",
                    "message": "Không thể kiểm tra subscription hiện tại. Vui lòng thử lại sau.",
                    "details": {"error": str(e)},
                },
            )

        if not result.get("can_proceed", False):
            reason = result.get("reason") or ""
            logger.info(f"❌ Usage limit exceeded for user {user_id}: {reason}")
            subscription = result.get("subscription") or {}
            return UsageDecision(
                allowed=False,
                status_code=429,
                body={
                    "success": False,
                    "error": "subscription_limit_exceeded",
                    "message": limit_exceeded_message(reason),
                    "details": {
                        "reason": reason,
                        "suggested_action": result.get("suggested_action"),
                        "subscription": {
                            k: subscription.get(k)
                            for k in ("plan_type", "status", "tokens_used", "tokens_limit", "requests_used", "requests_limit")
                            if k in subscription
                        } or None,
                    },
                },
            )

        logger.info(f"✅ Usage check passed for user {user_id}")
        return UsageDecision(allowed=True)
