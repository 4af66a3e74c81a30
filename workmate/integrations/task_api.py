"""HTTP client for the remote task persistence service.

All endpoints live under ``<base_url>/api/v1``. Transport and HTTP failures
are mapped onto a small exception hierarchy so callers can tell a refused
connection (worth retrying) from a rejected request (not worth retrying).
"""

import logging
from typing import Dict, Any, List, Optional

import httpx

logger = logging.getLogger(__name__)


class TaskAPIError(Exception):
    """The task service failed or rejected a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TaskAPIConnectionError(TaskAPIError):
    """The connection to the task service was refused or reset."""


class TaskAPIClient:
    """Thin async wrapper around the task service endpoints."""

    def __init__(
        self,
        base_url: str,
        prefix: str = "/api/v1",
        timeout: float = 10.0,
        source: str = "workmate",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Service root, e.g. "http://localhost:8000"
            prefix: API prefix appended to the root
            timeout: Fixed per-request timeout in seconds
            source: Value sent in the X-Source header
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.base_url = base_url.rstrip("/") + prefix
        self.source = source
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"X-Source": source, "Accept": "application/json"},
            transport=transport,
        )
        logger.info(f"🔗 Task API client ready: {self.base_url}")

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except (httpx.ConnectError, httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError) as e:
            raise TaskAPIConnectionError(f"{method} {path}: connection failed ({e})") from e
        except httpx.TimeoutException as e:
            raise TaskAPIError(f"{method} {path}: timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TaskAPIError(f"{method} {path}: HTTP {status} {e.response.text[:200]}", status_code=status) from e
        except httpx.HTTPError as e:
            raise TaskAPIError(f"{method} {path}: {e}") from e

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise TaskAPIError(f"{method} {path}: response is not JSON", status_code=resp.status_code) from e

    # ── Write path ──────────────────────────────────────────────────────

    async def process_conversation(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Persist one conversation outcome (tasks, schedules, history)."""
        data = await self._request("POST", "/process-conversation", json=payload)
        return data if isinstance(data, dict) else {"success": True, "data": data}

    # ── Tasks ───────────────────────────────────────────────────────────

    async def list_tasks(self, user_id: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """GET /tasks-user/{user_id}, with optional server-side filters."""
        data = await self._request("GET", f"/tasks-user/{user_id}", params=params or None)
        if isinstance(data, dict):
            # Some deployments wrap the list
            data = data.get("tasks") or data.get("data") or []
        return [t for t in data if isinstance(t, dict)] if isinstance(data, list) else []

    async def update_task(self, task_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/tasks/{task_id}", json=body)

    async def complete_task(self, task_id: str, completed_at: Optional[str] = None) -> Dict[str, Any]:
        body = {"completedAt": completed_at} if completed_at else {}
        return await self._request("PUT", f"/tasks/{task_id}/complete", json=body)

    async def delete_task(self, task_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/tasks/{task_id}")

    # ── Optional endpoints ──────────────────────────────────────────────

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Fetch the user's profile; None when unavailable."""
        try:
            data = await self._request("GET", f"/profile/{user_id}")
        except TaskAPIError as e:
            logger.debug(f"No profile for {user_id}: {e}")
            return None
        return data if isinstance(data, dict) and data else None

    async def check_usage_limit(self, user_id: str, estimated_tokens: int) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/usage/check-limit",
            json={"user_id": user_id, "estimated_tokens": estimated_tokens},
        )

    async def aclose(self):
        await self._client.aclose()
