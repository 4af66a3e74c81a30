"""Execution of task operation plans against the task service.

``TaskOperationExecutor.execute`` never raises: every outcome is a dict with
``success`` and ``operation``, plus ``error`` on failure. Safety checks such
as confirming a delete belong to the caller.
"""

import asyncio
import logging
import re
from datetime import timedelta
from typing import Dict, Any, List, Optional

from ..integrations.task_api import TaskAPIError, TaskAPIConnectionError
from .timezone import date_offset, today_local, utc_now_iso, to_utc_iso
from .types import Operation, TaskOperationPlan

logger = logging.getLogger(__name__)

# snake_case plan fields -> camelCase fields of the task service
FIELD_MAPPING = {
    "title": "title",
    "description": "description",
    "priority": "priority",
    "category": "category",
    "status": "status",
    "due_date": "dueDate",
    "due_time": "dueTime",
    "estimated_duration": "estimatedDuration",
    "actual_duration": "actualDuration",
}

_OBJECT_ID = re.compile(r"^[0-9a-fA-F]{24}$")


def task_id_of(task: Dict[str, Any]) -> Optional[str]:
    value = task.get("id") or task.get("_id") or task.get("task_id")
    return str(value) if value else None


def _due_date_of(task: Dict[str, Any]) -> str:
    value = task.get("due_date") or task.get("dueDate") or ""
    return str(value)[:10]


def build_update_body(update_data: Dict[str, Any]) -> Dict[str, Any]:
    """Merge single-field and multi-field update data into one request body.

    Raises:
        ValueError: when the plan carries no field to change
    """
    changes: Dict[str, Any] = {}
    fields = update_data.get("fields")
    if isinstance(fields, dict):
        changes.update(fields)
    if update_data.get("field"):
        changes[update_data["field"]] = update_data.get("newValue")
    if not changes:
        raise ValueError("No update fields provided")

    body: Dict[str, Any] = {}
    for name, value in changes.items():
        api_field = FIELD_MAPPING.get(name, name)
        if api_field == "dueDate" and isinstance(value, str):
            value = to_utc_iso(value)
        body[api_field] = value

    if body.get("status") == "completed":
        body["completedAt"] = utc_now_iso()
    return body


def compute_stats(tasks: List[Dict[str, Any]]) -> Dict[str, Any]:
    total = len(tasks)
    completed = sum(1 for t in tasks if t.get("status") == "completed")
    by_category: Dict[str, int] = {}
    for task in tasks:
        category = task.get("category") or "other"
        by_category[category] = by_category.get(category, 0) + 1

    return {
        "total_tasks": total,
        "completed": completed,
        "pending": sum(1 for t in tasks if t.get("status") == "pending"),
        "in_progress": sum(1 for t in tasks if t.get("status") == "in_progress"),
        "by_priority": {
            level: sum(1 for t in tasks if t.get("priority") == level)
            for level in ("urgent", "high", "medium", "low")
        },
        "by_category": by_category,
        "completion_rate": int(round(completed / total * 100)) if total else 0,
    }


class TaskOperationExecutor:
    """Runs query / update / mark_complete / delete / stats plans."""

    def __init__(self, task_api, retry_attempts: int = 3, retry_delay: float = 1.0):
        """Initialize the executor.

        Args:
            task_api: TaskAPIClient
            retry_attempts: Retries for update and complete calls on a refused or reset connection
            retry_delay: Seconds between those retries
        """
        self.task_api = task_api
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

    async def execute(self, plan: TaskOperationPlan, user_id: str) -> Dict[str, Any]:
        operation = plan.operation
        logger.info(f"🚀 Executing {operation.value} operation for user {user_id}")
        try:
            if operation is Operation.QUERY:
                return await self._query(plan.query_filters, user_id)
            if operation is Operation.STATS:
                return await self._stats(plan.stats_request, user_id)

            targets = await self._resolve_targets(plan, user_id)
            if operation is Operation.UPDATE:
                return await self._update(targets, plan.update_data)
            if operation is Operation.MARK_COMPLETE:
                return await self._mark_complete(targets)
            if operation is Operation.DELETE:
                return await self._delete(targets)
            raise ValueError(f"Unsupported operation: {operation.value}")
        except (TaskAPIError, ValueError) as e:
            logger.error(f"❌ {operation.value} failed: {e}")
            return {"success": False, "operation": operation.value, "error": str(e)}
        except Exception as e:
            logger.error(f"❌ Unexpected error during {operation.value}: {e}", exc_info=True)
            return {"success": False, "operation": operation.value, "error": str(e)}

    async def _with_retry(self, description: str, call):
        attempt = 0
        while True:
            try:
                return await call()
            except TaskAPIConnectionError as e:
                attempt += 1
                if attempt > self.retry_attempts:
                    raise
                logger.warning(f"🔁 {description}: {e}. Retrying in {self.retry_delay}s ({attempt}/{self.retry_attempts})")
                await asyncio.sleep(self.retry_delay)

    # ── Targets ─────────────────────────────────────────────────────────

    async def _resolve_targets(self, plan: TaskOperationPlan, user_id: str) -> List[Dict[str, Any]]:
        """Fill in ids from titles and narrow by the user's selection."""
        targets = [dict(t) for t in plan.target_tasks]

        if any(not task_id_of(t) for t in targets):
            known = await self.task_api.list_tasks(user_id)
            for target in targets:
                if task_id_of(target):
                    continue
                match = self._match_title(target.get("title", ""), known)
                if match is not None:
                    target["id"] = task_id_of(match)
                    target.setdefault("title", match.get("title"))
                    logger.info(f"🔎 Resolved '{target.get('title')}' to task {target['id']}")

        if plan.user_selection and len(targets) > 1:
            selected = self._apply_selection(plan.user_selection, targets)
            if selected:
                targets = selected
        return targets

    @staticmethod
    def _match_title(title: str, tasks: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        wanted = (title or "").strip().lower()
        if not wanted:
            return None
        for task in tasks:
            if str(task.get("title", "")).strip().lower() == wanted:
                return task
        for task in tasks:
            candidate = str(task.get("title", "")).strip().lower()
            if candidate and (wanted in candidate or candidate in wanted):
                return task
        return None

    @staticmethod
    def _apply_selection(selection: str, targets: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        text = selection.strip().lower()
        numbers = [int(n) for n in re.findall(r"\d+", text)]
        by_index = [targets[n - 1] for n in numbers if 1 <= n <= len(targets)]
        if by_index:
            return by_index
        return [t for t in targets if t.get("title") and str(t["title"]).lower() in text]

    @staticmethod
    def _require_id(target: Dict[str, Any]) -> str:
        task_id = task_id_of(target)
        if not task_id:
            raise ValueError(f"Task not found: {target.get('title') or 'unknown task'}")
        return task_id

    # ── Operations ──────────────────────────────────────────────────────

    async def _query(self, filters: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for key in ("status", "priority", "category"):
            value = filters.get(key)
            if value and value != "all":
                params[key] = value

        time_range = filters.get("timeRange")
        if filters.get("dueDate"):
            params["due_date"] = str(filters["dueDate"])[:10]
        elif time_range == "today":
            params["due_date"] = date_offset(0)
        elif time_range == "tomorrow":
            params["due_date"] = date_offset(1)

        if filters.get("limit"):
            params["limit"] = int(filters["limit"])

        logger.info(f"📊 Querying tasks with filters: {params}")
        tasks = await self.task_api.list_tasks(user_id, params)

        today = today_local()
        if time_range == "overdue":
            tasks = [
                t for t in tasks
                if _due_date_of(t) and _due_date_of(t) < today.isoformat() and t.get("status") != "completed"
            ]
        elif time_range == "this_week":
            week_end = (today + timedelta(days=7)).isoformat()
            tasks = [t for t in tasks if _due_date_of(t) and today.isoformat() <= _due_date_of(t) <= week_end]

        return {
            "success": True,
            "operation": Operation.QUERY.value,
            "results": tasks,
            "count": len(tasks),
            "filters": filters,
            "server_filtered": bool(params),
        }

    async def _update(self, targets: List[Dict[str, Any]], update_data: Dict[str, Any]) -> Dict[str, Any]:
        if not targets:
            raise ValueError("No target tasks provided for update")
        body = build_update_body(update_data)

        updated = []
        for target in targets:
            task_id = self._require_id(target)
            logger.info(f"🔄 Update payload for task {task_id}: {body}")
            response = await self._with_retry(
                f"Update task {task_id}",
                lambda: self.task_api.update_task(task_id, body),
            )
            updated.append({
                "task_id": task_id,
                "title": (response or {}).get("title") or target.get("title"),
                "updated_fields": body,
                "updated_task": response,
            })

        return {
            "success": True,
            "operation": Operation.UPDATE.value,
            "updated_tasks": updated,
            "count": len(updated),
        }

    async def _mark_complete(self, targets: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not targets:
            raise ValueError("No target tasks provided for completion")

        completed = []
        for target in targets:
            if not task_id_of(target):
                raise ValueError(f"Invalid task ID for task: {target.get('title') or 'unknown task'}")
            task_id = task_id_of(target)
            if not _OBJECT_ID.match(task_id):
                logger.warning(f"⚠️ Task ID format warning: {task_id} may not be a valid ObjectId")

            completed_at = utc_now_iso()
            response = await self._with_retry(
                f"Complete task {task_id}",
                lambda: self.task_api.complete_task(task_id, completed_at),
            )
            completed.append({
                "task_id": task_id,
                "title": target.get("title"),
                "status": "completed",
                "completed_at": (response or {}).get("completed_at") or completed_at,
                "updated_task": response,
            })

        return {
            "success": True,
            "operation": Operation.MARK_COMPLETE.value,
            "completed_tasks": completed,
            "count": len(completed),
        }

    async def _delete(self, targets: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not targets:
            raise ValueError("No target tasks provided for deletion")

        deleted = []
        for target in targets:
            task_id = self._require_id(target)
            await self.task_api.delete_task(task_id)
            deleted.append({"task_id": task_id, "title": target.get("title"), "deleted": True})
            logger.info(f"🗑️ Deleted task {task_id}")

        return {
            "success": True,
            "operation": Operation.DELETE.value,
            "deleted_tasks": deleted,
            "count": len(deleted),
        }

    async def _stats(self, stats_request: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        tasks = await self.task_api.list_tasks(user_id)
        return {
            "success": True,
            "operation": Operation.STATS.value,
            "stats": compute_stats(tasks),
            "timeframe": stats_request.get("timeframe", "all_time"),
        }
