"""Response envelope and canned assistant messages."""

from typing import Dict, Any, List, Optional

from ..core.types import Classification, RoutingDecision

DEFAULT_ERROR_TEXT = "Sorry, tôi đang gặp một chút vấn đề technical. Bạn có thể thử lại không?"


def create_response(
    messages: List[Dict[str, Any]],
    mode: Optional[str] = None,
    intent: Optional[str] = None,
    confidence: Optional[float] = None,
    session_id: Optional[str] = None,
    processing: Optional[str] = None,
    classification: Optional[Classification] = None,
    routing: Optional[RoutingDecision] = None,
    error: Optional[str] = None,
    task_data: Optional[Dict[str, Any]] = None,
    **extra_metadata,
) -> Dict[str, Any]:
    """Build the JSON body returned by ``POST /chat``.

    Only fields that are set appear in ``metadata``; ``taskData`` sits at the
    top level for the frontend.
    """
    response: Dict[str, Any] = {"messages": messages}

    metadata: Dict[str, Any] = {}
    if mode:
        metadata["mode"] = mode
    if intent:
        metadata["intent"] = intent
    if confidence:
        metadata["confidence"] = confidence
    if session_id:
        metadata["sessionId"] = session_id
    if processing:
        metadata["processing"] = processing
    if classification is not None:
        metadata["classification"] = {
            "intentType": classification.intent_type.value,
            "action": classification.action,
            "taskIdentifier": classification.task_identifier,
            "classificationConfidence": classification.confidence,
        }
    if routing is not None:
        metadata["routing"] = {"route": routing.route.value, "intentType": routing.intent_type.value}
    for key, value in extra_metadata.items():
        if value is not None:
            metadata[key] = value
    if metadata:
        response["metadata"] = metadata

    if error:
        response["error"] = error
    if task_data:
        response["taskData"] = task_data
    return response


def intro_messages() -> List[Dict[str, Any]]:
    return [
        {
            "text": "Chào bạn! Tôi là AI Work Assistant của bạn. Hôm nay làm việc thế nào?",
            "facialExpression": "smile",
            "animation": "Talking_1",
        },
        {
            "text": "Tôi có thể giúp bạn quản lý tasks, lên schedule, hay chỉ đơn giản là trò chuyện thôi!",
            "facialExpression": "excited",
            "animation": "Celebrating",
        },
    ]


def error_message(text: str = DEFAULT_ERROR_TEXT) -> Dict[str, Any]:
    return {"text": text, "facialExpression": "concerned", "animation": "Thinking_0"}


def operation_success_message(operation: str, result: Dict[str, Any]) -> Dict[str, Any]:
    """Short spoken summary of a successful task operation."""
    if operation == "query":
        return {
            "text": f"✅ Tìm thấy {result.get('count', 0)} tasks phù hợp với yêu cầu của bạn.",
            "facialExpression": "smile",
            "animation": "Talking_0",
        }
    if operation in ("update", "mark_complete"):
        items = result.get("updated_tasks") or result.get("completed_tasks") or []
        name = (items[0].get("title") if items else None) or "task"
        verb = "hoàn thành" if operation == "mark_complete" else "cập nhật"
        return {
            "text": f"✅ Đã {verb} {name} thành công!",
            "facialExpression": "smile",
            "animation": "Celebrating",
        }
    if operation == "delete":
        return {
            "text": f"✅ Đã xóa {result.get('count', 0)} task(s) thành công.",
            "facialExpression": "smile",
            "animation": "Talking_0",
        }
    if operation == "stats":
        stats = result.get("stats", {})
        return {
            "text": f"📊 Thống kê: {stats.get('total_tasks', 0)} tasks, hoàn thành {stats.get('completion_rate', 0)}%.",
            "facialExpression": "smile",
            "animation": "Talking_1",
        }
    return {"text": "✅ Thao tác hoàn thành thành công!", "facialExpression": "smile", "animation": "Talking_1"}


def operation_failure_message(error: str, confirmed: bool = False) -> Dict[str, Any]:
    prefix = "Có lỗi khi thực hiện" if confirmed else "Có lỗi xảy ra"
    return {"text": f"❌ {prefix}: {error}", "facialExpression": "concerned", "animation": "Talking_0"}


def task_data_for(operation: str, result: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Toast payload for the frontend, or None when there is nothing to show."""
    if not result.get("success"):
        return None
    key = {
        "query": "results",
        "update": "updated_tasks",
        "mark_complete": "completed_tasks",
        "delete": "deleted_tasks",
    }.get(operation)
    if key is None or result.get(key) is None:
        return None
    data = {
        "operation": operation,
        "tasks": result[key],
        "count": result.get("count", 0),
        "displayType": "toast",
    }
    if operation == "query":
        data["filters"] = result.get("filters", {})
    return data
