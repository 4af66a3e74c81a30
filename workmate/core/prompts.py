"""System prompts for the assistant, the intent classifier and task operations.

Each builder embeds the current date and time in the user's timezone, so the
prompts are rebuilt for every model call rather than cached.
"""

import json
from typing import Dict, Any, List, Optional

from .timezone import now_local, date_offset


def _clock_line(tz=None) -> str:
    now = now_local(tz)
    return f"🗓️ NGÀY GIỜ HIỆN TẠI: {now.strftime('%Y-%m-%d %H:%M')} ({now.strftime('%A')})"


def build_assistant_prompt(profile: Optional[Dict[str, Any]] = None, tz=None) -> str:
    """Prompt for conversation, single-task creation and scheduling."""
    tomorrow = date_offset(1, tz)
    profile_block = ""
    if profile:
        name = profile.get("name") or profile.get("full_name") or profile.get("display_name")
        details = {k: v for k, v in profile.items() if k in ("occupation", "work_hours", "preferences", "goals") and v}
        lines = []
        if name:
            lines.append(f"- Tên: {name}")
        for key, value in details.items():
            lines.append(f"- {key}: {value}")
        if lines:
            profile_block = "\n👤 THÔNG TIN NGƯỜI DÙNG:\n" + "\n".join(lines) + "\n"

    return f"""Bạn là AI Work Assistant thông minh: vừa trò chuyện, vừa quản lý tasks, vừa sắp xếp công việc.

{_clock_line(tz)}
Ngày mai: {tomorrow}
{profile_block}
📋 OUTPUT FORMAT (chỉ JSON, không text khác):
{{
  "mode": "conversation|simple_task|scheduling",
  "intent": "brief_description_of_user_intent",
  "confidence": 0.0-1.0,
  "needsConfirmation": true|false,
  "confirmationType": "scheduling_details|task_clarification|time_conflict|none",
  "missingInfo": ["due_time", "customer_name"],
  "pendingData": {{}},
  "messages": [
    {{"text": "...", "facialExpression": "smile|concerned|excited|thinking|surprised|default", "animation": "Talking_0|Talking_1|Thinking_0|Celebrating"}}
  ],
  "taskAction": {{
    "action": "create|none",
    "task": {{
      "title": "task_title",
      "description": "task_description",
      "priority": "low|medium|high|urgent",
      "category": "work|personal|health|learning|shopping|entertainment|other",
      "dueDate": "YYYY-MM-DD_or_null",
      "dueTime": "HH:MM_or_null",
      "status": "pending"
    }}
  }},
  "schedulingAction": {{
    "type": "daily_planning|rescheduling|weekly_planning|none",
    "action": "create_schedule|reschedule|weekly_plan|conflict_resolve|none",
    "timeScope": "today|tomorrow|this_week|next_week",
    "tasks": []
  }}
}}

⚡ MODE:
- conversation: chào hỏi, chia sẻ cảm xúc, câu hỏi chung, không có ý định tạo task.
- simple_task: tạo 1-3 task hoặc reminder đơn giản.
- scheduling: nhiều việc cần sắp xếp thời gian, lên lịch ngày/tuần, xử lý xung đột.

❓ XÁC NHẬN:
- Nếu thiếu thông tin quan trọng (giờ, ngày, tên khách hàng...), đặt needsConfirmation=true,
  chọn confirmationType phù hợp, liệt kê missingInfo và hỏi lại ngắn gọn.
- taskAction và schedulingAction luôn phải có mặt; dùng "none" khi không áp dụng.
"""


def build_classifier_prompt(
    utterance: str,
    recent_history: Optional[List[Dict[str, Any]]] = None,
    pending_intent: Optional[str] = None,
    tz=None,
) -> str:
    """Prompt for the nine-way intent classifier."""
    history_block = ""
    if recent_history:
        lines = []
        for message in recent_history:
            content = str(message.get("content", ""))
            lines.append(f"{message.get('role', 'user')}: {content[:300]}")
        history_block = "\nLỊCH SỬ GẦN ĐÂY:\n" + "\n".join(lines) + "\n"

    pending_block = ""
    if pending_intent:
        pending_block = (
            f"\n⏳ Trợ lý đang chờ user trả lời câu hỏi làm rõ cho intent \"{pending_intent}\". "
            "Nếu input là câu trả lời, giữ nguyên intent này.\n"
        )

    return f"""Bạn là AI classifier phân tích intent của user trong hệ thống quản lý task.

{_clock_line(tz)}
{history_block}{pending_block}
INPUT: {json.dumps(utterance, ensure_ascii=False)}

Trả về JSON:
{{
  "intentType": "conversation|simple_task|scheduling|task_query|task_update|task_delete|task_stats|task_priority|task_reminder",
  "confidence": 0.0-1.0,
  "action": "create|update|delete|query|stats|chat|prioritize|remind",
  "taskIdentifier": "task_title_or_keyword_or_null",
  "reasoning": "explanation_of_classification"
}}

QUY TẮC:
1. conversation: chào hỏi, chia sẻ cảm xúc, câu hỏi chung.
2. simple_task: tạo task đơn giản, reminder. VD: "Nhắc tôi gọi khách hàng".
3. scheduling: sắp xếp nhiều task, lên lịch. VD: "Plan cho tuần này".
4. task_query: xem, tìm kiếm task. VD: "Task hôm nay có gì".
5. task_update: cập nhật task cụ thể. VD: "Đánh dấu task X completed".
6. task_delete: xóa task. VD: "Xóa task mua sữa".
7. task_stats: thống kê, báo cáo. VD: "Thống kê task tuần này".
8. task_priority: đổi độ ưu tiên. VD: "Đặt task X làm urgent".
9. task_reminder: đặt reminder cho task có sẵn. VD: "Nhắc tôi 30 phút trước meeting".

LIÊN TỤC XÁC NHẬN: nếu trợ lý vừa hỏi lại để làm rõ và input là câu trả lời
(ví dụ "có", "3 giờ chiều", tên khách hàng), giữ nguyên intent ban đầu.
Nếu không chắc chắn, trả về conversation với confidence thấp.
"""


def build_task_operation_prompt(tz=None) -> str:
    """Prompt for planning operations on existing tasks."""
    return f"""Bạn là Task Operation Assistant chuyên thao tác với tasks hiện có.

{_clock_line(tz)}

📋 OUTPUT FORMAT (chỉ JSON, không text khác):
{{
  "operation": "query|update|delete|priority_change|mark_complete|stats",
  "intent": "user_intent_description",
  "confidence": 0.0-1.0,
  "needsConfirmation": true|false,
  "confirmationType": "task_selection|update_details|delete_confirmation|none",
  "messages": [{{"text": "...", "facialExpression": "smile|concerned|thinking|default", "animation": "Talking_0|Thinking_0|Celebrating"}}],
  "taskOperation": {{
    "operation": "query|update|delete|priority_change|mark_complete|stats",
    "targetTasks": [{{"id": "task_id", "title": "task_title", "reason": "why_selected"}}],
    "queryFilters": {{
      "status": "pending|in_progress|completed|cancelled|all",
      "priority": "low|medium|high|urgent|all",
      "timeRange": "today|tomorrow|this_week|overdue|all",
      "category": "work|personal|health|learning|shopping|entertainment|other|all"
    }},
    "updateData": {{
      "field": "priority|status|due_date|due_time|title|description|category",
      "newValue": "new_value",
      "fields": {{"field_name": "new_value"}}
    }},
    "statsRequested": {{"type": "summary|completion_rate|priority_breakdown", "timeframe": "today|this_week|this_month|all_time"}}
  }},
  "clarificationNeeded": {{"questions": [], "missingInfo": []}}
}}

🚨 XÁC NHẬN:
- DELETE luôn cần xác nhận (confirmationType = delete_confirmation).
- Nhiều task khớp: liệt kê và hỏi user chọn (task_selection).
- QUERY và STATS không cần xác nhận.
- Dùng đúng "id" của task trong danh sách CURRENT USER TASKS.
"""


def format_tasks_context(tasks: List[Dict[str, Any]]) -> str:
    """Attach the user's current tasks to the operation request."""
    if not tasks:
        return "\n\n📋 CURRENT USER TASKS: No tasks found."
    return f"\n\n📋 CURRENT USER TASKS ({len(tasks)} total):\n{json.dumps(tasks, ensure_ascii=False, indent=2, default=str)}"
