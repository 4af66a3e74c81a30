"""Conversation orchestrator.

One chat turn goes through these steps:

1. An empty message gets the intro messages.
2. A reply that opens with a refusal ("Không, ...", "No, ...") drops a
   pending task operation without running it.
3. If the session has a live pending confirmation and the message looks like
   an answer to it, the confirmation is cleared and the answer is merged
   into the stored request:
   - task operation: the stored plan is executed with the user's selection
   - conversational: the original input plus the answer is resubmitted to
     the model, falling back to a local merge if that call fails
4. Otherwise the message is classified and routed:
   - task-operations: plan with the model, confirm destructive or ambiguous
     plans, else execute against the task service
   - conversation: model reply, then either a new pending confirmation or a
     write-behind job for the task service

Jobs are returned to the caller in ``ChatReply.pending_jobs`` and submitted
only after the reply has been sent, so delivery never delays the user.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from ..integrations.task_api import TaskAPIError
from ..utils.responses import (
    create_response,
    error_message,
    intro_messages,
    operation_failure_message,
    operation_success_message,
    task_data_for,
)
from .confirmation import (
    build_combined_input,
    is_cancellation,
    is_confirmation_response,
    merge_confirmation,
    merge_task_operation,
)
from .prompts import build_assistant_prompt, build_task_operation_prompt, format_tasks_context
from .timezone import utc_now_iso
from .types import (
    AssistantConfig,
    Classification,
    ConfirmationKind,
    ConfirmationSubtype,
    ConversationResult,
    Job,
    Operation,
    PendingConfirmation,
    Route,
    RoutingDecision,
    TaskOperationPlan,
    TaskOperationResult,
)

logger = logging.getLogger(__name__)

MISSING_KEY_TEXT = "Oops! OpenAI API key bị thiếu. Vui lòng thêm API key để tiếp tục!"
TASK_OPERATION_ERROR_TEXT = "Sorry, có lỗi xảy ra khi xử lý thao tác với task."
FALLBACK_REPLY = {
    "text": "Xin lỗi, tôi chưa hiểu rõ ý bạn. Bạn có thể nói lại được không?",
    "facialExpression": "thinking",
    "animation": "Thinking_0",
}
CLARIFY_OPERATION_REPLY = {
    "text": "Tôi hiểu bạn muốn thao tác với tasks. Bạn có thể nói rõ hơn muốn làm gì không?",
    "facialExpression": "thinking",
    "animation": "Thinking_0",
}
CONFIRMED_REPLY = {
    "text": "Perfect! Đã xác nhận và thực hiện thao tác thành công.",
    "facialExpression": "smile",
    "animation": "Celebrating",
}
CANCELLED_REPLY = {
    "text": "Ok, tôi đã hủy thao tác này. Task của bạn vẫn được giữ nguyên.",
    "facialExpression": "smile",
    "animation": "Talking_0",
}


@dataclass
class ChatReply:
    """What the HTTP layer needs to answer one chat request."""
    body: Dict[str, Any]
    status_code: int = 200
    pending_jobs: List[Job] = field(default_factory=list)


def _delete_question(plan: TaskOperationPlan) -> Dict[str, Any]:
    titles = ", ".join(f"'{t.get('title')}'" for t in plan.target_tasks if t.get("title")) or "này"
    return {
        "text": f"⚠️ Bạn chắc chắn muốn xóa task {titles}? Hành động này không thể hoàn tác.",
        "facialExpression": "concerned",
        "animation": "Thinking_0",
    }


class ConversationManager:
    """Runs chat turns across the session, confirmation and routing state."""

    def __init__(
        self,
        config: AssistantConfig,
        llm_client,
        task_api,
        sessions,
        confirmations,
        router,
        executor,
        sync_queue,
        audio,
    ):
        self.config = config
        self.llm = llm_client
        self.task_api = task_api
        self.sessions = sessions
        self.confirmations = confirmations
        self.router = router
        self.executor = executor
        self.sync_queue = sync_queue
        self.audio = audio

    # ── Entry point ─────────────────────────────────────────────────────

    async def handle_chat(
        self,
        message: Optional[str],
        session_id: str = "default",
        user_id: str = "anonymous",
        user_context: Optional[Dict[str, Any]] = None,
    ) -> ChatReply:
        message = (message or "").strip()
        logger.info(f"💬 New chat request from user: {user_id}, session: {session_id}")

        if not message:
            intro = await self.audio.load_or_generate_audio(intro_messages(), "intro")
            return ChatReply(body={"messages": intro})

        if not self.config.api_key:
            return await self._error_reply(MISSING_KEY_TEXT, 401, "Missing API key")

        try:
            self.sessions.get_or_create(session_id)

            pending = self.confirmations.peek(session_id)
            if pending is not None and pending.kind is ConfirmationKind.TASK_OPERATION and is_cancellation(message):
                logger.info(f"🚫 User declined pending {pending.subtype.value} for session {session_id}")
                self.confirmations.clear(session_id)
                return await self._handle_task_operation_cancellation(message, pending, session_id)

            if pending is not None and is_confirmation_response(message, pending):
                logger.info(f"✅ Detected confirmation response for session {session_id}")
                self.confirmations.clear(session_id)
                if pending.kind is ConfirmationKind.TASK_OPERATION:
                    return await self._handle_task_operation_confirmation(message, pending, session_id, user_id)
                return await self._handle_conversational_confirmation(message, pending, session_id, user_id, user_context)

            recent = self.sessions.recent_messages(session_id, self.config.classification_history_window)
            classification = await self.router.classify(message, session_id, recent, pending)
            routing = self.router.route(classification)

            if routing.route is Route.TASK_OPERATIONS:
                return await self._handle_task_operations(message, session_id, user_id, classification, routing)
            return await self._handle_conversation(message, session_id, user_id, user_context, classification, routing)

        except Exception as e:
            logger.error(f"❌ Error in chat handler: {e}", exc_info=True)
            return await self._error_reply(status_code=500)

    async def submit_jobs(self, jobs: List[Job]):
        """Hand finished-turn jobs to the sync queue, in order."""
        for job in jobs:
            await self.sync_queue.submit(job)

    # ── Conversation path ───────────────────────────────────────────────

    async def _load_profile(self, user_id: str, user_context: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if user_context:
            return user_context
        if not user_id or user_id == "anonymous":
            return None
        return await self.task_api.get_profile(user_id)

    async def _conversation_turn(
        self,
        user_input: str,
        session_id: str,
        user_id: str,
        user_context: Optional[Dict[str, Any]],
    ) -> ConversationResult:
        """One model call on the session history. Raises on model failure."""
        profile = await self._load_profile(user_id, user_context)
        self.sessions.replace_system_message(session_id, build_assistant_prompt(profile))
        self.sessions.append(session_id, {"role": "user", "content": user_input})

        history = self.sessions.get_or_create(session_id)
        logger.info(f"🧠 Sending {len(history)} messages to {self.config.chat_model}")
        completion = await self.llm.complete_json(
            model=self.config.chat_model,
            messages=list(history),
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        self.sessions.append(session_id, {"role": "assistant", "content": completion.raw})
        return ConversationResult.from_model(completion.data)

    def _make_job(self, job_type: str, user_input: str, result: Dict[str, Any], session_id: str, user_id: str) -> Job:
        return Job(
            type=job_type,
            user_input=user_input,
            structured_result=result,
            session_id=session_id,
            user_id=user_id,
            timestamp=utc_now_iso(),
            max_attempts=self.config.job_max_attempts,
        )

    def _store_conversational_pending(
        self,
        session_id: str,
        user_input: str,
        result: ConversationResult,
        classification: Optional[Classification],
    ):
        self.confirmations.store(session_id, PendingConfirmation(
            kind=ConfirmationKind.CONVERSATIONAL,
            subtype=result.confirmation_type or ConfirmationSubtype.TASK_CLARIFICATION,
            original_user_input=user_input,
            payload=copy.deepcopy(result.to_dict()),
            original_classification=classification,
        ))

    async def _finish_conversation(
        self,
        result: ConversationResult,
        user_input: str,
        job_type: str,
        session_id: str,
        user_id: str,
        classification: Optional[Classification],
        routing: Optional[RoutingDecision],
        queued_label: str,
    ) -> ChatReply:
        structured = copy.deepcopy(result.to_dict())
        messages = copy.deepcopy(result.messages) or [dict(FALLBACK_REPLY)]
        logger.info(f"📊 Mode: {result.mode}, Intent: {result.intent}, Needs confirmation: {result.needs_confirmation}")

        jobs: List[Job] = []
        if result.needs_confirmation:
            logger.info("⏳ Response needs confirmation, storing pending data")
            self._store_conversational_pending(session_id, user_input, result, classification)
            processing = "awaiting_confirmation"
        else:
            jobs.append(self._make_job(job_type, user_input, structured, session_id, user_id))
            processing = queued_label

        await self.audio.generate_messages_audio(messages, "message")
        body = create_response(
            messages,
            mode=result.mode,
            intent=result.intent,
            confidence=result.confidence,
            session_id=session_id,
            processing=processing,
            classification=classification,
            routing=routing,
            needsConfirmation=True if result.needs_confirmation else None,
            confirmationType=result.confirmation_type.value if result.needs_confirmation else None,
        )
        return ChatReply(body=body, pending_jobs=jobs)

    async def _handle_conversation(
        self,
        message: str,
        session_id: str,
        user_id: str,
        user_context: Optional[Dict[str, Any]],
        classification: Classification,
        routing: RoutingDecision,
    ) -> ChatReply:
        try:
            result = await self._conversation_turn(message, session_id, user_id, user_context)
        except Exception as e:
            logger.error(f"❌ Conversation model call failed for session {session_id}: {e}")
            messages = [dict(FALLBACK_REPLY)]
            await self.audio.generate_messages_audio(messages, "message")
            return ChatReply(body=create_response(
                messages,
                mode="conversation",
                session_id=session_id,
                processing="model_fallback",
                classification=classification,
                routing=routing,
            ))

        return await self._finish_conversation(
            result, message, "conversation_processing", session_id, user_id,
            classification, routing, "background_job_queued",
        )

    async def _handle_conversational_confirmation(
        self,
        message: str,
        pending: PendingConfirmation,
        session_id: str,
        user_id: str,
        user_context: Optional[Dict[str, Any]],
    ) -> ChatReply:
        combined = build_combined_input(pending, message)
        try:
            result = await self._conversation_turn(combined, session_id, user_id, user_context)
        except Exception as e:
            logger.warning(f"⚠️ Model failed for confirmation, using merged pending data: {e}")
            result = merge_confirmation(message, pending)

        return await self._finish_conversation(
            result, combined, "confirmation_completion", session_id, user_id,
            pending.original_classification, None, "confirmed_and_queued",
        )

    # ── Task operations path ────────────────────────────────────────────

    async def _plan_task_operation(self, message: str, tasks: List[Dict[str, Any]]) -> TaskOperationResult:
        messages = [
            {"role": "system", "content": build_task_operation_prompt()},
            {"role": "user", "content": message + format_tasks_context(tasks)},
        ]
        try:
            completion = await self.llm.complete_json(
                model=self.config.chat_model,
                messages=messages,
                max_tokens=self.config.max_tokens,
                temperature=self.config.operation_temperature,
            )
            result = TaskOperationResult.from_model(completion.data)
            logger.info(f"✅ Task operation planned: {result.operation.value}")
            return result
        except Exception as e:
            logger.error(f"❌ Task operation planning failed: {e}")
            return TaskOperationResult(
                plan=TaskOperationPlan(
                    operation=Operation.QUERY,
                    query_filters={"status": "all", "timeRange": "all"},
                ),
                intent="fallback task query",
                confidence=0.5,
                messages=[dict(CLARIFY_OPERATION_REPLY)],
            )

    async def _handle_task_operations(
        self,
        message: str,
        session_id: str,
        user_id: str,
        classification: Classification,
        routing: RoutingDecision,
    ) -> ChatReply:
        logger.info(f"🔧 Handling task operations for user: {user_id}")
        try:
            tasks = await self.task_api.list_tasks(user_id)
        except TaskAPIError as e:
            logger.warning(f"Could not fetch tasks for {user_id}: {e}")
            tasks = []
        logger.info(f"📋 Found {len(tasks)} existing tasks for operations")

        op_result = await self._plan_task_operation(message, tasks)
        plan = op_result.plan

        if plan.operation is Operation.DELETE and not plan.needs_confirmation:
            logger.info("🛑 Delete plan without confirmation, asking first")
            plan.needs_confirmation = True
            plan.confirmation_subtype = ConfirmationSubtype.DELETE_CONFIRMATION
            if not op_result.messages:
                op_result.messages = [_delete_question(plan)]

        self.sessions.append(session_id, {"role": "user", "content": message})
        self.sessions.append(session_id, {"role": "assistant", "content": json.dumps(op_result.to_dict(), ensure_ascii=False)})

        if plan.needs_confirmation:
            self.confirmations.store(session_id, PendingConfirmation(
                kind=ConfirmationKind.TASK_OPERATION,
                subtype=plan.confirmation_subtype or ConfirmationSubtype.TASK_SELECTION,
                original_user_input=message,
                payload=copy.deepcopy(op_result.to_dict()),
                original_classification=classification,
            ))
            messages = copy.deepcopy(op_result.messages) or [_delete_question(plan)]
            await self.audio.generate_messages_audio(messages, "task_operation")
            return ChatReply(body=create_response(
                messages,
                mode="task_operation",
                intent=op_result.intent,
                confidence=op_result.confidence,
                session_id=session_id,
                processing="awaiting_confirmation",
                classification=classification,
                routing=routing,
                needsConfirmation=True,
                confirmationType=plan.confirmation_subtype.value,
            ))

        execution = await self.executor.execute(plan, user_id)
        logger.info(f"✅ Operation executed: {'Success' if execution.get('success') else 'Failed'}")

        messages = copy.deepcopy(op_result.messages)
        if execution.get("success"):
            messages.append(operation_success_message(plan.operation.value, execution))
        else:
            messages.append(operation_failure_message(execution.get("error", "unknown error")))

        await self.audio.generate_messages_audio(messages, "task_operation")
        return ChatReply(body=create_response(
            messages,
            mode="task_operation",
            intent=op_result.intent,
            confidence=op_result.confidence,
            session_id=session_id,
            classification=classification,
            routing=routing,
            task_data=task_data_for(plan.operation.value, execution),
            operationResult=execution,
        ))

    async def _handle_task_operation_confirmation(
        self,
        message: str,
        pending: PendingConfirmation,
        session_id: str,
        user_id: str,
    ) -> ChatReply:
        logger.info(f"🔧 Handling task operation confirmation ({pending.subtype.value})")
        try:
            plan = merge_task_operation(message, pending)
        except Exception as e:
            logger.error(f"❌ Stored task operation could not be restored: {e}")
            return await self._error_reply(TASK_OPERATION_ERROR_TEXT, 500, "Task operation confirmation failed")

        execution = await self.executor.execute(plan, user_id)
        logger.info(f"✅ Confirmed operation executed: {'Success' if execution.get('success') else 'Failed'}")

        if execution.get("success"):
            messages = [dict(CONFIRMED_REPLY), operation_success_message(plan.operation.value, execution)]
        else:
            messages = [operation_failure_message(execution.get("error", "unknown error"), confirmed=True)]

        self.sessions.append(session_id, {"role": "user", "content": message})
        self.sessions.append(session_id, {"role": "assistant", "content": json.dumps(execution, ensure_ascii=False, default=str)})

        await self.audio.generate_messages_audio(messages, "task_operation_confirmed")
        return ChatReply(body=create_response(
            messages,
            mode="task_operation",
            intent=pending.payload.get("intent"),
            confidence=pending.payload.get("confidence"),
            session_id=session_id,
            processing="confirmed",
            classification=pending.original_classification,
            task_data=task_data_for(plan.operation.value, execution),
            operationResult=execution,
            confirmed=True,
        ))

    async def _handle_task_operation_cancellation(
        self,
        message: str,
        pending: PendingConfirmation,
        session_id: str,
    ) -> ChatReply:
        messages = [dict(CANCELLED_REPLY)]
        self.sessions.append(session_id, {"role": "user", "content": message})
        self.sessions.append(session_id, {"role": "assistant", "content": json.dumps({"cancelled": pending.subtype.value})})

        await self.audio.generate_messages_audio(messages, "task_operation")
        return ChatReply(body=create_response(
            messages,
            mode="task_operation",
            intent=pending.payload.get("intent"),
            session_id=session_id,
            processing="cancelled",
            classification=pending.original_classification,
            cancelled=True,
        ))

    # ── Errors ──────────────────────────────────────────────────────────

    async def _error_reply(
        self,
        text: Optional[str] = None,
        status_code: int = 500,
        details: str = "Internal server error",
    ) -> ChatReply:
        messages = [error_message(text) if text else error_message()]
        await self.audio.generate_messages_audio(messages, "error")
        return ChatReply(body=create_response(messages, error=details), status_code=status_code)
