"""Type definitions for the work assistant.

Model output is untrusted JSON. Every structured result crosses into the
rest of the system through one of the ``from_model`` constructors below,
which coerce or default each field so downstream code never sees a partial
shape.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any
from enum import Enum


class ModelResponseError(Exception):
    """Model output was missing, not JSON, or not the expected shape."""


class IntentType(Enum):
    """The nine intent categories produced by the classifier."""
    CONVERSATION = "conversation"
    SIMPLE_TASK = "simple_task"
    SCHEDULING = "scheduling"
    TASK_QUERY = "task_query"
    TASK_UPDATE = "task_update"
    TASK_DELETE = "task_delete"
    TASK_STATS = "task_stats"
    TASK_PRIORITY = "task_priority"
    TASK_REMINDER = "task_reminder"


CONVERSATION_INTENTS = frozenset({
    IntentType.CONVERSATION,
    IntentType.SIMPLE_TASK,
    IntentType.SCHEDULING,
})

TASK_OPERATION_INTENTS = frozenset({
    IntentType.TASK_QUERY,
    IntentType.TASK_UPDATE,
    IntentType.TASK_DELETE,
    IntentType.TASK_STATS,
    IntentType.TASK_PRIORITY,
    IntentType.TASK_REMINDER,
})


class Route(Enum):
    """Processing path chosen for an utterance."""
    CONVERSATION = "conversation"
    TASK_OPERATIONS = "task-operations"


class ConfirmationKind(Enum):
    """Which path created a pending confirmation."""
    CONVERSATIONAL = "conversational"
    TASK_OPERATION = "task_operation"


class ConfirmationSubtype(Enum):
    """What the assistant is waiting for."""
    SCHEDULING_DETAILS = "scheduling_details"
    TASK_CLARIFICATION = "task_clarification"
    TIME_CONFLICT = "time_conflict"
    TASK_SELECTION = "task_selection"
    UPDATE_DETAILS = "update_details"
    DELETE_CONFIRMATION = "delete_confirmation"

    @classmethod
    def parse(cls, value: Any) -> Optional["ConfirmationSubtype"]:
        """Map a model-provided confirmation type to a subtype, or None."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class Operation(Enum):
    """Operations the task executor understands."""
    QUERY = "query"
    UPDATE = "update"
    DELETE = "delete"
    MARK_COMPLETE = "mark_complete"
    STATS = "stats"

    @classmethod
    def parse(cls, value: Any) -> Optional["Operation"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        value = value.strip().lower()
        # Priority changes are plain updates of the priority field
        if value == "priority_change":
            return cls.UPDATE
        try:
            return cls(value)
        except ValueError:
            return None


CONVERSATION_MODES = ("conversation", "simple_task", "scheduling")


# ── Coercion helpers ────────────────────────────────────────────────────

def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def clamp_confidence(value: Any, default: float = 0.0) -> float:
    """Coerce a confidence value into [0, 1]."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))


def coerce_messages(value: Any) -> List[Dict[str, Any]]:
    """Keep only messages with text; accept bare strings as messages."""
    if isinstance(value, (dict, str)):
        value = [value]
    if not isinstance(value, list):
        return []

    messages = []
    for item in value:
        if isinstance(item, str) and item.strip():
            messages.append({"text": item, "facialExpression": "default", "animation": "Talking_0"})
        elif isinstance(item, dict) and _as_str(item.get("text")).strip():
            message = dict(item)
            message.setdefault("facialExpression", "default")
            message.setdefault("animation", "Talking_0")
            messages.append(message)
    return messages


def coerce_missing_info(*sources: Any) -> List[str]:
    """Collect missingInfo entries from any of the given dicts, first wins."""
    for source in sources:
        if not isinstance(source, dict):
            continue
        entries = source.get("missingInfo")
        if isinstance(entries, str):
            entries = [entries]
        if isinstance(entries, list):
            cleaned = [_as_str(e).strip() for e in entries if _as_str(e).strip()]
            if cleaned:
                return cleaned
    return []


# ── Classification & routing ────────────────────────────────────────────

@dataclass
class Classification:
    """Classifier verdict for one utterance."""
    intent_type: IntentType
    confidence: float
    action: str = "chat"
    task_identifier: Optional[str] = None
    reasoning: str = ""

    @classmethod
    def from_model(cls, data: Any) -> "Classification":
        if not isinstance(data, dict):
            raise ModelResponseError(f"Classification must be an object, got {type(data).__name__}")
        try:
            intent_type = IntentType(_as_str(data.get("intentType")).strip().lower())
        except ValueError:
            raise ModelResponseError(f"Unknown intentType: {data.get('intentType')!r}")

        identifier = data.get("taskIdentifier")
        if isinstance(identifier, str) and identifier.strip().lower() in ("", "null", "none"):
            identifier = None

        return cls(
            intent_type=intent_type,
            confidence=clamp_confidence(data.get("confidence")),
            action=_as_str(data.get("action"), "chat") or "chat",
            task_identifier=_as_str(identifier) if identifier is not None else None,
            reasoning=_as_str(data.get("reasoning")),
        )

    @classmethod
    def fallback(cls, reasoning: str = "Classification failed, defaulting to conversation") -> "Classification":
        return cls(
            intent_type=IntentType.CONVERSATION,
            confidence=0.5,
            action="chat",
            task_identifier=None,
            reasoning=reasoning,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intentType": self.intent_type.value,
            "confidence": self.confidence,
            "action": self.action,
            "taskIdentifier": self.task_identifier,
            "reasoning": self.reasoning,
        }


@dataclass
class RoutingDecision:
    """Deterministic mapping of a classification to a processing path."""
    route: Route
    intent_type: IntentType
    confidence: float
    task_identifier: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "route": self.route.value,
            "intentType": self.intent_type.value,
            "taskIdentifier": self.task_identifier,
            "confidence": self.confidence,
        }


# ── Conversation / task-creation result ─────────────────────────────────

INERT_TASK_ACTION = {"action": "none"}
INERT_SCHEDULING_ACTION = {"type": "none", "action": "none"}


@dataclass
class ConversationResult:
    """Structured result of the conversational / task-creation path."""
    mode: str = "conversation"
    intent: str = ""
    confidence: float = 0.0
    needs_confirmation: bool = False
    confirmation_type: Optional[ConfirmationSubtype] = None
    pending_data: Dict[str, Any] = field(default_factory=dict)
    missing_info: List[str] = field(default_factory=list)
    messages: List[Dict[str, Any]] = field(default_factory=list)
    task_action: Dict[str, Any] = field(default_factory=lambda: dict(INERT_TASK_ACTION))
    scheduling_action: Dict[str, Any] = field(default_factory=lambda: dict(INERT_SCHEDULING_ACTION))

    @classmethod
    def from_model(cls, data: Any) -> "ConversationResult":
        if not isinstance(data, dict):
            raise ModelResponseError(f"Conversation result must be an object, got {type(data).__name__}")

        mode = _as_str(data.get("mode"), "conversation").strip().lower()
        if mode not in CONVERSATION_MODES:
            mode = "conversation"

        task_action = _as_dict(data.get("taskAction")) or dict(INERT_TASK_ACTION)
        task_action.setdefault("action", "none")
        scheduling_action = _as_dict(data.get("schedulingAction")) or dict(INERT_SCHEDULING_ACTION)
        scheduling_action.setdefault("type", "none")
        scheduling_action.setdefault("action", "none")

        pending_data = _as_dict(data.get("pendingData"))
        confirmation_type = ConfirmationSubtype.parse(data.get("confirmationType"))
        needs_confirmation = _as_bool(data.get("needsConfirmation"))
        # A confirmation request with an unknown subtype is still a question
        if needs_confirmation and confirmation_type is None:
            confirmation_type = ConfirmationSubtype.TASK_CLARIFICATION

        return cls(
            mode=mode,
            intent=_as_str(data.get("intent")),
            confidence=clamp_confidence(data.get("confidence")),
            needs_confirmation=needs_confirmation,
            confirmation_type=confirmation_type if needs_confirmation else None,
            pending_data=pending_data,
            missing_info=coerce_missing_info(data, pending_data, _as_dict(data.get("clarificationNeeded"))),
            messages=coerce_messages(data.get("messages")),
            task_action=task_action,
            scheduling_action=scheduling_action,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "intent": self.intent,
            "confidence": self.confidence,
            "needsConfirmation": self.needs_confirmation,
            "confirmationType": self.confirmation_type.value if self.confirmation_type else "none",
            "pendingData": self.pending_data,
            "missingInfo": list(self.missing_info),
            "messages": self.messages,
            "taskAction": self.task_action,
            "schedulingAction": self.scheduling_action,
        }


# ── Task operation plan & result ────────────────────────────────────────

@dataclass
class TaskOperationPlan:
    """Model-produced description of an action against existing tasks."""
    operation: Operation
    target_tasks: List[Dict[str, Any]] = field(default_factory=list)
    query_filters: Dict[str, Any] = field(default_factory=dict)
    update_data: Dict[str, Any] = field(default_factory=dict)
    stats_request: Dict[str, Any] = field(default_factory=dict)
    needs_confirmation: bool = False
    confirmation_subtype: Optional[ConfirmationSubtype] = None
    user_selection: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any, fallback_operation: Any = None) -> "TaskOperationPlan":
        data = _as_dict(data)
        operation = Operation.parse(data.get("operation")) or Operation.parse(fallback_operation)
        if operation is None:
            raise ModelResponseError(f"Unsupported operation: {data.get('operation')!r}")

        targets = data.get("targetTasks")
        if isinstance(targets, dict):
            targets = [targets]
        targets = [dict(t) for t in targets if isinstance(t, dict)] if isinstance(targets, list) else []

        return cls(
            operation=operation,
            target_tasks=targets,
            query_filters=_as_dict(data.get("queryFilters")),
            update_data=_as_dict(data.get("updateData")),
            stats_request=_as_dict(data.get("statsRequested") or data.get("statsRequest")),
            user_selection=_as_str(data.get("userSelection")) or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "operation": self.operation.value,
            "targetTasks": self.target_tasks,
            "queryFilters": self.query_filters,
            "updateData": self.update_data,
            "statsRequested": self.stats_request,
            "needsConfirmation": self.needs_confirmation,
            "confirmationType": self.confirmation_subtype.value if self.confirmation_subtype else "none",
        }
        if self.user_selection:
            data["userSelection"] = self.user_selection
        return data


@dataclass
class TaskOperationResult:
    """Structured result of the task-operations path."""
    plan: TaskOperationPlan
    intent: str = ""
    confidence: float = 0.0
    messages: List[Dict[str, Any]] = field(default_factory=list)
    missing_info: List[str] = field(default_factory=list)

    @property
    def operation(self) -> Operation:
        return self.plan.operation

    @property
    def needs_confirmation(self) -> bool:
        return self.plan.needs_confirmation

    @property
    def confirmation_type(self) -> Optional[ConfirmationSubtype]:
        return self.plan.confirmation_subtype

    @classmethod
    def from_model(cls, data: Any) -> "TaskOperationResult":
        if not isinstance(data, dict):
            raise ModelResponseError(f"Task operation result must be an object, got {type(data).__name__}")
        if not isinstance(data.get("taskOperation"), dict):
            raise ModelResponseError("Task operation result is missing taskOperation")

        plan = TaskOperationPlan.from_dict(data["taskOperation"], fallback_operation=data.get("operation"))
        subtype = ConfirmationSubtype.parse(data.get("confirmationType"))
        plan.needs_confirmation = _as_bool(data.get("needsConfirmation"))
        if plan.needs_confirmation and subtype is None:
            subtype = ConfirmationSubtype.TASK_SELECTION
        plan.confirmation_subtype = subtype if plan.needs_confirmation else None

        return cls(
            plan=plan,
            intent=_as_str(data.get("intent")),
            confidence=clamp_confidence(data.get("confidence")),
            messages=coerce_messages(data.get("messages")),
            missing_info=coerce_missing_info(data, _as_dict(data.get("clarificationNeeded"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.plan.operation.value,
            "intent": self.intent,
            "confidence": self.confidence,
            "needsConfirmation": self.plan.needs_confirmation,
            "confirmationType": self.plan.confirmation_subtype.value if self.plan.confirmation_subtype else "none",
            "messages": self.messages,
            "taskOperation": self.plan.to_dict(),
            "missingInfo": list(self.missing_info),
        }


# ── Confirmation & sync jobs ────────────────────────────────────────────

@dataclass
class PendingConfirmation:
    """Outstanding clarification request for one session."""
    kind: ConfirmationKind
    subtype: ConfirmationSubtype
    original_user_input: str
    payload: Dict[str, Any] = field(default_factory=dict)
    original_classification: Optional[Classification] = None
    created_at: float = 0.0
    expires_at: float = 0.0

    @property
    def missing_info(self) -> List[str]:
        return coerce_missing_info(self.payload, _as_dict(self.payload.get("pendingData")))


@dataclass
class Job:
    """One queued delivery of a conversation outcome to the task service."""
    type: str
    user_input: str
    structured_result: Dict[str, Any]
    session_id: str
    user_id: str
    timestamp: str
    attempts: int = 0
    max_attempts: int = 3
    next_attempt_at: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ── Configuration ───────────────────────────────────────────────────────

@dataclass
class AssistantConfig:
    """Configuration for the work assistant."""
    # Language model (LiteLLM model strings)
    api_key: str = ""
    chat_model: str = "openai/gpt-4o-mini"
    intent_model: str = "openai/gpt-4o-mini"
    max_tokens: int = 2000
    temperature: float = 0.7
    intent_temperature: float = 0.2
    operation_temperature: float = 0.3

    # Speech
    audio_enabled: bool = True
    tts_model: str = "openai/tts-1"
    tts_voice: str = "nova"
    audio_dir: str = "./audios"
    rhubarb_path: str = "./bin/rhubarb"
    ffmpeg_path: str = "ffmpeg"

    # Task persistence service
    task_api_url: str = "http://localhost:8000"
    task_api_prefix: str = "/api/v1"
    task_api_timeout: float = 10.0

    # Write-behind sync queue
    job_max_attempts: int = 3
    job_retry_delay: float = 2.0  # backoff base, seconds
    job_send_interval: float = 0.1

    # Task operation retries (connection refused / reset only)
    operation_retry_attempts: int = 3
    operation_retry_delay: float = 1.0

    # Sessions & confirmations
    max_history: int = 20
    keep_recent: int = 15
    confirmation_ttl_seconds: int = 1800
    routing_confidence_threshold: float = 0.6
    classification_history_window: int = 6

    # Usage limits (optional subscription check)
    usage_limits_enabled: bool = False

    # User
    timezone: str = "Asia/Ho_Chi_Minh"

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # Logging
    log_level: str = "INFO"
    log_file: str = "./data/logs/workmate.log"
