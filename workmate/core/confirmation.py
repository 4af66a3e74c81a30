"""Confirmation detection and merging.

Pure heuristics: no model calls happen here. ``is_confirmation_response``
decides whether a reply answers the session's pending question, and the
merge helpers fold that reply back into the stored result.
"""

import copy
import logging
import re
import unicodedata
from typing import Iterable, List, Optional

from .types import (
    ConfirmationKind,
    ConfirmationSubtype,
    ConversationResult,
    PendingConfirmation,
    TaskOperationPlan,
)

logger = logging.getLogger(__name__)

AFFIRMATION_KEYWORDS = (
    # Vietnamese
    "có", "ok", "okay", "oke", "vâng", "dạ", "ừ", "ừm", "đúng", "đúng rồi", "đồng ý",
    "xác nhận", "được", "chắc chắn", "tiếp tục", "làm đi", "xóa đi", "chuẩn",
    # English
    "yes", "yeah", "yep", "sure", "confirm", "confirmed", "go ahead", "correct", "that's right",
)

# Any of these turns the reply into a refusal, whatever else it contains
NEGATION_KEYWORDS = (
    # Vietnamese
    "không", "ko", "đừng", "thôi", "hủy", "huỷ", "chưa", "khỏi",
    # English
    "no", "nope", "not", "don't", "don’t", "dont", "cancel", "stop", "never mind",
)

DOMAIN_KEYWORDS = (
    # Dates and times
    "giờ", "phút", "ngày", "ngày mai", "sáng mai", "chiều mai", "tối mai", "hôm nay",
    "sáng", "trưa", "chiều", "tối", "tuần", "tháng", "chủ nhật",
    "tomorrow", "today", "tonight",
    # People
    "khách hàng", "customer", "client",
)

_TIME_PATTERNS = (
    re.compile(r"\b\d{1,2}\s*(?:h|g|giờ)(?:\s*\d{1,2})?\b"),
    re.compile(r"\b\d{1,2}:\d{2}\b"),
    re.compile(r"\b\d{1,2}(?::\d{2})?\s*(?:am|pm)\b"),
    re.compile(r"\b\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?\b"),
    re.compile(r"(?<!\w)thứ\s*(?:[2-7]|hai|ba|tư|năm|sáu|bảy)(?!\w)"),
)

# Picking one of several listed tasks: "số 2", "cái thứ 2", "#3", "2"
_SELECTION_PATTERNS = (
    re.compile(r"(?<!\w)(?:số|thứ|cái|task|#)\s*\d+(?!\w)"),
    re.compile(r"^\d+$"),
    re.compile(r"(?<!\w)(?:đầu tiên|cuối cùng|first|second|third|last)(?!\w)"),
)

_MIN_TOKEN_LENGTH = 3


def normalize_text(text: str) -> str:
    """Lowercase, NFC-normalize and collapse whitespace."""
    text = unicodedata.normalize("NFC", text or "").lower()
    return " ".join(text.split())


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text) is not None


def _contains_any(text: str, phrases: Iterable[str]) -> bool:
    return any(_contains_phrase(text, normalize_text(p)) for p in phrases)


def _overlaps_missing_info(text: str, missing_info: Iterable[str]) -> bool:
    for entry in missing_info:
        phrase = normalize_text(entry.replace("_", " "))
        if not phrase:
            continue
        if _contains_phrase(text, phrase):
            return True
        for token in phrase.split():
            if len(token) >= _MIN_TOKEN_LENGTH and _contains_phrase(text, token):
                return True
    return False


def is_refusal(utterance: str) -> bool:
    """Whether ``utterance`` contains a negation anywhere."""
    return _contains_any(normalize_text(utterance), NEGATION_KEYWORDS)


def is_cancellation(utterance: str) -> bool:
    """Whether ``utterance`` opens with a refusal: "Không, ...", "No, ...", "Hủy đi"."""
    text = normalize_text(utterance)
    return any(re.match(rf"{re.escape(normalize_text(p))}(?!\w)", text) for p in NEGATION_KEYWORDS)


def _target_titles(pending: PendingConfirmation) -> List[str]:
    operation = pending.payload.get("taskOperation")
    targets = operation.get("targetTasks") if isinstance(operation, dict) else None
    if not isinstance(targets, list):
        return []
    return [normalize_text(str(t["title"])) for t in targets if isinstance(t, dict) and t.get("title")]


def _selects_task(text: str, pending: PendingConfirmation) -> bool:
    if any(p.search(text) for p in _SELECTION_PATTERNS):
        return True
    return any(title and _contains_phrase(text, title) for title in _target_titles(pending))


def is_confirmation_response(utterance: str, pending: Optional[PendingConfirmation]) -> bool:
    """Whether ``utterance`` answers the pending clarification question.

    A refusal never counts. A delete is only confirmed by an explicit
    affirmation; other questions also accept task selections, answers that
    mention a missing field, and dates, times or people.
    """
    if pending is None:
        return False
    text = normalize_text(utterance)
    if not text or is_refusal(text):
        return False

    if _contains_any(text, AFFIRMATION_KEYWORDS):
        return True
    if pending.subtype is ConfirmationSubtype.DELETE_CONFIRMATION:
        return False
    if pending.subtype is ConfirmationSubtype.TASK_SELECTION and _selects_task(text, pending):
        return True
    if _overlaps_missing_info(text, pending.missing_info):
        return True
    if _contains_any(text, DOMAIN_KEYWORDS):
        return True
    return any(p.search(text) for p in _TIME_PATTERNS)


def build_combined_input(pending: PendingConfirmation, utterance: str) -> str:
    """Original request plus the clarification, for re-submission to the model."""
    return f"{pending.original_user_input}\n\nThông tin bổ sung từ user: {utterance}"


def merge_confirmation(utterance: str, pending: PendingConfirmation) -> ConversationResult:
    """Build a final result from the stored payload and the raw answer.

    Used when re-submitting the combined input to the model fails.
    """
    payload = copy.deepcopy(pending.payload)
    result = ConversationResult.from_model(payload)

    result.needs_confirmation = False
    result.confirmation_type = None
    result.missing_info = []
    result.pending_data = dict(result.pending_data)
    result.pending_data["userClarification"] = utterance
    result.pending_data["originalUserInput"] = pending.original_user_input

    task = result.task_action.get("task")
    if isinstance(task, dict):
        note = f"Bổ sung: {utterance}"
        task["description"] = f"{task['description']}\n{note}" if task.get("description") else note

    if not result.intent:
        result.intent = "confirmed_request"
    result.messages = [{
        "text": "Cảm ơn bạn! Tôi đã ghi nhận thông tin bổ sung và cập nhật lại yêu cầu.",
        "facialExpression": "smile",
        "animation": "Talking_1",
    }]
    logger.info(f"🔀 Merged clarification into pending {pending.subtype.value} result")
    return result


def merge_task_operation(utterance: str, pending: PendingConfirmation) -> TaskOperationPlan:
    """Apply the user's answer to a stored task operation plan."""
    if pending.kind is not ConfirmationKind.TASK_OPERATION:
        raise ValueError(f"Not a task operation confirmation: {pending.kind.value}")

    payload = copy.deepcopy(pending.payload)
    plan = TaskOperationPlan.from_dict(payload.get("taskOperation"), fallback_operation=payload.get("operation"))

    if pending.subtype is ConfirmationSubtype.TASK_SELECTION:
        plan.user_selection = utterance
    elif pending.subtype is ConfirmationSubtype.UPDATE_DETAILS:
        plan.update_data["userInput"] = utterance

    plan.needs_confirmation = False
    plan.confirmation_subtype = None
    return plan
