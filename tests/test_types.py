"""Tests for model-output coercion in workmate.core.types."""

import pytest

from workmate.core.types import (
    Classification,
    ConfirmationSubtype,
    ConversationResult,
    IntentType,
    ModelResponseError,
    Operation,
    TaskOperationResult,
)


class TestClassification:

    def test_confidence_is_clamped(self):
        result = Classification.from_model({"intentType": "task_query", "confidence": 1.7})
        assert result.confidence == 1.0
        result = Classification.from_model({"intentType": "task_query", "confidence": "abc"})
        assert result.confidence == 0.0

    def test_null_identifier_strings(self):
        result = Classification.from_model({"intentType": "conversation", "confidence": 0.8, "taskIdentifier": "null"})
        assert result.task_identifier is None

    def test_rejects_unknown_intent(self):
        with pytest.raises(ModelResponseError):
            Classification.from_model({"intentType": "smalltalk", "confidence": 0.8})

    def test_rejects_non_object(self):
        with pytest.raises(ModelResponseError):
            Classification.from_model(["conversation"])


class TestConversationResult:

    def test_missing_actions_become_inert(self):
        result = ConversationResult.from_model({"mode": "conversation", "messages": [{"text": "Chào bạn!"}]})
        data = result.to_dict()
        assert data["taskAction"] == {"action": "none"}
        assert data["schedulingAction"] == {"type": "none", "action": "none"}
        assert data["confirmationType"] == "none"

    def test_messages_get_default_presentation(self):
        result = ConversationResult.from_model({"messages": ["Xin chào", {"text": ""}, {"text": "Hi", "animation": "Celebrating"}]})
        assert [m["text"] for m in result.messages] == ["Xin chào", "Hi"]
        assert result.messages[0]["facialExpression"] == "default"
        assert result.messages[1]["animation"] == "Celebrating"

    def test_unknown_mode_defaults_to_conversation(self):
        assert ConversationResult.from_model({"mode": "poetry"}).mode == "conversation"

    def test_confirmation_fields(self):
        result = ConversationResult.from_model({
            "mode": "simple_task",
            "needsConfirmation": True,
            "confirmationType": "time_conflict",
            "pendingData": {"missingInfo": ["due_time"]},
        })
        assert result.needs_confirmation is True
        assert result.confirmation_type is ConfirmationSubtype.TIME_CONFLICT
        assert result.missing_info == ["due_time"]

    def test_confirmation_with_unknown_type_still_asks(self):
        result = ConversationResult.from_model({"needsConfirmation": True, "confirmationType": "mystery"})
        assert result.confirmation_type is ConfirmationSubtype.TASK_CLARIFICATION

    def test_rejects_non_object(self):
        with pytest.raises(ModelResponseError):
            ConversationResult.from_model("just text")


class TestTaskOperationResult:

    def test_priority_change_normalizes_to_update(self):
        result = TaskOperationResult.from_model({
            "operation": "priority_change",
            "confidence": 0.9,
            "taskOperation": {
                "operation": "priority_change",
                "targetTasks": [{"id": "1", "title": "Báo cáo"}],
                "updateData": {"field": "priority", "newValue": "urgent"},
            },
        })
        assert result.operation is Operation.UPDATE
        assert result.to_dict()["taskOperation"]["operation"] == "update"

    def test_needs_confirmation_without_type_defaults_to_selection(self):
        result = TaskOperationResult.from_model({
            "needsConfirmation": True,
            "taskOperation": {"operation": "update"},
        })
        assert result.confirmation_type is ConfirmationSubtype.TASK_SELECTION

    def test_missing_task_operation_is_rejected(self):
        with pytest.raises(ModelResponseError):
            TaskOperationResult.from_model({"operation": "query"})

    def test_unsupported_operation_is_rejected(self):
        with pytest.raises(ModelResponseError):
            TaskOperationResult.from_model({"taskOperation": {"operation": "archive"}})

    def test_missing_info_from_clarification_block(self):
        result = TaskOperationResult.from_model({
            "taskOperation": {"operation": "query"},
            "clarificationNeeded": {"missingInfo": ["task_selection"]},
        })
        assert result.missing_info == ["task_selection"]
        assert result.plan.needs_confirmation is False
        assert IntentType.TASK_QUERY.value == "task_query"
