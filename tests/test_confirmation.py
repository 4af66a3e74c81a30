"""Tests for workmate.core.confirmation."""

import pytest

from workmate.core.confirmation import (
    build_combined_input,
    is_cancellation,
    is_confirmation_response,
    merge_confirmation,
    merge_task_operation,
)
from workmate.core.types import (
    ConfirmationKind,
    ConfirmationSubtype,
    Operation,
    PendingConfirmation,
)


def _conversational(missing=None, payload=None):
    return PendingConfirmation(
        kind=ConfirmationKind.CONVERSATIONAL,
        subtype=ConfirmationSubtype.SCHEDULING_DETAILS,
        original_user_input="Nhắc tôi gọi điện",
        payload=payload if payload is not None else {
            "mode": "simple_task",
            "intent": "create reminder",
            "needsConfirmation": True,
            "confirmationType": "scheduling_details",
            "missingInfo": missing or [],
            "taskAction": {"action": "create", "task": {"title": "Gọi điện", "description": ""}},
        },
    )


def _task_operation(subtype, operation="delete"):
    return PendingConfirmation(
        kind=ConfirmationKind.TASK_OPERATION,
        subtype=subtype,
        original_user_input="Xóa task báo cáo",
        payload={
            "operation": operation,
            "intent": "delete task",
            "needsConfirmation": True,
            "confirmationType": subtype.value,
            "taskOperation": {
                "operation": operation,
                "targetTasks": [{"id": "1", "title": "Báo cáo"}, {"id": "2", "title": "Báo cáo quý"}],
                "updateData": {"field": "priority", "newValue": "urgent"},
            },
        },
    )


class TestIsConfirmationResponse:

    @pytest.mark.parametrize("reply", ["có", "Có, xóa đi", "OK", "vâng ạ", "đồng ý", "yes please", "Go ahead"])
    def test_affirmations(self, reply):
        assert is_confirmation_response(reply, _conversational())

    @pytest.mark.parametrize("reply", ["3 giờ chiều", "lúc 15:30", "ngày mai", "vào 12/5", "khách hàng Minh"])
    def test_domain_answers(self, reply):
        assert is_confirmation_response(reply, _conversational())

    def test_overlap_with_missing_info(self):
        pending = _conversational(missing=["meeting_location"])
        assert is_confirmation_response("The location is room 4", pending)

    @pytest.mark.parametrize("reply", ["Kể cho tôi một câu chuyện cười", "Tell me a joke"])
    def test_unrelated_utterance(self, reply):
        assert not is_confirmation_response(reply, _conversational(missing=["due_time"]))

    def test_keywords_match_whole_words_only(self):
        # "book" contains "ok" but is not an affirmation
        assert not is_confirmation_response("book", _conversational())

    def test_no_pending_means_no_confirmation(self):
        assert not is_confirmation_response("có", None)

    @pytest.mark.parametrize("reply", [
        "No, that's not right",
        "Không, thôi để mai tính",
        "Không, hủy đi anh",
        "Không có, đừng xóa",
        "don't do it",
        "cancel",
    ])
    def test_refusals_never_confirm(self, reply):
        assert not is_confirmation_response(reply, _task_operation(ConfirmationSubtype.DELETE_CONFIRMATION))
        assert not is_confirmation_response(reply, _conversational(missing=["due_time"]))

    @pytest.mark.parametrize("reply", ["có", "Có, xóa đi", "ok", "yes", "chắc chắn"])
    def test_delete_accepts_affirmations(self, reply):
        assert is_confirmation_response(reply, _task_operation(ConfirmationSubtype.DELETE_CONFIRMATION))

    @pytest.mark.parametrize("reply", ["3 giờ chiều", "ngày mai", "khách hàng Minh", "cái số 2"])
    def test_delete_ignores_non_affirmations(self, reply):
        assert not is_confirmation_response(reply, _task_operation(ConfirmationSubtype.DELETE_CONFIRMATION))

    @pytest.mark.parametrize("reply", ["I am busy", "gọi anh Nam", "kể mọi thứ đi"])
    def test_fresh_requests_are_not_answers(self, reply):
        assert not is_confirmation_response(reply, _conversational())

    @pytest.mark.parametrize("reply", ["thứ 6 nhé", "3pm", "sáng mai"])
    def test_weekdays_and_clock_times(self, reply):
        assert is_confirmation_response(reply, _conversational())

    @pytest.mark.parametrize("reply", ["cái số 2", "2", "báo cáo quý", "cái đầu tiên"])
    def test_task_selection_answers(self, reply):
        assert is_confirmation_response(reply, _task_operation(ConfirmationSubtype.TASK_SELECTION))


class TestIsCancellation:

    @pytest.mark.parametrize("reply", ["Không, đừng xóa", "No, that's not right", "Hủy đi", "thôi"])
    def test_leading_refusal(self, reply):
        assert is_cancellation(reply)

    @pytest.mark.parametrize("reply", ["Có task nào chưa xong không?", "ok", "knock it off"])
    def test_other_messages(self, reply):
        assert not is_cancellation(reply)


class TestMerge:

    def test_combined_input_keeps_original_first(self):
        combined = build_combined_input(_conversational(), "3 giờ chiều")
        assert combined.startswith("Nhắc tôi gọi điện")
        assert combined.endswith("3 giờ chiều")

    def test_merge_confirmation_produces_complete_result(self):
        result = merge_confirmation("3 giờ chiều", _conversational(missing=["due_time"]))
        data = result.to_dict()
        assert data["needsConfirmation"] is False
        assert data["pendingData"]["userClarification"] == "3 giờ chiều"
        assert data["taskAction"]["action"] == "create"
        assert "3 giờ chiều" in data["taskAction"]["task"]["description"]
        assert data["schedulingAction"] == {"type": "none", "action": "none"}
        assert data["messages"]

    def test_merge_confirmation_with_empty_payload(self):
        result = merge_confirmation("ok", _conversational(payload={}))
        data = result.to_dict()
        assert data["taskAction"] == {"action": "none"}
        assert data["schedulingAction"] == {"type": "none", "action": "none"}

    def test_merge_does_not_mutate_stored_payload(self):
        pending = _conversational()
        merge_confirmation("3 giờ", pending)
        assert pending.payload["taskAction"]["task"]["description"] == ""

    def test_task_selection_sets_user_selection(self):
        plan = merge_task_operation("cái thứ 2", _task_operation(ConfirmationSubtype.TASK_SELECTION))
        assert plan.user_selection == "cái thứ 2"
        assert plan.needs_confirmation is False
        assert plan.operation is Operation.DELETE

    def test_update_details_sets_user_input(self):
        pending = _task_operation(ConfirmationSubtype.UPDATE_DETAILS, operation="priority_change")
        plan = merge_task_operation("urgent luôn", pending)
        assert plan.operation is Operation.UPDATE
        assert plan.update_data["userInput"] == "urgent luôn"
        assert plan.update_data["newValue"] == "urgent"

    def test_delete_confirmation_keeps_targets(self):
        plan = merge_task_operation("có", _task_operation(ConfirmationSubtype.DELETE_CONFIRMATION))
        assert [t["id"] for t in plan.target_tasks] == ["1", "2"]
        assert plan.user_selection is None

    def test_merge_task_operation_rejects_conversational(self):
        with pytest.raises(ValueError):
            merge_task_operation("có", _conversational())
