"""Tests for workmate.core.session_store."""

import pytest

from workmate.core.session_store import SessionStore


def _prompt():
    return "system prompt"


class TestSessionStore:

    @pytest.fixture
    def store(self):
        return SessionStore(_prompt, max_history=20, keep_recent=15)

    def test_new_session_starts_with_system_message(self, store):
        history = store.get_or_create("s1")
        assert history == [{"role": "system", "content": "system prompt"}]
        assert store.session_count == 1

    def test_twenty_pairs_trim_to_system_plus_recent(self, store):
        for i in range(20):
            store.append("s1", {"role": "user", "content": f"u{i}"})
            store.append("s1", {"role": "assistant", "content": f"a{i}"})

        history = store.get_or_create("s1")
        assert len(history) == 16
        assert history[0]["role"] == "system"
        assert history[-1] == {"role": "assistant", "content": "a19"}

    def test_length_never_exceeds_max(self, store):
        for i in range(57):
            store.append("s1", {"role": "user", "content": str(i)})
            assert len(store.get_or_create("s1")) <= 20
            assert store.get_or_create("s1")[0]["role"] == "system"

    def test_trim_keeps_tail_order(self):
        store = SessionStore(_prompt, max_history=5, keep_recent=4)
        for i in range(7):
            store.append("s1", {"role": "user", "content": str(i)})
        contents = [m["content"] for m in store.get_or_create("s1")[1:]]
        assert contents == ["3", "4", "5", "6"]

    def test_trim_mutates_the_live_list(self, store):
        history = store.get_or_create("s1")
        for i in range(20):
            store.append("s1", {"role": "user", "content": str(i)})
        assert history is store.get_or_create("s1")
        assert len(history) == 16

    def test_replace_system_message(self, store):
        store.append("s1", {"role": "user", "content": "hi"})
        store.replace_system_message("s1", "fresh prompt")
        history = store.get_or_create("s1")
        assert history[0]["content"] == "fresh prompt"
        assert history[1]["content"] == "hi"

    def test_recent_messages_skips_system(self, store):
        for i in range(5):
            store.append("s1", {"role": "user", "content": str(i)})
        recent = store.recent_messages("s1", limit=3)
        assert [m["content"] for m in recent] == ["2", "3", "4"]
        assert store.recent_messages("unknown") == []

    def test_keep_recent_must_leave_room_for_system(self):
        with pytest.raises(ValueError):
            SessionStore(_prompt, max_history=10, keep_recent=10)
