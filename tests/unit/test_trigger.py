"""
Unit tests for persona_memory/memory/trigger.py

Covers the trigger threshold, batch selection and watermark handling.
"""
import logging

import pytest

from persona_memory.config.settings import MemoryConfig
from persona_memory.memory.trigger import (
    SummarizationTrigger,
    find_watermark_index,
    get_messages_to_summarize,
    needs_summarization,
)


class TestNeedsSummarization:
    """Threshold is strictly greater than window + trigger."""

    def test_at_threshold_does_not_trigger(self):
        assert needs_summarization(35, 20, 15) is False

    def test_above_threshold_triggers(self):
        assert needs_summarization(36, 20, 15) is True

    @pytest.mark.parametrize("count", [0, 1, 20, 34])
    def test_below_threshold(self, count):
        assert needs_summarization(count, 20, 15) is False


class TestGetMessagesToSummarize:

    def test_defaults_first_batch(self, make_messages):
        """36 messages with defaults yields m_0..m_14."""
        messages = make_messages(36)
        batch = get_messages_to_summarize(messages, 20, 15)

        assert [m.id for m in batch] == [f"m_{i}" for i in range(15)]

    def test_second_batch_after_watermark(self, make_messages):
        messages = make_messages(36)
        batch = get_messages_to_summarize(messages, 20, 15, last_summarized_id="m_14")

        # Only m_15 remains outside the 20-message window
        assert [m.id for m in batch] == ["m_15"]

    def test_batch_is_contiguous_and_after_watermark(self, make_messages):
        messages = make_messages(60)
        batch = get_messages_to_summarize(messages, 20, 15, last_summarized_id="m_9")

        ids = [m.id for m in batch]
        assert ids[0] == "m_10"
        assert ids == [f"m_{i}" for i in range(10, 25)]

    def test_never_touches_context_window(self, make_messages):
        """No selected message lies in the last context_window messages."""
        for total in range(0, 70, 7):
            messages = make_messages(total)
            window_ids = {m.id for m in messages[-20:]} if total else set()
            batch = get_messages_to_summarize(messages, 20, 15)
            assert not window_ids & {m.id for m in batch}
            assert len(batch) <= 15

    def test_short_conversation_returns_empty(self, make_messages):
        assert get_messages_to_summarize(make_messages(20), 20, 15) == []
        assert get_messages_to_summarize(make_messages(5), 20, 15) == []

    def test_watermark_inside_window_returns_empty(self, make_messages):
        messages = make_messages(30)
        assert get_messages_to_summarize(messages, 20, 15, last_summarized_id="m_25") == []

    def test_missing_watermark_rescans_from_start(self, make_messages, caplog):
        messages = make_messages(36)
        with caplog.at_level(logging.WARNING):
            batch = get_messages_to_summarize(messages, 20, 15, last_summarized_id="gone")

        assert batch[0].id == "m_0"
        assert "gone" in caplog.text

    def test_accepts_mappings(self):
        messages = [{"id": f"d_{i}", "content": "x"} for i in range(10)]
        batch = get_messages_to_summarize(messages, 4, 3)
        assert [m["id"] for m in batch] == ["d_0", "d_1", "d_2"]

    def test_returns_new_list(self, make_messages):
        messages = make_messages(36)
        batch = get_messages_to_summarize(messages, 20, 15)
        batch.clear()
        assert len(messages) == 36


def test_find_watermark_index(make_messages):
    messages = make_messages(5)
    assert find_watermark_index(messages, "m_3") == 3
    assert find_watermark_index(messages, "nope") is None
    assert find_watermark_index(messages, None) is None


def test_trigger_bound_to_config(make_messages):
    trigger = SummarizationTrigger(MemoryConfig(trigger_message_count=3, context_window_messages=4))
    messages = make_messages(8)

    assert trigger.should_summarize(7) is False
    assert trigger.should_summarize(8) is True
    assert [m.id for m in trigger.next_batch(messages)] == ["m_0", "m_1", "m_2"]
    assert [m.id for m in trigger.next_batch(messages, "m_2")] == ["m_3"]


def test_batch_selection_is_idempotent(make_messages):
    messages = make_messages(50)
    first = get_messages_to_summarize(messages, 20, 15, last_summarized_id="m_4")
    second = get_messages_to_summarize(messages, 20, 15, last_summarized_id="m_4")

    assert [m.id for m in first] == [m.id for m in second]
    assert len(first) <= 15
