"""
Summarization trigger policy.

Determines when a conversation must be summarized and which contiguous
batch of messages goes into the next memory. Batches never touch the live
context window and never start before the summarization watermark.
"""

import logging
from typing import Any, List, Mapping, Optional, Sequence, TypeVar

from persona_memory.config.settings import MemoryConfig, DEFAULT_MEMORY_CONFIG


logger = logging.getLogger(__name__)

M = TypeVar("M")


def _message_id(message: Any) -> Optional[str]:
    if isinstance(message, Mapping):
        return message.get("id")
    return getattr(message, "id", None)


def needs_summarization(message_count: int, context_window: int, trigger_count: int) -> bool:
    """True once more than ``context_window + trigger_count`` messages exist."""
    return message_count > context_window + trigger_count


def find_watermark_index(messages: Sequence[Any], last_summarized_id: Optional[str]) -> Optional[int]:
    """Index of the watermark message, or None when absent."""
    if not last_summarized_id:
        return None
    for index, message in enumerate(messages):
        if _message_id(message) == last_summarized_id:
            return index
    return None


def get_messages_to_summarize(
    messages: Sequence[M],
    context_window: int,
    trigger_count: int,
    last_summarized_id: Optional[str] = None,
) -> List[M]:
    """
    Select the next batch of messages to fold into a memory.

    Args:
        messages: Conversation messages in order (objects or mappings with an ``id``)
        context_window: Number of most recent messages kept live
        trigger_count: Maximum batch size
        last_summarized_id: Watermark, id of the last summarized message

    Returns:
        Contiguous slice starting right after the watermark, or an empty list
    """
    start_index = 0
    if last_summarized_id:
        watermark = find_watermark_index(messages, last_summarized_id)
        if watermark is None:
            # Watermark pruned away: rescan from the start.
            logger.warning(
                "Watermark message %s not found; rescanning from the first message",
                last_summarized_id,
            )
        else:
            start_index = watermark + 1

    excess_messages = len(messages) - context_window
    if excess_messages <= 0:
        return []

    end_index = min(start_index + trigger_count, len(messages) - context_window)
    if end_index <= start_index:
        return []

    return list(messages[start_index:end_index])


class SummarizationTrigger:
    """
    Trigger engine bound to a MemoryConfig.

    Thin convenience over the module functions for callers that carry a
    config object around.
    """

    def __init__(self, config: Optional[MemoryConfig] = None):
        self.config = config or DEFAULT_MEMORY_CONFIG

    def should_summarize(self, message_count: int) -> bool:
        return needs_summarization(
            message_count,
            self.config.context_window_messages,
            self.config.trigger_message_count,
        )

    def next_batch(self, messages: Sequence[M], last_summarized_id: Optional[str] = None) -> List[M]:
        return get_messages_to_summarize(
            messages,
            self.config.context_window_messages,
            self.config.trigger_message_count,
            last_summarized_id,
        )
