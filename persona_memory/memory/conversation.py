"""
Conversation bookkeeping for summarization.

Tracks messages and the summarization watermark per conversation, and
persists them as JSON with a bounded message history.
"""

import json
import logging
from pathlib import Path
import threading
from typing import Dict, List, Optional, Union

from persona_memory.config.settings import MemoryConfig, DEFAULT_MEMORY_CONFIG
from .errors import ConversationNotFound
from .schemas import ChatMessage, Conversation, MessageRole
from .trigger import find_watermark_index, get_messages_to_summarize, needs_summarization


logger = logging.getLogger(__name__)


class ConversationStore:
    """
    In-process conversation registry with optional JSON persistence.

    On save only the last ``max_persisted_messages`` of each conversation
    are written.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, max_persisted_messages: int = 100):
        self.path = Path(path) if path else None
        self.max_persisted_messages = max_persisted_messages
        self._conversations: Dict[str, Conversation] = {}
        self._lock = threading.RLock()

        if self.path is not None and self.path.exists():
            self.load()

    def create(
        self,
        persona_id: Optional[str] = None,
        title: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> Conversation:
        conversation = Conversation(persona_id=persona_id, title=title)
        if conversation_id:
            conversation.id = conversation_id
        with self._lock:
            self._conversations[conversation.id] = conversation
        return conversation

    def find(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def get(self, conversation_id: str) -> Conversation:
        conversation = self.find(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation

    def list_conversations(self) -> List[Conversation]:
        return list(self._conversations.values())

    def delete(self, conversation_id: str) -> bool:
        with self._lock:
            return self._conversations.pop(conversation_id, None) is not None

    def add_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        message_id: Optional[str] = None,
    ) -> ChatMessage:
        """Append a message to a conversation."""
        with self._lock:
            conversation = self.get(conversation_id)
            message = ChatMessage(role=role, content=content, conversation_id=conversation_id)
            if message_id:
                message.id = message_id
            conversation.messages.append(message)
            conversation.touch()
        return message

    def recent_messages(self, conversation_id: str, count: int = 5) -> List[ChatMessage]:
        return self.get(conversation_id).messages[-count:]

    # ------------------------------------------------------------------
    # Summarization watermark
    # ------------------------------------------------------------------

    def needs_summarization(self, conversation_id: str, config: Optional[MemoryConfig] = None) -> bool:
        cfg = config or DEFAULT_MEMORY_CONFIG
        conversation = self.find(conversation_id)
        if conversation is None:
            return False
        return needs_summarization(
            len(conversation.messages),
            cfg.context_window_messages,
            cfg.trigger_message_count,
        )

    def get_messages_to_summarize(
        self,
        conversation_id: str,
        config: Optional[MemoryConfig] = None,
    ) -> List[ChatMessage]:
        cfg = config or DEFAULT_MEMORY_CONFIG
        conversation = self.find(conversation_id)
        if conversation is None:
            return []
        return get_messages_to_summarize(
            conversation.messages,
            cfg.context_window_messages,
            cfg.trigger_message_count,
            conversation.last_summarized_message_id,
        )

    def mark_messages_summarized(self, conversation_id: str, last_message_id: str, memory_id: str) -> None:
        """
        Advance the watermark to ``last_message_id`` and record the memory.

        The watermark only moves forward; a mark at or before the current
        watermark records the memory id but leaves the watermark alone.

        Raises:
            ConversationNotFound: Unknown conversation
            ValueError: ``last_message_id`` is not in the conversation
        """
        with self._lock:
            conversation = self.get(conversation_id)
            new_index = find_watermark_index(conversation.messages, last_message_id)
            if new_index is None:
                raise ValueError(f"Message {last_message_id} not in conversation {conversation_id}")

            current_index = find_watermark_index(conversation.messages, conversation.last_summarized_message_id)
            if current_index is not None and new_index <= current_index:
                logger.warning(
                    "Ignoring backwards watermark move in conversation %s (%s -> %s)",
                    conversation_id, conversation.last_summarized_message_id, last_message_id,
                )
            else:
                conversation.last_summarized_message_id = last_message_id

            if memory_id not in conversation.memory_ids:
                conversation.memory_ids.append(memory_id)
            conversation.touch()

    def remove_summarized_messages(self, conversation_id: str, message_ids: List[str]) -> int:
        """
        Prune already-summarized messages from the live list.

        Only messages strictly before the watermark are removed; the
        watermark message itself stays as the anchor for the next batch.

        Returns:
            Number of messages removed
        """
        with self._lock:
            conversation = self.get(conversation_id)
            watermark = find_watermark_index(conversation.messages, conversation.last_summarized_message_id)
            if watermark is None:
                return 0

            to_remove = set(message_ids)
            kept = [
                m for index, m in enumerate(conversation.messages)
                if not (index < watermark and m.id in to_remove)
            ]
            removed = len(conversation.messages) - len(kept)
            conversation.messages = kept
            if removed:
                conversation.touch()
        return removed

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist conversations to the JSON file (no-op without a path)."""
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with self._lock:
            data = {"conversations": []}
            for conversation in self._conversations.values():
                record = conversation.model_dump(mode="json")
                record["messages"] = record["messages"][-self.max_persisted_messages:]
                data["conversations"].append(record)

        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    def load(self) -> List[Conversation]:
        """Load conversations from the JSON file."""
        if self.path is None or not self.path.exists():
            self._conversations = {}
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            conversations = [Conversation(**record) for record in data.get("conversations", [])]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            # Corrupted file - start fresh
            logger.warning("Could not read conversations from %s, starting empty", self.path)
            conversations = []

        with self._lock:
            self._conversations = {c.id: c for c in conversations}
        return conversations

    def __len__(self) -> int:
        return len(self._conversations)
