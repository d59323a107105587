"""
Memory integration hooks for the chat loop.

Provides memory injection before a turn and background summarization
after a turn.
"""

import asyncio
import logging
import weakref
from datetime import datetime
from typing import Any, Optional, Sequence, Set, Tuple

from persona_memory.config.settings import MemoryConfig, Settings
from persona_memory.generation.completion import CompletionFn, ProviderCompleter
from .conversation import ConversationStore
from .errors import SummarizationFailed
from .inject import build_system_prompt, build_system_prompt_with_memories
from .recall import MemoryRecall
from .schemas import CreateMemoryInput, Memory, MemoryMetadata, MessageRange, Persona
from .store import InMemoryMemoryStore, MemoryStore, SQLiteMemoryStore
from .summarizer import MemorySummarizer


logger = logging.getLogger(__name__)


class MemoryIntegration:
    """
    Integration layer between the memory subsystem and a chat loop.

    Provides:
    - Pre-turn memory injection into the system prompt
    - Post-turn summarization, serialized per conversation
    """

    def __init__(
        self,
        store: MemoryStore,
        conversations: ConversationStore,
        summarizer: MemorySummarizer,
        config: Optional[MemoryConfig] = None,
    ):
        """
        Initialize memory integration.

        Args:
            store: Memory store
            conversations: Conversation registry holding watermarks
            summarizer: Memory summarizer
            config: Memory configuration, defaults to the store's
        """
        self.store = store
        self.conversations = conversations
        self.summarizer = summarizer
        self._config = config
        self.recall = MemoryRecall(store, config)
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def config(self) -> MemoryConfig:
        return self._config or self.store.config

    def inject_memories(
        self,
        persona: Persona,
        recent_messages: Sequence[Any],
        now: Optional[datetime] = None,
    ) -> Tuple[str, MemoryMetadata]:
        """
        Build the system prompt for the next turn with relevant memories.

        Returns:
            (system_prompt, metadata)
        """
        results = self.recall.query_memories(persona.id, recent_messages, now)
        if not results:
            return build_system_prompt(persona), MemoryMetadata()

        metadata = MemoryMetadata(
            used_ids=[r.memory.id for r in results],
            used_count=len(results),
            used_chars=sum(len(r.memory.summary) for r in results),
            scores=[r.relevance_score for r in results],
            snippets=[r.memory.summary for r in results],
        )
        return build_system_prompt_with_memories(persona, results), metadata

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        # Entries live only while a run holds or waits on the lock.
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    async def summarize_if_needed(
        self,
        conversation_id: str,
        persona: Optional[Persona],
        provider: str,
        model: str,
        prune: bool = False,
    ) -> Optional[Memory]:
        """
        Summarize the next batch of a conversation if the trigger fires.

        At most one run per conversation is in flight. Nothing is persisted
        and the watermark does not move unless the whole run succeeds;
        per-persona eviction runs only after the watermark has moved.

        Args:
            conversation_id: Conversation to check
            persona: Persona owning the conversation
            provider: Completion provider selector
            model: Completion model selector
            prune: Remove summarized messages from the live list afterwards

        Returns:
            The new Memory, or None when no batch was ready

        Raises:
            SummarizationFailed: The completion call failed
        """
        cfg = self.config
        async with self._lock_for(conversation_id):
            if not self.conversations.needs_summarization(conversation_id, cfg):
                return None

            batch = self.conversations.get_messages_to_summarize(conversation_id, cfg)
            if not batch:
                return None

            persona_id = persona.id if persona else self.conversations.get(conversation_id).persona_id
            if not persona_id:
                raise ValueError(f"Conversation {conversation_id} has no persona to own its memories")

            result = await self.summarizer.summarize_messages(
                batch,
                provider,
                model,
                persona.describe() if persona else None,
            )

            memory = self.store.add_memory(CreateMemoryInput(
                persona_id=persona_id,
                conversation_id=conversation_id,
                summary=result.summary,
                topics=result.topics,
                message_range=MessageRange(start_id=batch[0].id, end_id=batch[-1].id, count=len(batch)),
            ), enforce_cap=False)

            try:
                self.conversations.mark_messages_summarized(conversation_id, batch[-1].id, memory.id)
            except Exception:
                self.store.delete(memory.id)
                raise
            self.store.evict_over_cap(memory)

            if prune:
                self.conversations.remove_summarized_messages(conversation_id, [m.id for m in batch])

            logger.info(
                "Created memory %s from %d messages of conversation %s",
                memory.id, len(batch), conversation_id,
            )
            return memory

    def schedule_summarization(
        self,
        conversation_id: str,
        persona: Optional[Persona],
        provider: str,
        model: str,
        prune: bool = False,
    ) -> asyncio.Task:
        """
        Run summarize_if_needed in the background.

        Failures are logged and never reach the chat loop; the backlog is
        picked up again on the next check.
        """
        task = asyncio.create_task(
            self.summarize_if_needed(conversation_id, persona, provider, model, prune)
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_summarization_done)
        return task

    def _on_summarization_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, SummarizationFailed):
            logger.warning("Background summarization failed, will retry next turn: %s", error)
        elif error is not None:
            logger.error("Background summarization crashed: %r", error)


def create_memory_integration(
    settings: Optional[Settings] = None,
    complete: Optional[CompletionFn] = None,
    persistent: bool = False,
) -> MemoryIntegration:
    """
    Factory function to create memory integration.

    Args:
        settings: Application settings (defaults when omitted)
        complete: Completion capability, defaults to a ProviderCompleter
        persistent: Use SQLite and JSON files instead of process memory

    Returns:
        MemoryIntegration instance
    """
    settings = settings or Settings()

    if persistent:
        store: MemoryStore = SQLiteMemoryStore(settings.storage.memory_db_path, settings.memory)
        conversations = ConversationStore(
            settings.storage.conversations_path,
            max_persisted_messages=settings.storage.max_persisted_messages,
        )
    else:
        store = InMemoryMemoryStore(settings.memory)
        conversations = ConversationStore(max_persisted_messages=settings.storage.max_persisted_messages)

    summarizer = MemorySummarizer(complete or ProviderCompleter(settings.llm))
    return MemoryIntegration(store, conversations, summarizer)
