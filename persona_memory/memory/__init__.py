"""
Memory subsystem for long-term conversation recall.

Provides:
- Summarization triggers driven by a per-conversation watermark
- Conversation summarization through an injected completion capability
- Keyword-based recall within a token budget
- Memory storage with TTL expiry and per-persona eviction
"""

from .schemas import (
    ChatMessage,
    Conversation,
    CreateMemoryInput,
    LLMMessage,
    Memory,
    MemoryMetadata,
    MemorySearchResult,
    MessageRange,
    Persona,
    SummarizationResult,
)
from .errors import ConversationNotFound, MemorySystemError, ProviderNotConfigured, SummarizationFailed
from .trigger import SummarizationTrigger, get_messages_to_summarize, needs_summarization
from .summarizer import MemorySummarizer, summarize_messages
from .recall import MemoryRecall, calculate_relevance, find_relevant_memories, select_within_budget
from .store import InMemoryMemoryStore, MemoryStore, SQLiteMemoryStore
from .conversation import ConversationStore
from .integrate import MemoryIntegration, create_memory_integration

__all__ = [
    "ChatMessage",
    "Conversation",
    "CreateMemoryInput",
    "LLMMessage",
    "Memory",
    "MemoryMetadata",
    "MemorySearchResult",
    "MessageRange",
    "Persona",
    "SummarizationResult",
    "ConversationNotFound",
    "MemorySystemError",
    "ProviderNotConfigured",
    "SummarizationFailed",
    "SummarizationTrigger",
    "get_messages_to_summarize",
    "needs_summarization",
    "MemorySummarizer",
    "summarize_messages",
    "MemoryRecall",
    "calculate_relevance",
    "find_relevant_memories",
    "select_within_budget",
    "InMemoryMemoryStore",
    "MemoryStore",
    "SQLiteMemoryStore",
    "ConversationStore",
    "MemoryIntegration",
    "create_memory_integration",
]
