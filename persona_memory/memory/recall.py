"""
Memory recall with keyword-based relevance scoring.

Scoring (weights sum to 1.0, each term bounded in [0, 1]):
- Topic overlap (50%): share of memory topics found in the recent text
- Word overlap (30%): summary words shared with recent messages, saturating at 10
- Recency (20%): linear decay from 1 at creation to 0 after 30 days
"""

from datetime import datetime
import logging
import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from persona_memory.config.settings import MemoryConfig, DEFAULT_MEMORY_CONFIG
from .schemas import Memory, MemorySearchResult, ensure_aware, utcnow


logger = logging.getLogger(__name__)

TOPIC_WEIGHT = 0.5
WORD_WEIGHT = 0.3
RECENCY_WEIGHT = 0.2

RECENT_MESSAGE_WINDOW = 5
MIN_WORD_LENGTH = 4
WORD_SATURATION = 10
RECENCY_DAYS = 30
CHARS_PER_TOKEN = 4

_NON_WORD = re.compile(r"[^\w]")


def _content(message: Any) -> str:
    if isinstance(message, Mapping):
        return message.get("content", "") or ""
    return getattr(message, "content", "") or ""


def _words(text: str) -> List[str]:
    """Whitespace tokens stripped of non-word characters, keeping those longer than 3."""
    words = []
    for token in text.split():
        cleaned = _NON_WORD.sub("", token)
        if len(cleaned) >= MIN_WORD_LENGTH:
            words.append(cleaned)
    return words


def calculate_relevance(
    memory: Memory,
    recent_messages: Sequence[Any],
    now: Optional[datetime] = None,
) -> float:
    """
    Score memory relevance to the recent conversation tail.

    Args:
        memory: Memory to score
        recent_messages: Recent messages (objects or mappings with ``content``)
        now: Clock reading used for recency, defaults to current UTC time

    Returns:
        Relevance score in [0.0, 1.0]
    """
    recent_text = " ".join(_content(m) for m in recent_messages[-RECENT_MESSAGE_WINDOW:]).lower()
    recent_words = set(_words(recent_text))

    # 1. Topic overlap
    topic_matches = 0
    for topic in memory.topics:
        needle = topic.strip().lower()
        if needle and (needle in recent_words or needle in recent_text):
            topic_matches += 1
    topic_score = topic_matches / len(memory.topics) if memory.topics else 0.0

    # 2. Summary word overlap
    word_matches = sum(1 for w in _words(memory.summary.lower()) if w in recent_words)
    word_score = min(word_matches / WORD_SATURATION, 1.0)

    # 3. Recency decay
    now = ensure_aware(now) if now else utcnow()
    age_days = (now - memory.created_at).total_seconds() / 86400
    recency_boost = min(1.0, max(0.0, 1 - age_days / RECENCY_DAYS))

    return TOPIC_WEIGHT * topic_score + WORD_WEIGHT * word_score + RECENCY_WEIGHT * recency_boost


def select_within_budget(
    scored_memories: Iterable[MemorySearchResult],
    token_budget: int,
) -> List[MemorySearchResult]:
    """
    Take memories in rank order until the next one would overflow the budget.

    Uses character-based estimation (4 chars ~ 1 token). Stops at the first
    memory that does not fit rather than skipping ahead to smaller ones.
    """
    char_budget = token_budget * CHARS_PER_TOKEN
    selected = []
    used_chars = 0

    for result in scored_memories:
        memory_chars = len(result.memory.summary)
        if used_chars + memory_chars > char_budget:
            break
        selected.append(result)
        used_chars += memory_chars

    return selected


def find_relevant_memories(
    persona_id: str,
    all_memories: Iterable[Memory],
    recent_messages: Sequence[Any],
    config: Optional[MemoryConfig] = None,
    now: Optional[datetime] = None,
) -> List[MemorySearchResult]:
    """
    Retrieve the persona's memories worth injecting into the next prompt.

    Args:
        persona_id: Persona whose memories are searched
        all_memories: Candidate memories (other personas are filtered out)
        recent_messages: Recent conversation tail
        config: Memory configuration (defaults apply when omitted)
        now: Clock reading used for recency

    Returns:
        Results ordered by descending relevance, within count and token budget
    """
    cfg = config or DEFAULT_MEMORY_CONFIG

    persona_memories = [m for m in all_memories if m.persona_id == persona_id]
    if not persona_memories or not recent_messages:
        return []

    now = now or utcnow()
    scored = [
        MemorySearchResult(memory=memory, relevance_score=calculate_relevance(memory, recent_messages, now))
        for memory in persona_memories
    ]

    relevant = [r for r in scored if r.relevance_score >= cfg.min_relevance_score]
    relevant.sort(key=lambda r: r.relevance_score, reverse=True)

    limited = relevant[:cfg.max_injected_memories]
    return select_within_budget(limited, cfg.memory_token_budget)


def get_persona_memories(persona_id: str, all_memories: Iterable[Memory]) -> List[Memory]:
    """All memories for a persona, newest first."""
    memories = [m for m in all_memories if m.persona_id == persona_id]
    memories.sort(key=lambda m: m.created_at, reverse=True)
    return memories


def get_conversation_memories(conversation_id: str, all_memories: Iterable[Memory]) -> List[Memory]:
    """Memories for a conversation, oldest first."""
    memories = [m for m in all_memories if m.conversation_id == conversation_id]
    memories.sort(key=lambda m: m.created_at)
    return memories


class MemoryRecall:
    """
    Retrieves relevant memories from a store.

    Binds the pure scoring functions to a MemoryStore and a config.
    """

    def __init__(self, store, config: Optional[MemoryConfig] = None):
        """
        Initialize recall system.

        Args:
            store: MemoryStore instance
            config: Memory configuration, defaults to the store's
        """
        self.store = store
        self.config = config

    def query_memories(
        self,
        persona_id: str,
        recent_messages: Sequence[Any],
        now: Optional[datetime] = None,
    ) -> List[MemorySearchResult]:
        cfg = self.config or self.store.config
        now = ensure_aware(now) if now else utcnow()
        candidates = [m for m in self.store.list_for_persona(persona_id) if not m.is_expired(now)]
        results = find_relevant_memories(persona_id, candidates, recent_messages, cfg, now)
        logger.debug("Recalled %d of %d memories for persona %s", len(results), len(candidates), persona_id)
        return results
