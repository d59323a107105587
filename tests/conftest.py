"""Test configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import pytest

from persona_memory.config.settings import MemoryConfig
from persona_memory.memory.schemas import ChatMessage, Memory, MessageRange, Persona


FIXED_NOW = datetime(2025, 1, 31, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed clock reading so recency scores are deterministic."""
    return FIXED_NOW


@pytest.fixture
def make_memory(now) -> Callable[..., Memory]:
    """Factory for Memory records with sensible defaults."""
    counter = {"n": 0}

    def _make(
        summary: str = "User discussed pricing for the pro tier.",
        topics: Optional[List[str]] = None,
        persona_id: str = "persona_a",
        conversation_id: str = "conv_1",
        age_days: float = 0.0,
        memory_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Memory:
        counter["n"] += 1
        return Memory(
            id=memory_id or f"mem_{counter['n']}",
            persona_id=persona_id,
            conversation_id=conversation_id,
            summary=summary,
            topics=["pricing"] if topics is None else topics,
            message_range=MessageRange(start_id="m_0", end_id="m_14", count=15),
            created_at=now - timedelta(days=age_days),
            expires_at=expires_at,
        )

    return _make


@pytest.fixture
def make_messages() -> Callable[..., List[ChatMessage]]:
    """Factory for ordered chat messages with ids m_0, m_1, ..."""

    def _make(count: int, conversation_id: str = "conv_1", prefix: str = "m") -> List[ChatMessage]:
        return [
            ChatMessage(
                id=f"{prefix}_{i}",
                conversation_id=conversation_id,
                role="user" if i % 2 == 0 else "assistant",
                content=f"Message number {i} about the quarterly budget",
            )
            for i in range(count)
        ]

    return _make


@pytest.fixture
def small_config() -> MemoryConfig:
    """Tight limits so trigger and eviction paths are easy to reach."""
    return MemoryConfig(
        trigger_message_count=3,
        context_window_messages=4,
        max_memories_per_persona=3,
        max_memories_per_conversation=2,
    )


@pytest.fixture
def persona() -> Persona:
    return Persona(
        id="persona_a",
        name="Ada",
        description="A patient programming tutor.",
        domain="software engineering",
        custom_instructions="Prefer short examples.",
    )
