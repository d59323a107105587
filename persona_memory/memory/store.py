"""
Memory persistence layer.

The store exclusively owns Memory records once created. Retention policy
(TTL expiry and the per-persona FIFO cap) is applied opportunistically on
write; there is no background scheduler.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
import json
import logging
from pathlib import Path
import threading
from typing import Any, Dict, List, Optional, Union

from persona_memory.config.settings import MemoryConfig, DEFAULT_MEMORY_CONFIG
from persona_memory.persist.sqlite_store import KVStore
from .schemas import CreateMemoryInput, Memory, ensure_aware, utcnow


logger = logging.getLogger(__name__)


class MemoryStore(ABC):
    """
    Storage for memories keyed by id, persona and conversation.

    Subclasses provide four primitives (insert, get, remove, list_all);
    lifecycle rules live here so every backend applies them identically.
    """

    def __init__(self, config: Optional[MemoryConfig] = None):
        self.config = config or DEFAULT_MEMORY_CONFIG
        self._write_lock = threading.RLock()

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _insert(self, memory: Memory) -> None:
        ...

    @abstractmethod
    def _remove(self, memory_ids: List[str]) -> int:
        ...

    @abstractmethod
    def get(self, memory_id: str) -> Optional[Memory]:
        """Retrieve a memory by id, or None."""

    @abstractmethod
    def list_all(self) -> List[Memory]:
        """All memories, oldest first."""

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add_memory(
        self,
        data: CreateMemoryInput,
        now: Optional[datetime] = None,
        enforce_cap: bool = True,
    ) -> Memory:
        """
        Create and store a new memory.

        Expired memories are purged first; afterwards the persona's oldest
        memories are evicted while it is over ``max_memories_per_persona``.

        Args:
            data: Summary, topics and message range for the new memory
            now: Creation time, defaults to current UTC time (naive = UTC)
            enforce_cap: Evict over-cap memories now; callers that may still
                roll the insert back pass False and call ``evict_over_cap``
                once committed

        Returns:
            The stored Memory with id, created_at and expires_at assigned
        """
        now = ensure_aware(now) if now else utcnow()
        ttl = self.config.memory_ttl_days
        memory = Memory(
            persona_id=data.persona_id,
            conversation_id=data.conversation_id,
            summary=data.summary,
            topics=list(data.topics),
            message_range=data.message_range,
            created_at=now,
            expires_at=now + timedelta(days=ttl) if ttl else None,
        )

        with self._write_lock:
            self.cleanup_expired(now)
            self._insert(memory)
            if enforce_cap:
                self.evict_over_cap(memory)
            self._check_conversation_cap(memory.conversation_id)

        return memory

    def evict_over_cap(self, newest: Memory) -> int:
        """
        Evict the persona's oldest memories while over the per-persona cap.

        ``newest`` is never evicted. Returns number evicted.
        """
        with self._write_lock:
            persona_memories = [m for m in self.list_for_persona(newest.persona_id) if m.id != newest.id]
            excess = len(persona_memories) + 1 - self.config.max_memories_per_persona
            if excess <= 0:
                return 0

            persona_memories.sort(key=lambda m: m.created_at)
            evicted = [m.id for m in persona_memories[:excess]]
            removed = self._remove(evicted)
        logger.info("Evicted %d oldest memories for persona %s", removed, newest.persona_id)
        return removed

    def _check_conversation_cap(self, conversation_id: str) -> None:
        count = len(self.list_for_conversation(conversation_id))
        if count > self.config.max_memories_per_conversation:
            logger.warning(
                "Conversation %s has %d memories (soft cap %d)",
                conversation_id, count, self.config.max_memories_per_conversation,
            )

    def delete(self, memory_id: str) -> bool:
        """Delete a memory. Returns True if it existed."""
        with self._write_lock:
            return self._remove([memory_id]) > 0

    def list_for_persona(self, persona_id: str) -> List[Memory]:
        """Memories owned by a persona, oldest first."""
        return [m for m in self.list_all() if m.persona_id == persona_id]

    def list_for_conversation(self, conversation_id: str) -> List[Memory]:
        """Memories produced from a conversation, oldest first."""
        return [m for m in self.list_all() if m.conversation_id == conversation_id]

    def find_by_range(self, conversation_id: str, start_id: str, end_id: str) -> Optional[Memory]:
        """Memory of a conversation covering exactly ``start_id``..``end_id``, or None."""
        for memory in self.list_for_conversation(conversation_id):
            if memory.message_range.start_id == start_id and memory.message_range.end_id == end_id:
                return memory
        return None

    def clear_persona(self, persona_id: str) -> int:
        """Delete all memories for a persona. Returns number deleted."""
        with self._write_lock:
            return self._remove([m.id for m in self.list_for_persona(persona_id)])

    def clear_conversation(self, conversation_id: str) -> int:
        """Delete all memories for a conversation. Returns number deleted."""
        with self._write_lock:
            return self._remove([m.id for m in self.list_for_conversation(conversation_id)])

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Purge memories whose expiry has passed. Returns number purged."""
        now = ensure_aware(now) if now else utcnow()
        with self._write_lock:
            expired = [m.id for m in self.list_all() if m.is_expired(now)]
            if not expired:
                return 0
            removed = self._remove(expired)
        logger.info("Purged %d expired memories", removed)
        return removed

    def count(self, persona_id: Optional[str] = None) -> int:
        if persona_id is None:
            return len(self.list_all())
        return len(self.list_for_persona(persona_id))

    def update_config(self, **changes: Any) -> MemoryConfig:
        """Replace config fields; applies to subsequent writes."""
        self.config = MemoryConfig(**{**self.config.model_dump(), **changes})
        return self.config


class InMemoryMemoryStore(MemoryStore):
    """Process-local store backed by an insertion-ordered dict."""

    def __init__(self, config: Optional[MemoryConfig] = None):
        super().__init__(config)
        self._memories: Dict[str, Memory] = {}

    def _insert(self, memory: Memory) -> None:
        with self._write_lock:
            self._memories[memory.id] = memory

    def _remove(self, memory_ids: List[str]) -> int:
        removed = 0
        with self._write_lock:
            for memory_id in memory_ids:
                if self._memories.pop(memory_id, None) is not None:
                    removed += 1
        return removed

    def get(self, memory_id: str) -> Optional[Memory]:
        return self._memories.get(memory_id)

    def list_all(self) -> List[Memory]:
        with self._write_lock:
            memories = list(self._memories.values())
        memories.sort(key=lambda m: m.created_at)
        return memories


class SQLiteMemoryStore(MemoryStore):
    """
    Durable store using the SQLite KVStore.

    Keys look like ``<persona_id>:<memory_id>`` in table ``memories``, so
    persona listings are a prefix scan and id lookups a suffix scan.
    """

    TABLE = "memories"

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        config: Optional[MemoryConfig] = None,
    ):
        """
        Initialize memory store.

        Args:
            db_path: Path to SQLite database (default: data/memory/memories.db)
            config: Memory configuration
        """
        super().__init__(config)
        if db_path is None:
            db_path = Path("data/memory/memories.db")
        self.kv = KVStore(db_path, tables=(self.TABLE,))

    @staticmethod
    def _make_key(persona_id: str, memory_id: str) -> str:
        return f"{persona_id}:{memory_id}"

    @staticmethod
    def _decode(value: bytes) -> Optional[Memory]:
        try:
            return Memory.from_storage_dict(json.loads(value))
        except (json.JSONDecodeError, ValueError, TypeError):
            logger.warning("Skipping unreadable memory record")
            return None

    def _insert(self, memory: Memory) -> None:
        value = json.dumps(memory.to_storage_dict()).encode("utf-8")
        self.kv.set(self.TABLE, self._make_key(memory.persona_id, memory.id), value)

    def _keys_for_ids(self, memory_ids: List[str]) -> List[str]:
        keys = []
        for memory_id in memory_ids:
            keys.extend(key for key, _ in self.kv.items(self.TABLE, suffix=f":{memory_id}"))
        return keys

    def _remove(self, memory_ids: List[str]) -> int:
        return self.kv.delete_many(self.TABLE, self._keys_for_ids(memory_ids))

    def get(self, memory_id: str) -> Optional[Memory]:
        for _, value in self.kv.items(self.TABLE, suffix=f":{memory_id}"):
            return self._decode(value)
        return None

    def _load(self, prefix: Optional[str] = None) -> List[Memory]:
        memories = []
        for _, value in self.kv.items(self.TABLE, prefix=prefix):
            memory = self._decode(value)
            if memory is not None:
                memories.append(memory)
        memories.sort(key=lambda m: m.created_at)
        return memories

    def list_all(self) -> List[Memory]:
        return self._load()

    def list_for_persona(self, persona_id: str) -> List[Memory]:
        return [m for m in self._load(prefix=f"{persona_id}:") if m.persona_id == persona_id]

    def close(self) -> None:
        self.kv.close()
