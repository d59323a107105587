"""
Memory system data models.

Defines the Memory record, conversation/message types and the result
shapes exchanged between the trigger engine, summarizer and retriever.
"""

from datetime import datetime, timezone
from typing import Literal, Optional, List, Dict, Any
import uuid

from pydantic import BaseModel, Field, field_validator


MessageRole = Literal["user", "assistant", "system"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LLMMessage(BaseModel):
    """A role/content pair as sent to a completion provider."""

    role: MessageRole = "user"
    content: str = ""


class ChatMessage(LLMMessage):
    """A persisted conversation message."""

    id: str = Field(default_factory=new_id)
    conversation_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    def to_llm_message(self) -> LLMMessage:
        return LLMMessage(role=self.role, content=self.content)


class MessageRange(BaseModel):
    """Identifies exactly which messages were folded into a memory."""

    start_id: str
    end_id: str
    count: int = Field(..., ge=1)


class Memory(BaseModel):
    """
    A durable summary of one segment of a conversation.

    Memories are scoped to a single persona and never cross personas.
    Instances are immutable once created by the store.
    """

    id: str = Field(default_factory=new_id, description="Unique identifier (UUID4)")
    persona_id: str = Field(..., description="Owning persona")
    conversation_id: str = Field(..., description="Conversation the segment came from")

    summary: str = Field(..., min_length=1, description="2-4 sentence summary")
    topics: List[str] = Field(default_factory=list, description="3-5 short topic tags")
    message_range: MessageRange

    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = Field(None, description="None = never expires")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "2f0c7d3e-6a43-4c1e-9d55-5a3c1d2b9f10",
                "persona_id": "persona_support",
                "conversation_id": "conv_123",
                "summary": "User asked about refund policy and pricing tiers.",
                "topics": ["pricing", "refunds", "pro tier"],
                "message_range": {"start_id": "msg_1", "end_id": "msg_15", "count": 15},
                "created_at": "2025-01-10T12:00:00+00:00",
                "expires_at": None,
            }
        }

    @field_validator("created_at", "expires_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value) if value is not None else None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (ensure_aware(now) if now else utcnow())

    def to_storage_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dict for storage."""
        return self.model_dump(mode="json")

    @classmethod
    def from_storage_dict(cls, data: Dict[str, Any]) -> "Memory":
        """Load from storage dict."""
        return cls(**data)


class CreateMemoryInput(BaseModel):
    """Input for creating a new memory; id and timestamps are store-assigned."""

    persona_id: str
    conversation_id: str
    summary: str = Field(..., min_length=1)
    topics: List[str] = Field(default_factory=list)
    message_range: MessageRange


class MemorySearchResult(BaseModel):
    """A memory paired with its relevance score."""

    memory: Memory
    relevance_score: float


class SummarizationResult(BaseModel):
    """Parsed output of one summarization call."""

    summary: str
    topics: List[str] = Field(default_factory=list)


class MemoryMetadata(BaseModel):
    """Metadata about memory usage in a response."""

    used_ids: List[str] = Field(default_factory=list, description="Memory IDs injected")
    used_count: int = Field(0, description="Number of memories used")
    used_chars: int = Field(0, description="Total characters from memories")
    scores: List[float] = Field(default_factory=list, description="Relevance score per memory")
    snippets: List[str] = Field(default_factory=list, description="Summaries injected")


class Persona(BaseModel):
    """The slice of a persona the memory subsystem needs."""

    id: str
    name: str
    description: str = ""
    domain: Optional[str] = None
    context: Optional[str] = None
    custom_instructions: Optional[str] = None

    def describe(self) -> str:
        """Free-text description handed to the summarizer for tone/domain grounding."""
        text = self.name
        if self.description:
            text += f": {self.description.strip()}"
        if self.domain:
            text += f" (domain: {self.domain})"
        return text


class Conversation(BaseModel):
    """A conversation with its summarization watermark."""

    id: str = Field(default_factory=new_id)
    persona_id: Optional[str] = None
    title: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)
    last_summarized_message_id: Optional[str] = None
    memory_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def touch(self) -> None:
        self.updated_at = utcnow()
