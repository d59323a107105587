"""
Memory API endpoints.

Summarize conversation segments into persona memories, search them and
manage their lifecycle.
"""

from datetime import datetime
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from persona_memory.memory.errors import ConversationNotFound, SummarizationFailed
from persona_memory.memory.integrate import MemoryIntegration
from persona_memory.memory.schemas import (
    ChatMessage,
    Conversation,
    CreateMemoryInput,
    LLMMessage,
    Memory,
    MemorySearchResult,
    MessageRange,
    MessageRole,
)
from persona_memory.memory.store import MemoryStore


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/memory", tags=["memory"])


def get_integration(request: Request) -> MemoryIntegration:
    """Dependency to get the memory integration bound to the app."""
    integration = getattr(request.app.state, "memory", None)
    if integration is None:
        raise HTTPException(status_code=503, detail="Memory system not initialized")
    return integration


def get_store(integration: MemoryIntegration = Depends(get_integration)) -> MemoryStore:
    return integration.store


class SummaryMessage(LLMMessage):
    """Message as submitted for summarization; ids are required to store."""

    id: Optional[str] = None


class SummarizeRequest(BaseModel):
    """Request to summarize a conversation segment into a memory."""

    persona_id: str = Field(..., min_length=1, description="Persona that owns the memory")
    conversation_id: str = Field(..., min_length=1, description="Conversation the messages came from")
    messages: List[SummaryMessage] = Field(default_factory=list, description="Messages to summarize, oldest first")
    provider: str = Field("ollama", description="anthropic, openai or ollama")
    model: str = Field("llama3.2", description="Provider model name")
    persona_context: Optional[str] = Field(None, description="Persona description passed to the summarizer")
    store: bool = Field(True, description="Persist the result as a memory")

    class Config:
        json_schema_extra = {
            "example": {
                "persona_id": "persona_tutor",
                "conversation_id": "conv_123",
                "messages": [
                    {"role": "user", "content": "I want to learn Rust this summer."},
                    {"role": "assistant", "content": "Great, let's start with ownership."},
                ],
                "provider": "anthropic",
                "model": "claude-3-5-haiku-latest",
            }
        }


class SummarizeResponse(BaseModel):
    summary: str
    topics: List[str]
    memory: Optional[Memory] = None


class SearchMemoryRequest(BaseModel):
    """Request to find memories relevant to recent messages."""

    persona_id: str = Field(..., min_length=1)
    messages: List[LLMMessage] = Field(default_factory=list, description="Recent conversation messages")
    now: Optional[datetime] = Field(None, description="Reference time for recency scoring")


class SearchMemoryResponse(BaseModel):
    results: List[MemorySearchResult]
    count: int


class MemoryListResponse(BaseModel):
    memories: List[Memory]
    count: int


class DeleteMemoryResponse(BaseModel):
    deleted: bool
    message: str


class ConversationSummarizeRequest(BaseModel):
    provider: str = "ollama"
    model: str = "llama3.2"
    prune: bool = False


class CreateConversationRequest(BaseModel):
    """Request to start tracking a conversation."""

    persona_id: str = Field(..., min_length=1, description="Persona that will own its memories")
    title: Optional[str] = None
    conversation_id: Optional[str] = Field(None, description="Client-chosen id, generated when omitted")


class AddMessageRequest(BaseModel):
    role: MessageRole = "user"
    content: str = Field(..., min_length=1)
    id: Optional[str] = Field(None, description="Client-chosen message id, generated when omitted")


@router.post("/conversations", response_model=Conversation, status_code=201)
async def create_conversation(
    request: CreateConversationRequest,
    integration: MemoryIntegration = Depends(get_integration),
):
    """Start tracking a conversation so its messages can be summarized."""
    if request.conversation_id and integration.conversations.find(request.conversation_id):
        raise HTTPException(status_code=409, detail=f"Conversation {request.conversation_id} already exists")
    return integration.conversations.create(
        persona_id=request.persona_id,
        title=request.title,
        conversation_id=request.conversation_id,
    )


@router.post("/conversations/{conversation_id}/messages", response_model=ChatMessage, status_code=201)
async def add_conversation_message(
    conversation_id: str,
    request: AddMessageRequest,
    integration: MemoryIntegration = Depends(get_integration),
):
    """Append a message to a tracked conversation."""
    try:
        return integration.conversations.add_message(
            conversation_id, request.role, request.content, message_id=request.id,
        )
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")


@router.post("/summarize", response_model=SummarizeResponse)
async def summarize(
    request: SummarizeRequest,
    integration: MemoryIntegration = Depends(get_integration),
):
    """
    Summarize a batch of messages and optionally store it as a memory.

    Example:
        POST /memory/summarize
        {
            "persona_id": "persona_tutor",
            "conversation_id": "conv_123",
            "messages": [{"role": "user", "content": "..."}],
            "provider": "ollama",
            "model": "llama3.2"
        }
    """
    if not request.messages:
        raise HTTPException(status_code=400, detail="Messages are required")

    if request.store:
        if any(not m.id for m in request.messages):
            raise HTTPException(status_code=400, detail="Message ids are required when storing a memory")
        existing = integration.store.find_by_range(
            request.conversation_id, request.messages[0].id, request.messages[-1].id,
        )
        if existing is not None:
            raise HTTPException(
                status_code=409,
                detail=f"Messages already summarized into memory {existing.id}",
            )

    try:
        result = await integration.summarizer.summarize_messages(
            request.messages,
            request.provider,
            request.model,
            request.persona_context,
        )
    except SummarizationFailed as e:
        logger.warning("Summarization failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))

    memory = None
    if request.store:
        memory = integration.store.add_memory(CreateMemoryInput(
            persona_id=request.persona_id,
            conversation_id=request.conversation_id,
            summary=result.summary,
            topics=result.topics,
            message_range=MessageRange(
                start_id=request.messages[0].id,
                end_id=request.messages[-1].id,
                count=len(request.messages),
            ),
        ))

    return SummarizeResponse(summary=result.summary, topics=result.topics, memory=memory)


@router.post("/conversations/{conversation_id}/summarize", response_model=SummarizeResponse)
async def summarize_conversation(
    conversation_id: str,
    request: ConversationSummarizeRequest,
    integration: MemoryIntegration = Depends(get_integration),
):
    """Run the trigger check for a tracked conversation and summarize its next batch."""
    try:
        integration.conversations.get(conversation_id)
        memory = await integration.summarize_if_needed(
            conversation_id, None, request.provider, request.model, request.prune,
        )
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
    except SummarizationFailed as e:
        raise HTTPException(status_code=502, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if memory is None:
        return SummarizeResponse(summary="", topics=[], memory=None)
    return SummarizeResponse(summary=memory.summary, topics=memory.topics, memory=memory)


@router.post("/search", response_model=SearchMemoryResponse)
async def search_memories(
    request: SearchMemoryRequest,
    integration: MemoryIntegration = Depends(get_integration),
):
    """Rank a persona's memories against recent messages within the token budget."""
    results = integration.recall.query_memories(request.persona_id, request.messages, request.now)
    return SearchMemoryResponse(results=results, count=len(results))


@router.get("/personas/{persona_id}", response_model=MemoryListResponse)
async def list_persona_memories(persona_id: str, store: MemoryStore = Depends(get_store)):
    """List a persona's memories, newest first."""
    memories = sorted(store.list_for_persona(persona_id), key=lambda m: m.created_at, reverse=True)
    return MemoryListResponse(memories=memories, count=len(memories))


@router.delete("/personas/{persona_id}")
async def clear_persona_memories(persona_id: str, store: MemoryStore = Depends(get_store)):
    deleted = store.clear_persona(persona_id)
    return {"deleted": deleted, "message": f"Deleted {deleted} memories for persona {persona_id}"}


@router.post("/cleanup")
async def cleanup_expired(store: MemoryStore = Depends(get_store)):
    """Purge expired memories across all personas."""
    purged = store.cleanup_expired()
    return {"purged": purged, "message": f"Purged {purged} expired memories"}


@router.delete("/{memory_id}", response_model=DeleteMemoryResponse)
async def delete_memory(memory_id: str, store: MemoryStore = Depends(get_store)):
    if not store.delete(memory_id):
        raise HTTPException(status_code=404, detail=f"Memory {memory_id} not found")
    return DeleteMemoryResponse(deleted=True, message="Memory deleted successfully")
