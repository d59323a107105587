"""Application settings and configuration schema."""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class MemoryConfig(BaseModel):
    """Tunable policy for summarization, retention and retrieval of memories."""
    trigger_message_count: int = Field(15, ge=1, description="Excess messages accumulated before a batch is cut")
    context_window_messages: int = Field(20, ge=0, description="Most recent messages always kept live")
    max_memories_per_persona: int = Field(50, ge=1, description="Hard cap, oldest evicted first")
    max_memories_per_conversation: int = Field(10, ge=1, description="Soft cap, logged only")
    memory_ttl_days: Optional[float] = Field(None, gt=0, description="Expiry in days, None = never")
    max_injected_memories: int = Field(3, ge=0, description="Max memories returned per retrieval")
    memory_token_budget: int = Field(1000, ge=0, description="Token budget for injected summaries")
    min_relevance_score: float = Field(0.3, ge=0.0, le=1.0, description="Retrieval score threshold")

    def merged(self, **overrides: Any) -> "MemoryConfig":
        """Return a validated copy with the given fields replaced (None values ignored)."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return MemoryConfig(**data)


DEFAULT_MEMORY_CONFIG = MemoryConfig()


class LLMSettings(BaseModel):
    """Completion provider configuration."""
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    ollama_base_url: str = "http://localhost:11434"
    fallback_model: str = "llama3.2"
    timeout: int = 60
    max_retries: int = 2


class StorageSettings(BaseModel):
    """File and directory paths configuration."""
    memory_db_path: str = "data/memory/memories.db"
    conversations_path: str = "data/memory/conversations.json"
    max_persisted_messages: int = 100


class Settings(BaseModel):
    """Main application settings."""
    memory: MemoryConfig = MemoryConfig()
    llm: LLMSettings = LLMSettings()
    storage: StorageSettings = StorageSettings()


_MEMORY_ENV_VARS = {
    "MEMORY_TRIGGER_MESSAGE_COUNT": "trigger_message_count",
    "MEMORY_CONTEXT_WINDOW_MESSAGES": "context_window_messages",
    "MEMORY_MAX_PER_PERSONA": "max_memories_per_persona",
    "MEMORY_MAX_PER_CONVERSATION": "max_memories_per_conversation",
    "MEMORY_TTL_DAYS": "memory_ttl_days",
    "MEMORY_MAX_INJECTED": "max_injected_memories",
    "MEMORY_TOKEN_BUDGET": "memory_token_budget",
    "MEMORY_MIN_RELEVANCE": "min_relevance_score",
}


def load_settings_from_env(environ: Optional[Dict[str, str]] = None) -> Settings:
    """Load settings from environment variables, falling back to defaults."""
    env = os.environ if environ is None else environ

    memory_overrides = {
        field: env[var]
        for var, field in _MEMORY_ENV_VARS.items()
        if env.get(var)
    }

    llm = LLMSettings(
        anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
        openai_api_key=env.get("OPENAI_API_KEY") or None,
        openai_base_url=env.get("OPENAI_BASE_URL") or None,
        ollama_base_url=env.get("OLLAMA_BASE_URL", "http://localhost:11434"),
        fallback_model=env.get("OLLAMA_FALLBACK_MODEL", "llama3.2"),
    )

    storage = StorageSettings(
        memory_db_path=env.get("MEMORY_DB_PATH", "data/memory/memories.db"),
        conversations_path=env.get("MEMORY_CONVERSATIONS_PATH", "data/memory/conversations.json"),
    )

    return Settings(memory=MemoryConfig(**memory_overrides), llm=llm, storage=storage)
