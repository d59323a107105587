"""Exceptions raised by the memory subsystem."""

from typing import Optional


class MemorySystemError(Exception):
    """Base class for memory subsystem errors."""


class SummarizationFailed(MemorySystemError):
    """The external completion call errored (network, auth, quota)."""

    def __init__(self, message: str, provider: Optional[str] = None, model: Optional[str] = None):
        super().__init__(message)
        self.provider = provider
        self.model = model


class ProviderNotConfigured(MemorySystemError):
    """A completion provider was requested that cannot be constructed."""


class ConversationNotFound(MemorySystemError, KeyError):
    """No conversation with the given id."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id

    def __str__(self) -> str:
        return self.args[0]
