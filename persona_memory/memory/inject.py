"""Format recalled memories for injection into a system prompt."""

import math
from typing import Sequence, Union

from .schemas import Memory, MemorySearchResult, Persona


CHARS_PER_TOKEN = 4

MemoryLike = Union[Memory, MemorySearchResult]


def _memory(item: MemoryLike) -> Memory:
    return item.memory if isinstance(item, MemorySearchResult) else item


def estimate_tokens(text: str) -> int:
    """Character-based token estimate (4 chars ~ 1 token)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def would_exceed_budget(memories: Sequence[MemoryLike], token_budget: int) -> bool:
    total_chars = sum(len(_memory(m).summary) for m in memories)
    return total_chars > token_budget * CHARS_PER_TOKEN


def format_memories_for_context(memories: Sequence[MemoryLike]) -> str:
    """
    Render memories as a bullet block for the system prompt.

    Returns:
        Formatted block, or an empty string when there is nothing to inject
    """
    if not memories:
        return ""

    lines = ["## Relevant memories from past conversations"]
    for item in memories:
        memory = _memory(item)
        line = f"- {memory.summary}"
        if memory.topics:
            line += f" (topics: {', '.join(memory.topics)})"
        lines.append(line)
    lines.append("Use these memories for continuity; do not recite them verbatim.")

    return "\n".join(lines)


def build_system_prompt(persona: Persona) -> str:
    """Identity, knowledge and instruction sections for a persona."""
    sections = [f"You are {persona.name}. {persona.description}".strip()]

    knowledge = []
    if persona.domain:
        knowledge.append(f"Your area of expertise: {persona.domain}.")
    if persona.context:
        knowledge.append(persona.context)
    if knowledge:
        sections.append("## Knowledge\n" + "\n".join(knowledge))

    if persona.custom_instructions:
        sections.append("## Instructions\n" + persona.custom_instructions)

    return "\n\n".join(sections)


def build_system_prompt_with_memories(persona: Persona, memories: Sequence[MemoryLike]) -> str:
    prompt = build_system_prompt(persona)
    block = format_memories_for_context(memories)
    return f"{prompt}\n\n{block}" if block else prompt


def build_memory_only_prompt(memories: Sequence[MemoryLike]) -> str:
    """Memory block alone, for callers that assemble their own persona prompt."""
    return format_memories_for_context(memories)
