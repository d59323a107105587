"""
Unit tests for persona_memory/memory/inject.py
"""
from persona_memory.memory.inject import (
    build_memory_only_prompt,
    build_system_prompt,
    build_system_prompt_with_memories,
    estimate_tokens,
    format_memories_for_context,
    would_exceed_budget,
)
from persona_memory.memory.schemas import MemorySearchResult


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_would_exceed_budget(make_memory):
    memories = [make_memory(summary="x" * 40), make_memory(summary="y" * 40)]
    assert would_exceed_budget(memories, 20) is False
    assert would_exceed_budget(memories, 19) is True


def test_format_memories(make_memory):
    memory = make_memory(summary="User prefers dark mode.", topics=["ui", "preferences"])
    block = format_memories_for_context([MemorySearchResult(memory=memory, relevance_score=0.9)])

    assert block.startswith("## Relevant memories from past conversations")
    assert "- User prefers dark mode. (topics: ui, preferences)" in block


def test_format_without_topics(make_memory):
    block = format_memories_for_context([make_memory(summary="Plain.", topics=[])])
    assert "- Plain.\n" in block


def test_format_empty():
    assert format_memories_for_context([]) == ""
    assert build_memory_only_prompt([]) == ""


def test_system_prompt_sections(persona):
    prompt = build_system_prompt(persona)

    assert prompt.startswith("You are Ada. A patient programming tutor.")
    assert "## Knowledge" in prompt
    assert "software engineering" in prompt
    assert "## Instructions\nPrefer short examples." in prompt


def test_system_prompt_with_memories(persona, make_memory):
    memory = make_memory(summary="User is learning Rust.")
    prompt = build_system_prompt_with_memories(persona, [memory])

    assert prompt.index("## Instructions") < prompt.index("## Relevant memories")
    assert "User is learning Rust." in prompt


def test_system_prompt_without_memories_is_unchanged(persona):
    assert build_system_prompt_with_memories(persona, []) == build_system_prompt(persona)
