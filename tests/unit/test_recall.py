"""
Unit tests for persona_memory/memory/recall.py

Tests relevance scoring, budget selection and persona-scoped retrieval.
"""
from datetime import timedelta

import pytest

from persona_memory.config.settings import MemoryConfig
from persona_memory.memory.recall import (
    MemoryRecall,
    calculate_relevance,
    find_relevant_memories,
    get_conversation_memories,
    get_persona_memories,
    select_within_budget,
)
from persona_memory.memory.schemas import CreateMemoryInput, LLMMessage, MemorySearchResult, MessageRange
from persona_memory.memory.store import InMemoryMemoryStore


def user(content):
    return LLMMessage(role="user", content=content)


class TestCalculateRelevance:

    def test_refund_scenario(self, make_memory, now):
        memory = make_memory(
            summary="User asked about refund policy and pricing tiers.",
            topics=["pricing", "refunds"],
            persona_id="P",
        )
        recent = [user("what about refunds for pro tier")]

        score = calculate_relevance(memory, recent, now)

        # topic 0.5 * 0.5 + word 0.3 * 0.1 ("about") + recency 0.2
        assert score == pytest.approx(0.48)
        assert score > 0.3

    def test_bounds_with_everything_matching(self, make_memory, now):
        words = "alpha bravo charlie delta foxtrot hotel india juliet kilo lima mike"
        memory = make_memory(summary=words, topics=["alpha", "bravo"])
        score = calculate_relevance(memory, [user(words)], now)

        assert score == pytest.approx(1.0)
        assert 0.0 <= score <= 1.0 + 1e-9

    def test_bounds_with_nothing_matching(self, make_memory, now):
        memory = make_memory(summary="zzzz yyyy", topics=["qqqq"], age_days=90)
        assert calculate_relevance(memory, [user("nothing shared here")], now) == 0.0

    def test_future_timestamp_does_not_exceed_one(self, make_memory, now):
        memory = make_memory(summary="pricing", topics=["pricing"], age_days=-10)
        assert calculate_relevance(memory, [user("pricing")], now) <= 1.0 + 1e-9

    def test_recency_is_monotonic(self, make_memory, now):
        newer = make_memory(age_days=1)
        older = make_memory(age_days=12)
        recent = [user("tell me about pricing again")]

        assert calculate_relevance(newer, recent, now) >= calculate_relevance(older, recent, now)

    def test_only_last_five_messages_count(self, make_memory, now):
        memory = make_memory(summary="zzzz", topics=["kubernetes"], age_days=60)
        recent = [user("kubernetes")] + [user("unrelated chatter") for _ in range(5)]

        assert calculate_relevance(memory, recent, now) == 0.0

    def test_topic_substring_match(self, make_memory, now):
        memory = make_memory(summary="zzzz", topics=["pro tier"], age_days=60)
        assert calculate_relevance(memory, [user("what about the pro tier plan")], now) == pytest.approx(0.5)

    def test_blank_topics_never_match(self, make_memory, now):
        memory = make_memory(summary="zzzz", topics=["", "  "], age_days=60)
        assert calculate_relevance(memory, [user("anything at all")], now) == 0.0

    def test_punctuation_is_stripped(self, make_memory, now):
        memory = make_memory(summary="Budget, budget! budget?", topics=[], age_days=60)
        score = calculate_relevance(memory, [user("the budget.")], now)

        assert score == pytest.approx(0.3 * 3 / 10)

    def test_accepts_mapping_messages(self, make_memory, now):
        memory = make_memory(topics=["pricing"])
        assert calculate_relevance(memory, [{"role": "user", "content": "pricing"}], now) > 0.5


class TestSelectWithinBudget:

    def _scored(self, make_memory, lengths):
        return [
            MemorySearchResult(memory=make_memory(summary="x" * n), relevance_score=1.0 - i * 0.01)
            for i, n in enumerate(lengths)
        ]

    def test_respects_character_budget(self, make_memory):
        selected = select_within_budget(self._scored(make_memory, [400, 400, 400]), 250)

        assert len(selected) == 2
        assert sum(len(r.memory.summary) for r in selected) <= 250 * 4

    def test_stops_at_first_overflow(self, make_memory):
        """A small memory after an oversized one is not picked up."""
        selected = select_within_budget(self._scored(make_memory, [100, 5000, 10]), 100)
        assert [len(r.memory.summary) for r in selected] == [100]

    @pytest.mark.parametrize("budget", [0, 1, 10, 99, 1000])
    def test_budget_property(self, make_memory, budget):
        selected = select_within_budget(self._scored(make_memory, [30, 70, 120, 8, 400]), budget)
        assert sum(len(r.memory.summary) for r in selected) <= budget * 4

    def test_zero_budget(self, make_memory):
        assert select_within_budget(self._scored(make_memory, [1]), 0) == []


class TestFindRelevantMemories:

    def test_refund_scenario_end_to_end(self, make_memory, now):
        m1 = make_memory(
            summary="User asked about refund policy and pricing tiers.",
            topics=["pricing", "refunds"],
            persona_id="P",
        )
        results = find_relevant_memories("P", [m1], [user("what about refunds for pro tier")], MemoryConfig(), now)

        assert len(results) == 1
        assert results[0].memory.id == m1.id
        assert results[0].relevance_score > 0.3

    def test_empty_inputs(self, make_memory, now):
        config = MemoryConfig(min_relevance_score=0.0)
        assert find_relevant_memories("P", [], [user("hello")], config, now) == []
        assert find_relevant_memories("persona_a", [make_memory()], [], config, now) == []
        assert find_relevant_memories("persona_a", [], [], None, now) == []

    def test_other_personas_are_excluded(self, make_memory, now):
        mine = make_memory(persona_id="A", topics=["pricing"])
        theirs = make_memory(persona_id="B", topics=["pricing"])
        results = find_relevant_memories("A", [mine, theirs], [user("pricing")], MemoryConfig(), now)

        assert [r.memory.id for r in results] == [mine.id]

    def test_threshold_filters_weak_matches(self, make_memory, now):
        weak = make_memory(summary="zzzz", topics=["qqqq"], age_days=1)
        results = find_relevant_memories("persona_a", [weak], [user("pricing")], MemoryConfig(), now)
        assert results == []

    def test_sorted_and_capped(self, make_memory, now):
        memories = [make_memory(topics=["pricing"], age_days=d) for d in (20, 1, 10, 5)]
        results = find_relevant_memories(
            "persona_a", memories, [user("pricing")], MemoryConfig(max_injected_memories=2), now,
        )

        scores = [r.relevance_score for r in results]
        assert len(results) == 2
        assert scores == sorted(scores, reverse=True)
        assert results[0].memory.id == memories[1].id

    def test_token_budget_applied_after_cap(self, make_memory, now):
        memories = [make_memory(summary="pricing " + "x" * 200, topics=["pricing"]) for _ in range(3)]
        results = find_relevant_memories(
            "persona_a", memories, [user("pricing")], MemoryConfig(memory_token_budget=60), now,
        )
        assert len(results) == 1


def test_persona_and_conversation_listings(make_memory):
    a_old = make_memory(persona_id="A", conversation_id="c1", age_days=3)
    a_new = make_memory(persona_id="A", conversation_id="c2", age_days=1)
    b = make_memory(persona_id="B", conversation_id="c1", age_days=2)

    assert [m.id for m in get_persona_memories("A", [a_old, b, a_new])] == [a_new.id, a_old.id]
    assert [m.id for m in get_conversation_memories("c1", [a_old, b, a_new])] == [a_old.id, b.id]


def test_recall_skips_expired_memories(now):
    store = InMemoryMemoryStore(MemoryConfig(memory_ttl_days=1))
    rng = MessageRange(start_id="a", end_id="b", count=2)
    stale = store.add_memory(
        CreateMemoryInput(persona_id="A", conversation_id="c", summary="pricing talk", topics=["pricing"], message_range=rng),
        now=now - timedelta(days=2),
    )
    fresh = store.add_memory(
        CreateMemoryInput(persona_id="A", conversation_id="c", summary="pricing talk", topics=["pricing"], message_range=rng),
        now=now - timedelta(hours=1),
    )

    results = MemoryRecall(store).query_memories("A", [user("pricing")], now)

    assert [r.memory.id for r in results] == [fresh.id]
    assert stale.id not in [r.memory.id for r in results]
