"""
Unit tests for companion_memory/memory/recall.py

Tests overlap ranking, tie-breaking and the bounded context template.
"""
import pytest

from companion_memory.memory.recall import CONTEXT_HEADER, MemoryRecall
from companion_memory.memory.schemas import MemoryQuery, MemoryType


@pytest.fixture
def recall():
    return MemoryRecall()


def test_rank_by_topic_overlap(recall, make_memory):
    both = make_memory("both", topics=["dinosaurs", "space"], importance=0.1)
    one = make_memory("one", topics=["space"], importance=0.9)
    none = make_memory("none", topics=["music"], importance=1.0)

    ranked = recall.rank([none, one, both], ["Dinosaurs", "space"])

    assert [m.content for m in ranked] == ["both", "one", "none"]


def test_tagged_memory_outranks_untagged(recall, make_memory):
    tagged = make_memory("User loves dinosaurs", topics=["dinosaurs"], importance=0.2)
    others = [make_memory(f"other {i}", importance=0.9) for i in range(6)]

    ranked = recall.rank(others + [tagged], ["dinosaur", "dinosaurs"], limit=5)

    assert ranked[0].content == "User loves dinosaurs"
    assert len(ranked) == 5


def test_ties_break_by_importance_then_recency(recall, make_memory):
    low = make_memory("low", importance=0.2, days_old=0)
    old_high = make_memory("old high", importance=0.8, days_old=5)
    new_high = make_memory("new high", importance=0.8, days_old=1)

    ranked = recall.rank([low, old_high, new_high], ["anything"])

    assert [m.content for m in ranked] == ["new high", "old high", "low"]


def test_rank_limit_zero(recall, make_memory):
    assert recall.rank([make_memory()], ["dinosaurs"], limit=0) == []


def test_format_template(recall, make_memory):
    memory = make_memory("User loves dinosaurs", topics=["dinosaurs", "animals"])

    context = recall.format_memory_context([memory])

    assert context == (
        f"{CONTEXT_HEADER}\n\n"
        "1. [fact] User loves dinosaurs\n"
        "   Topics: dinosaurs, animals\n"
        "   (recorded 2024-06-01)"
    )


def test_format_without_topics(recall, make_memory):
    context = recall.format_memory_context([make_memory("User asked about stars", MemoryType.QUESTION)])
    assert "1. [question] User asked about stars" in context
    assert "Topics:" not in context


def test_format_is_bounded(make_memory):
    recall = MemoryRecall(max_chars=300)
    memories = [make_memory("x" * 150, topics=["space"]) for _ in range(5)]

    context = recall.format_memory_context(memories)

    assert 0 < len(context) <= 300
    assert context.count("[fact]") == 1


def test_format_empty_when_nothing_fits(make_memory):
    recall = MemoryRecall(max_chars=10)
    assert recall.format_memory_context([make_memory()]) == ""
    assert recall.format_memory_context([]) == ""


def test_format_is_deterministic(recall, make_memory):
    memories = [make_memory(f"fact {i}", topics=["space"], days_old=i) for i in range(3)]
    assert recall.format_memory_context(memories) == recall.format_memory_context(memories)


def test_search_orders_by_combined_score(recall, make_memory, now):
    fresh = make_memory("User likes space", topics=["space"], days_old=0)
    stale = make_memory("User liked space once", topics=["space"], days_old=90)
    unrelated = make_memory("User has a cat", days_old=0)

    results = recall.search([stale, unrelated, fresh], MemoryQuery(keywords=["space"]), now)

    assert [r.memory.content for r in results] == [
        "User likes space", "User liked space once", "User has a cat",
    ]
    assert results[2].relevance_score == 0.0


def test_search_respects_date_range_and_limit(recall, make_memory, now):
    memories = [make_memory(f"day {i}", days_old=i) for i in range(10)]
    query = MemoryQuery(start=memories[4].created_at, end=memories[1].created_at, limit=2)

    results = recall.search(memories, query, now)

    assert [r.memory.content for r in results] == ["day 1", "day 2"]
