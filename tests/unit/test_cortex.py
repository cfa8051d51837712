"""
Unit tests for companion_memory/memory/cortex.py

Tests profile consolidation, deterministic last-write-wins, conversation
patterns and the rendered profile block.
"""
import pytest
from datetime import timedelta

from companion_memory.memory.cortex import (
    FrontalCortex,
    FrontalCortexBuilder,
    strip_leading_subject,
    time_of_day,
)
from companion_memory.memory.schemas import EmotionalContext, EmotionType, MemoryType


@pytest.fixture
def builder():
    return FrontalCortexBuilder()


def test_strip_leading_subject():
    assert strip_leading_subject("User loves dinosaurs") == "loves dinosaurs"
    assert strip_leading_subject("The user's dog is Max") == "dog is Max"
    assert strip_leading_subject("Sarah is kind") == "Sarah is kind"


def test_core_facts_require_user_subject(builder, make_memory, now):
    facts = [
        make_memory("User loves dinosaurs", id="mem_a"),
        make_memory("Dinosaurs lived long ago", id="mem_b"),
    ]

    cortex = builder.build("moxie_001", facts, now)

    assert cortex.core_facts == {"mem_a": "loves dinosaurs"}
    assert cortex.last_updated == now


def test_typed_sections(builder, make_memory, now):
    memories = [
        make_memory("Prefers bedtime stories about space", MemoryType.PREFERENCE, id="mem_p"),
        make_memory("Wants to learn piano", MemoryType.GOAL, id="mem_g"),
        make_memory("Can draw cats", MemoryType.SKILL, id="mem_s"),
    ]

    cortex = builder.build("moxie_001", memories, now)

    assert cortex.preferences == {"mem_p": "Prefers bedtime stories about space"}
    assert cortex.goals == ["Wants to learn piano"]
    assert cortex.skills == ["Can draw cats"]


def test_interests_need_two_memories(builder, make_memory, now):
    memories = [
        make_memory("a", topics=["dinosaurs", "space"], days_old=3),
        make_memory("b", topics=["dinosaurs"], days_old=2),
        make_memory("c", topics=["music", "dinosaurs", "space"], days_old=1),
    ]

    cortex = builder.build("moxie_001", memories, now)

    assert cortex.interests == ["dinosaurs", "space"]
    assert cortex.conversation_patterns.common_topics == {"dinosaurs": 3, "space": 2, "music": 1}


def test_relationship_last_write_wins_regardless_of_input_order(builder, make_memory, now):
    older = make_memory("Sarah is the user's sister", MemoryType.RELATIONSHIP, entities=["Sarah"], days_old=5)
    newer = make_memory("Sarah taught the user to swim", MemoryType.RELATIONSHIP, entities=["Sarah"], days_old=1)
    nameless = make_memory("Has a friend", MemoryType.RELATIONSHIP)

    forward = builder.build("moxie_001", [older, newer, nameless], now)
    backward = builder.build("moxie_001", [nameless, newer, older], now)

    assert forward.relationships == {"Sarah": "Sarah taught the user to swim"}
    assert forward == backward


def test_emotional_profile(builder, make_memory, now):
    sad = EmotionalContext(dominant_emotion=EmotionType.SADNESS, intensity=0.7)
    happy = EmotionalContext(dominant_emotion=EmotionType.JOY, intensity=0.7)
    memories = [
        make_memory("Felt sad at bedtime", MemoryType.EMOTION, emotional_context=sad, topics=["bedtime"], days_old=4),
        make_memory("Felt sad again", MemoryType.EMOTION, emotional_context=sad, days_old=3),
        make_memory("Happy at bedtime, singing helps", MemoryType.EMOTION, emotional_context=happy,
                    topics=["bedtime"], days_old=2),
    ]

    profile = builder.build("moxie_001", memories, now).emotional_profile

    assert profile.dominant_emotions == [EmotionType.SADNESS, EmotionType.JOY]
    assert profile.emotional_triggers == {"bedtime": EmotionType.JOY}
    assert profile.comfort_strategies == ["Happy at bedtime, singing helps"]


def test_average_conversation_length(builder, make_memory, now):
    memories = [
        make_memory("a", source_conversation_id="conv_1"),
        make_memory("b", source_conversation_id="conv_1"),
        make_memory("c", source_conversation_id="conv_2"),
        make_memory("d", source_conversation_id="conv_2"),
    ]
    patterns = builder.build("moxie_001", memories, now).conversation_patterns
    assert patterns.average_conversation_length == pytest.approx(2.0)


def test_average_conversation_length_without_sources(builder, make_memory, now):
    patterns = builder.build("moxie_001", [make_memory()], now).conversation_patterns
    assert patterns.average_conversation_length == 0.0


def test_question_types_and_time_of_day(builder, make_memory, now):
    evening = now.replace(hour=18)
    memories = [
        make_memory("User asked why the sky is blue", MemoryType.QUESTION, created_at=evening),
        make_memory("User asked how birds fly", MemoryType.QUESTION, created_at=evening + timedelta(minutes=5)),
        make_memory("Why fact, not a question", MemoryType.FACT, created_at=now),
    ]

    patterns = builder.build("moxie_001", memories, now).conversation_patterns

    assert patterns.question_types == ["why", "how"]
    assert patterns.preferred_time_of_day == "evening"


@pytest.mark.parametrize("hour,bucket", [
    (5, "morning"), (11, "morning"), (12, "afternoon"), (17, "evening"), (21, "night"), (2, "night"),
])
def test_time_of_day_buckets(now, hour, bucket):
    assert time_of_day(now.replace(hour=hour)) == bucket


def test_build_is_idempotent(builder, make_memory, now):
    memories = [
        make_memory("User loves dinosaurs", topics=["dinosaurs"], id="mem_1"),
        make_memory("User likes dinosaur books", topics=["dinosaurs"], id="mem_2"),
    ]
    assert builder.build("moxie_001", memories, now) == builder.build("moxie_001", list(reversed(memories)), now)


def test_empty_memories_give_empty_cortex(builder, now):
    cortex = builder.build("moxie_001", [], now)

    assert cortex.is_empty()
    assert cortex.generate_context_for_ai() == ""
    assert cortex.conversation_patterns.preferred_time_of_day is None


def test_profile_rendering(builder, make_memory, now):
    memories = [
        make_memory("User loves dinosaurs", topics=["dinosaurs"], id="mem_1", days_old=2),
        make_memory("Prefers bedtime stories about space", MemoryType.PREFERENCE, id="mem_2", days_old=1),
    ]

    context = builder.build("moxie_001", memories, now).generate_context_for_ai()

    assert context.startswith("## User Profile")
    assert "- loves dinosaurs" in context
    assert "- Prefers bedtime stories about space" in context
    assert "**Interests:**" not in context


def test_profile_interest_needs_second_memory(builder, make_memory, now):
    memories = [
        make_memory("User loves dinosaurs", topics=["dinosaurs"], id="mem_1", days_old=2),
        make_memory("User asked about T-Rex", MemoryType.QUESTION, topics=["dinosaurs"], id="mem_2", days_old=1),
    ]

    context = builder.build("moxie_001", memories, now).generate_context_for_ai()

    assert "**Interests:** dinosaurs" in context


def test_profile_rendering_is_bounded(now):
    cortex = FrontalCortex(
        owner_id="moxie_001",
        last_updated=now,
        core_facts={f"mem_{i}": f"fact number {i} " + "x" * 40 for i in range(50)},
    )

    context = cortex.generate_context_for_ai(max_chars=300)

    assert len(context) <= 300
    assert context.startswith("## User Profile\n\n**Core Facts:**")


def test_fact_and_preference_end_to_end(builder, make_memory, now):
    fact = make_memory("User loves dinosaurs", topics=["dinosaurs"], id="mem_1", days_old=2)
    preference = make_memory("Prefers bedtime stories about space", MemoryType.PREFERENCE, id="mem_2", days_old=1)

    cortex = builder.build("moxie_001", [fact, preference], now)

    assert "loves dinosaurs" in cortex.core_facts.values()
    assert "Prefers bedtime stories about space" in cortex.preferences.values()
    assert cortex.interests == []

    second = make_memory("User wants a dinosaur book", MemoryType.GOAL, topics=["dinosaurs"], id="mem_3")
    assert builder.build("moxie_001", [fact, preference, second], now).interests == ["dinosaurs"]
