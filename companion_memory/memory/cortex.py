"""
Frontal Cortex: the consolidated long-term profile of an owner.

The cortex is rebuilt from scratch out of the full memory set after every
extraction run. It is never merged incrementally, so it can always be
regenerated from the store and needs no migration.
"""

import re
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from .schemas import SCHEMA_VERSION, EmotionType, Memory, MemoryType, ensure_utc, utcnow


QUESTION_WORDS = ("why", "how", "what", "when", "where", "who")

TIME_OF_DAY_BUCKETS = ("morning", "afternoon", "evening", "night")

_LEADING_SUBJECT = re.compile(r"^\s*(?:the\s+)?user(?:'s)?\s+", re.IGNORECASE)
_COMFORT_PATTERN = re.compile(r"\b(helps?|calms?|feel(?:s)? better)\b", re.IGNORECASE)


class EmotionalProfile(BaseModel):
    """Emotions seen across the owner's Emotion memories."""

    dominant_emotions: List[EmotionType] = Field(default_factory=list)
    emotional_triggers: Dict[str, EmotionType] = Field(default_factory=dict)  # "bedtime": sadness
    comfort_strategies: List[str] = Field(default_factory=list)  # "singing helps calm down"


class ConversationPatterns(BaseModel):
    """How the owner tends to converse."""

    common_topics: Dict[str, int] = Field(default_factory=dict)  # "dinosaurs": 15
    average_conversation_length: float = 0.0
    preferred_time_of_day: Optional[str] = None
    question_types: List[str] = Field(default_factory=list)  # "why", "how", "what"


class FrontalCortex(BaseModel):
    """Consolidated core knowledge about one owner."""

    owner_id: str
    last_updated: datetime = Field(default_factory=utcnow)

    core_facts: Dict[str, str] = Field(default_factory=dict)     # memory id -> fact
    preferences: Dict[str, str] = Field(default_factory=dict)    # memory id -> preference
    relationships: Dict[str, str] = Field(default_factory=dict)  # entity -> description
    goals: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)

    emotional_profile: EmotionalProfile = Field(default_factory=EmotionalProfile)
    conversation_patterns: ConversationPatterns = Field(default_factory=ConversationPatterns)

    schema_version: int = SCHEMA_VERSION

    def is_empty(self) -> bool:
        return not (
            self.core_facts or self.preferences or self.relationships
            or self.goals or self.skills or self.interests
        )

    def generate_context_for_ai(self, max_chars: int = 1500) -> str:
        """
        Render the profile as a compact block for prompt injection.

        Sections appear in a fixed order and lines that would push the block
        past ``max_chars`` are dropped, so output is deterministic and bounded.

        Returns:
            Profile block, or "" when the cortex holds nothing to say
        """
        if self.is_empty():
            return ""

        sections: List[List[str]] = []

        if self.core_facts:
            sections.append(["**Core Facts:**"] + [f"- {fact}" for fact in self.core_facts.values()])

        if self.interests:
            sections.append([f"**Interests:** {', '.join(self.interests)}"])

        if self.goals:
            sections.append(["**Goals:**"] + [f"- {goal}" for goal in self.goals])

        if self.skills:
            sections.append(["**Skills:**"] + [f"- {skill}" for skill in self.skills])

        if self.relationships:
            sections.append(
                ["**Important People:**"]
                + [f"- {entity}: {text}" for entity, text in self.relationships.items()]
            )

        if self.preferences:
            sections.append(["**Preferences:**"] + [f"- {pref}" for pref in self.preferences.values()])

        lines = ["## User Profile", ""]
        total = sum(len(line) + 1 for line in lines)

        for section in sections:
            for line in section:
                if total + len(line) + 1 > max_chars:
                    return "\n".join(lines).rstrip()
                lines.append(line)
                total += len(line) + 1
            lines.append("")
            total += 1

        return "\n".join(lines).rstrip()


def strip_leading_subject(content: str) -> str:
    """'User loves dinosaurs' -> 'loves dinosaurs'."""
    return _LEADING_SUBJECT.sub("", content, count=1).strip()


def time_of_day(moment: datetime) -> str:
    hour = moment.hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


class FrontalCortexBuilder:
    """
    Builds a FrontalCortex from an owner's complete memory set.

    ``build`` is a pure function of its input: memories are folded in
    (created_at, id) order, so last-write-wins fields (relationships,
    emotional triggers) are deterministic regardless of how the caller
    ordered them.
    """

    def __init__(self, min_interest_count: int = 2):
        self.min_interest_count = min_interest_count

    def build(
        self,
        owner_id: str,
        memories: Sequence[Memory],
        now: Optional[datetime] = None,
    ) -> FrontalCortex:
        """
        Consolidate memories into a fresh cortex.

        Args:
            owner_id: Owner the cortex describes
            memories: Every memory currently stored for the owner
            now: Timestamp recorded as ``last_updated``

        Returns:
            New FrontalCortex (never merged with a previous one)
        """
        ordered = sorted(memories, key=lambda m: (m.created_at, m.id or ""))
        cortex = FrontalCortex(owner_id=owner_id, last_updated=ensure_utc(now) or utcnow())

        for memory in ordered:
            kind = memory.memory_type

            if kind == MemoryType.FACT and "user" in memory.content.lower():
                cortex.core_facts[memory.id] = strip_leading_subject(memory.content)
            elif kind == MemoryType.PREFERENCE:
                cortex.preferences[memory.id] = memory.content
            elif kind == MemoryType.RELATIONSHIP and memory.entities:
                cortex.relationships[memory.entities[0]] = memory.content
            elif kind == MemoryType.GOAL:
                cortex.goals.append(memory.content)
            elif kind == MemoryType.SKILL:
                cortex.skills.append(memory.content)

        topic_counts = self._topic_counts(ordered)
        cortex.interests = [
            topic for topic, count in self._by_count(topic_counts)
            if count >= self.min_interest_count
        ]

        cortex.emotional_profile = self._emotional_profile(ordered)
        cortex.conversation_patterns = self._conversation_patterns(ordered, topic_counts)

        return cortex

    @staticmethod
    def _topic_counts(memories: Sequence[Memory]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for memory in memories:
            for topic in memory.topics:
                counts[topic] = counts.get(topic, 0) + 1
        return counts

    @staticmethod
    def _by_count(counts: Dict[str, int]) -> List[tuple]:
        # sorted() is stable, so equal counts keep first-seen order
        return sorted(counts.items(), key=lambda item: -item[1])

    def _emotional_profile(self, memories: Sequence[Memory]) -> EmotionalProfile:
        profile = EmotionalProfile()
        histogram: Dict[EmotionType, int] = {}

        for memory in memories:
            if memory.memory_type == MemoryType.EMOTION:
                emotion = memory.emotional_context.dominant_emotion
                histogram[emotion] = histogram.get(emotion, 0) + 1
                for topic in memory.topics:
                    profile.emotional_triggers[topic] = emotion

            if (
                memory.memory_type in (MemoryType.EMOTION, MemoryType.EXPERIENCE)
                and _COMFORT_PATTERN.search(memory.content)
            ):
                profile.comfort_strategies.append(memory.content)

        profile.dominant_emotions = [emotion for emotion, _ in self._by_count(histogram)]
        return profile

    def _conversation_patterns(
        self,
        memories: Sequence[Memory],
        topic_counts: Dict[str, int],
    ) -> ConversationPatterns:
        patterns = ConversationPatterns(common_topics=dict(self._by_count(topic_counts)))

        conversation_ids = {m.source_conversation_id for m in memories if m.source_conversation_id}
        if conversation_ids:
            patterns.average_conversation_length = len(memories) / len(conversation_ids)

        if memories:
            buckets = Counter(time_of_day(m.created_at) for m in memories)
            patterns.preferred_time_of_day = max(
                TIME_OF_DAY_BUCKETS, key=lambda bucket: buckets.get(bucket, 0)
            )

        found = set()
        for memory in memories:
            if memory.memory_type == MemoryType.QUESTION:
                content = memory.content.lower()
                found.update(word for word in QUESTION_WORDS if word in content)
        patterns.question_types = [word for word in QUESTION_WORDS if word in found]

        return patterns
