"""
Memory extraction capabilities.

Converts batches of conversation turns into typed Memory drafts, either with
an LLM (any BaseGenerator) or with simple phrase rules.
"""

import json
import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from companion_memory.generation.generator import BaseGenerator, GenerationConfig
from companion_memory.persist.transcripts import ConversationTurn
from .extractor import ExtractionCapability, ExtractionContext
from .schemas import EmotionalContext, EmotionType, Memory, MemoryType


logger = logging.getLogger(__name__)


# JSON key -> (memory type, importance)
GENERATOR_CATEGORIES: Dict[str, Tuple[MemoryType, float]] = {
    "facts": (MemoryType.FACT, 0.7),
    "preferences": (MemoryType.PREFERENCE, 0.8),
    "emotions": (MemoryType.EMOTION, 0.6),
    "goals": (MemoryType.GOAL, 0.9),
    "questions": (MemoryType.QUESTION, 0.5),
}

TOPIC_VOCABULARY = (
    "dinosaurs", "space", "animals", "music", "art", "reading", "games",
    "school", "friends", "family", "sports", "food", "nature",
)

POSITIVE_WORDS = ("happy", "excited", "love", "great", "wonderful", "amazing")
NEGATIVE_WORDS = ("sad", "angry", "hate", "terrible", "awful", "scared")

EMOTION_KEYWORDS: Dict[str, EmotionType] = {
    "sad": EmotionType.SADNESS,
    "happy": EmotionType.JOY,
    "angry": EmotionType.ANGER,
    "excited": EmotionType.EXCITEMENT,
    "scared": EmotionType.FEAR,
    "worried": EmotionType.FEAR,
    "frustrated": EmotionType.FRUSTRATION,
}

PREFERENCE_PHRASES = ("i like", "i love", "i prefer")
GOAL_PHRASES = ("i want to", "i need to", "i hope to")
RELATIONSHIP_PHRASES = ("my mom", "my dad", "my sister", "my brother", "my friend")

# Capitalized only because they open a sentence
NAME_STOPWORDS = {"my", "the", "we", "he", "she", "they", "it", "and", "but", "i'm", "today", "yesterday"}

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def detect_topics(text: str) -> List[str]:
    """Topics from the fixed vocabulary mentioned in the text."""
    lower = text.lower()
    return [topic for topic in TOPIC_VOCABULARY if topic in lower]


def extract_names(text: str) -> List[str]:
    """Capitalized words (longer than one character), punctuation stripped."""
    names = []
    for word in text.split():
        word = word.strip(".,!?;:\"'()")
        if (
            len(word) > 1
            and word[0].isupper()
            and word.lower() not in NAME_STOPWORDS
            and word not in names
        ):
            names.append(word)
    return names


def emotional_context_for(text: str) -> EmotionalContext:
    """
    Derive an emotional context from keyword sentiment.

    A named emotion keyword wins; otherwise the balance of positive and
    negative words picks joy or sadness. Intensity grows with the number of
    sentiment words found, capped at 1.0.
    """
    lower = text.lower()

    for keyword, emotion in EMOTION_KEYWORDS.items():
        if keyword in lower:
            return EmotionalContext(dominant_emotion=emotion, intensity=0.7, scores={emotion: 0.7})

    positive = sum(1 for word in POSITIVE_WORDS if word in lower)
    negative = sum(1 for word in NEGATIVE_WORDS if word in lower)

    if positive == negative:
        return EmotionalContext()

    emotion = EmotionType.JOY if positive > negative else EmotionType.SADNESS
    intensity = min(1.0, 0.3 * abs(positive - negative) + 0.3)
    return EmotionalContext(dominant_emotion=emotion, intensity=intensity, scores={emotion: intensity})


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if isinstance(item, (str, int, float)) and str(item).strip()]


class GeneratorExtractionCapability(ExtractionCapability):
    """
    LLM-backed extraction.

    Asks the generator for a JSON object with facts, preferences, emotions,
    goals, questions, topics and entities. Topics and entities are applied to
    every draft of the batch. Output that contains no JSON object raises
    ValueError so the extractor can retry the batch.
    """

    def __init__(self, generator: BaseGenerator, max_new_tokens: int = 400):
        self.generator = generator
        self.config = GenerationConfig(temperature=0.1, max_new_tokens=max_new_tokens)

    def is_available(self) -> bool:
        return self.generator.is_available()

    def build_prompt(self, turns: Sequence[ConversationTurn]) -> str:
        conversation = "\n".join(
            f"{'User' if turn.is_user else 'Moxie'}: {turn.content}" for turn in turns
        )

        return f"""Analyze this conversation and extract key information:

{conversation}

Extract the following information in JSON format:
{{
  "facts": ["User stated facts about themselves"],
  "preferences": ["User expressed preferences"],
  "emotions": ["User expressed emotions"],
  "topics": ["Main topics discussed"],
  "entities": ["People, places, things mentioned"],
  "questions": ["Questions the user asked"],
  "goals": ["Goals or aspirations mentioned"]
}}

Only include information that is clearly stated. Return ONLY the JSON, nothing else."""

    def parse_response(self, text: str) -> dict:
        """
        Pull the JSON object out of a model response.

        Raises:
            ValueError: If no JSON object can be decoded
        """
        match = _JSON_OBJECT.search(text)
        if not match:
            raise ValueError("No JSON object in extraction response")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid extraction JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Extraction JSON is not an object")
        return data

    def extract(
        self,
        turns: Sequence[ConversationTurn],
        starting_offset: int,
        context: ExtractionContext,
    ) -> List[Memory]:
        if not turns:
            return []

        response = self.generator.generate(self.build_prompt(turns), self.config)
        data = self.parse_response(response.text)

        topics = _string_list(data.get("topics"))
        entities = _string_list(data.get("entities"))
        timestamp = turns[-1].timestamp

        drafts = []
        for key, (memory_type, importance) in GENERATOR_CATEGORIES.items():
            for content in _string_list(data.get(key)):
                draft = Memory(
                    owner_id=context.owner_id,
                    content=content,
                    memory_type=memory_type,
                    importance=importance,
                    created_at=timestamp,
                    last_accessed_at=timestamp,
                    topics=topics,
                    entities=list(entities),
                    source_conversation_id=context.conversation_id,
                    context={"extractor": "generator", "model": response.model_used},
                )
                if memory_type == MemoryType.EMOTION:
                    draft.emotional_context = emotional_context_for(content)
                drafts.append(draft)

        logger.debug(
            f"Generator extracted {len(drafts)} drafts from "
            f"{context.conversation_id}@{starting_offset}"
        )
        return drafts


class RuleBasedExtractionCapability(ExtractionCapability):
    """
    Offline extraction from user turns using phrase rules.

    Each user turn may yield a preference, an emotion, a goal, a
    relationship and a question draft, in that order.
    """

    def _draft(
        self,
        turn: ConversationTurn,
        context: ExtractionContext,
        memory_type: MemoryType,
        importance: float,
        entities: Optional[List[str]] = None,
    ) -> Memory:
        return Memory(
            owner_id=context.owner_id,
            content=turn.content,
            memory_type=memory_type,
            importance=importance,
            created_at=turn.timestamp,
            last_accessed_at=turn.timestamp,
            topics=detect_topics(turn.content),
            entities=entities or [],
            source_conversation_id=context.conversation_id,
            context={"extractor": "rules"},
        )

    def extract(
        self,
        turns: Sequence[ConversationTurn],
        starting_offset: int,
        context: ExtractionContext,
    ) -> List[Memory]:
        drafts = []

        for turn in turns:
            if not turn.is_user or not turn.content.strip():
                continue
            lower = turn.content.lower()

            if any(phrase in lower for phrase in PREFERENCE_PHRASES):
                drafts.append(self._draft(turn, context, MemoryType.PREFERENCE, 0.7))

            if any(keyword in lower for keyword in EMOTION_KEYWORDS):
                draft = self._draft(turn, context, MemoryType.EMOTION, 0.6)
                draft.emotional_context = emotional_context_for(turn.content)
                drafts.append(draft)

            if any(phrase in lower for phrase in GOAL_PHRASES):
                drafts.append(self._draft(turn, context, MemoryType.GOAL, 0.8))

            if any(phrase in lower for phrase in RELATIONSHIP_PHRASES):
                drafts.append(self._draft(
                    turn, context, MemoryType.RELATIONSHIP, 0.9,
                    entities=extract_names(turn.content),
                ))

            if "?" in turn.content:
                drafts.append(self._draft(turn, context, MemoryType.QUESTION, 0.5))

        return drafts
