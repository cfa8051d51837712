"""
Memory system data models.

Defines the Memory record, its emotional context, and query/analytics types.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
)


SCHEMA_VERSION = 1

# Closed set of values allowed in Memory.context
ContextScalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr]
ContextValue = Union[ContextScalar, List[ContextScalar], Dict[str, ContextScalar]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes so all comparisons are aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MemoryType(str, Enum):
    """Kinds of memories that can be extracted."""
    FACT = "fact"                  # "User likes dinosaurs"
    PERSONAL = "personal"          # "User is seven years old"
    PREFERENCE = "preference"      # "User prefers happy endings"
    EXPERIENCE = "experience"      # "User went to the park"
    GOAL = "goal"                  # "User wants to learn piano"
    RELATIONSHIP = "relationship"  # "User has a sister named Sarah"
    INTEREST = "interest"
    LEARNING = "learning"
    EMOTION = "emotion"            # "User felt sad about..."
    STORY = "story"
    ACHIEVEMENT = "achievement"
    PROBLEM = "problem"
    QUESTION = "question"          # "User asked about space"
    SKILL = "skill"                # "User can draw well"


class EmotionType(str, Enum):
    """Emotions tracked in a memory's emotional context."""
    JOY = "joy"
    SADNESS = "sadness"
    ANGER = "anger"
    FEAR = "fear"
    SURPRISE = "surprise"
    DISGUST = "disgust"
    TRUST = "trust"
    ANTICIPATION = "anticipation"
    LOVE = "love"
    CONFUSION = "confusion"
    FRUSTRATION = "frustration"
    EXCITEMENT = "excitement"
    NEUTRAL = "neutral"


class EmotionalContext(BaseModel):
    """Dominant emotion, its intensity and per-emotion scores, all in [0, 1]."""

    dominant_emotion: EmotionType = EmotionType.NEUTRAL
    intensity: float = Field(0.0, ge=0.0, le=1.0)
    scores: Dict[EmotionType, float] = Field(default_factory=dict)

    @field_validator("scores")
    @classmethod
    def _scores_in_range(cls, v: Dict[EmotionType, float]) -> Dict[EmotionType, float]:
        for emotion, score in v.items():
            if not 0.0 <= score <= 1.0:
                raise ValueError(f"score for {emotion.value} must be in [0, 1], got {score}")
        return v


class Memory(BaseModel):
    """
    A single typed, timestamped fact or observation distilled from conversation.

    Drafts produced by extraction may leave ``id`` empty; the store assigns one
    on save. ``topics`` behaves as a set: values are lower-cased and
    de-duplicated in first-seen order.
    """

    id: Optional[str] = Field(None, description="Unique identifier")
    owner_id: str = Field(..., description="Owner (child profile / device) id")
    content: str = Field(..., description="Memory text")
    memory_type: MemoryType = Field(MemoryType.FACT, description="Memory kind")
    importance: float = Field(0.5, ge=0.0, le=1.0)

    created_at: datetime = Field(default_factory=utcnow)
    last_accessed_at: datetime = Field(default_factory=utcnow)
    access_count: int = Field(0, ge=0)

    topics: List[str] = Field(default_factory=list)
    entities: List[str] = Field(default_factory=list, description="People, places, things")
    related_memory_ids: List[str] = Field(default_factory=list)
    source_conversation_id: Optional[str] = None

    emotional_context: EmotionalContext = Field(default_factory=EmotionalContext)
    is_pinned: bool = False
    expires_at: Optional[datetime] = None

    context: Dict[str, ContextValue] = Field(default_factory=dict)
    schema_version: int = SCHEMA_VERSION

    class Config:
        json_schema_extra = {
            "example": {
                "id": "mem_3f1c2a9b7d5e4c1a0b9f8e7d",
                "owner_id": "moxie_001",
                "content": "User loves dinosaurs",
                "memory_type": "fact",
                "importance": 0.7,
                "topics": ["dinosaurs"],
                "entities": [],
                "source_conversation_id": "conv_0",
                "is_pinned": False,
            }
        }

    @field_validator("topics")
    @classmethod
    def _normalize_topics(cls, v: List[str]) -> List[str]:
        seen: Dict[str, None] = {}
        for topic in v:
            topic = topic.strip().lower()
            if topic:
                seen.setdefault(topic, None)
        return list(seen)

    @field_validator("created_at", "last_accessed_at", "expires_at")
    @classmethod
    def _aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def age_days(self, now: Optional[datetime] = None) -> float:
        """Age in fractional days relative to ``now``."""
        now = ensure_utc(now) or utcnow()
        return (now - self.created_at).total_seconds() / 86400

    def mark_accessed(self, now: Optional[datetime] = None) -> None:
        """Update usage statistics."""
        self.access_count += 1
        self.last_accessed_at = ensure_utc(now) or utcnow()

    def snippet(self, max_chars: int = 100) -> str:
        """Get truncated content for display."""
        if len(self.content) <= max_chars:
            return self.content
        return self.content[:max_chars - 3] + "..."

    def to_storage_dict(self) -> dict:
        """Convert to a JSON-compatible dict for storage."""
        return self.model_dump(mode="json")

    @classmethod
    def from_storage_dict(cls, data: dict) -> "Memory":
        """Load from storage dict."""
        return cls.model_validate(data)


class MemoryQuery(BaseModel):
    """Filter and ranking parameters for memory search."""

    keywords: List[str] = Field(default_factory=list)
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    memory_types: List[MemoryType] = Field(default_factory=list)
    min_importance: float = Field(0.0, ge=0.0, le=1.0)
    limit: int = Field(10, ge=0)

    @field_validator("start", "end")
    @classmethod
    def _aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class MemorySearchResult(BaseModel):
    """A memory with its relevance and recency scores."""

    memory: Memory
    relevance_score: float
    recency_score: float

    @property
    def combined_score(self) -> float:
        # 70% relevance, 30% recency
        return self.relevance_score * 0.7 + self.recency_score * 0.3


class MemoryAnalytics(BaseModel):
    """Aggregate view over an owner's memories."""

    owner_id: str
    total_memories: int = 0
    pinned_memories: int = 0
    memories_by_type: Dict[MemoryType, int] = Field(default_factory=dict)
    top_topics: List[str] = Field(default_factory=list)
    average_importance: float = 0.0
    memories_this_week: int = 0
    memories_this_month: int = 0
    oldest_memory: Optional[datetime] = None
    newest_memory: Optional[datetime] = None
