"""
Memory retention policy.

Decides which memories expire and which are evicted when an owner exceeds
the capacity limit.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from .schemas import Memory, MemoryType, ensure_utc, utcnow


NEVER_EXPIRES = -1

DEFAULT_RETENTION_DAYS: Dict[MemoryType, int] = {
    MemoryType.FACT: 365,
    MemoryType.PERSONAL: NEVER_EXPIRES,
    MemoryType.PREFERENCE: NEVER_EXPIRES,
    MemoryType.EXPERIENCE: 180,
    MemoryType.GOAL: 90,
    MemoryType.RELATIONSHIP: NEVER_EXPIRES,
    MemoryType.INTEREST: 180,
    MemoryType.LEARNING: 90,
    MemoryType.EMOTION: 30,
    MemoryType.STORY: 180,
    MemoryType.ACHIEVEMENT: NEVER_EXPIRES,
    MemoryType.PROBLEM: 60,
    MemoryType.QUESTION: 30,
    MemoryType.SKILL: NEVER_EXPIRES,
}


class RetentionPolicy(BaseModel):
    """
    Retention rules for an owner's memories.

    A memory is eviction-eligible only when all of these hold:
    - its type has a retention window (>= 0 days)
    - its age exceeds that window
    - its importance is below ``min_importance_to_retain``
    - it is not pinned
    """

    retention_days: Dict[MemoryType, int] = Field(
        default_factory=lambda: dict(DEFAULT_RETENTION_DAYS),
        description="Retention window per memory type in days (-1 = never expires)",
    )
    min_importance_to_retain: float = Field(0.3, ge=0.0, le=1.0)
    max_memories_per_owner: int = Field(10000, ge=0)
    auto_cleanup_enabled: bool = True

    def window_for(self, memory_type: MemoryType) -> int:
        """Retention window for a type; unknown types never expire."""
        return self.retention_days.get(memory_type, NEVER_EXPIRES)

    def expires_at_for(self, memory: Memory) -> Optional[datetime]:
        """Derived expiry timestamp, or None for types that never expire."""
        days = self.window_for(memory.memory_type)
        if days < 0:
            return None
        return memory.created_at + timedelta(days=days)

    def is_eviction_eligible(self, memory: Memory, now: Optional[datetime] = None) -> bool:
        """Check the retention invariant for a single memory."""
        if memory.is_pinned:
            return False

        days = self.window_for(memory.memory_type)
        if days < 0:
            return False

        if memory.age_days(now) <= days:
            return False

        return memory.importance < self.min_importance_to_retain

    def select_expired(
        self,
        memories: Sequence[Memory],
        now: Optional[datetime] = None,
    ) -> List[Memory]:
        """
        Memories that should be removed by retention.

        Returns an empty list when auto cleanup is disabled.
        """
        if not self.auto_cleanup_enabled:
            return []

        now = ensure_utc(now) or utcnow()
        return [m for m in memories if self.is_eviction_eligible(m, now)]

    def select_over_capacity(self, memories: Sequence[Memory]) -> List[Memory]:
        """
        Memories to evict so the collection fits ``max_memories_per_owner``.

        Lowest importance goes first, oldest first among equal importance.
        Pinned memories count toward the cap but are never selected, so the
        result can leave the collection above the cap when too many are pinned.
        """
        excess = len(memories) - self.max_memories_per_owner
        if excess <= 0:
            return []

        candidates = sorted(
            (m for m in memories if not m.is_pinned),
            key=lambda m: (m.importance, m.created_at, m.id or ""),
        )
        return candidates[:excess]
