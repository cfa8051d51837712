"""
Memory recall: ranked retrieval and context rendering.

Two scoring modes:
- Ranked context: count of keyword/topic overlaps, ties broken by
  importance then recency. Feeds prompt context.
- Search: weighted keyword hits (content 3, topic 2, entity 1) combined
  with exponential recency decay. Feeds browsing and parent-facing views.
"""

import math
from datetime import datetime
from typing import List, Optional, Sequence

from .schemas import Memory, MemoryQuery, MemorySearchResult, ensure_utc, utcnow


CONTEXT_HEADER = "## Relevant Past Conversations"


class MemoryRecall:
    """
    Ranks memories against keywords and renders them for prompt injection.

    Pure over the memory list it is given; persistence stays in MemoryStore.
    """

    def __init__(self, max_chars: int = 1200, snippet_chars: int = 200):
        """
        Args:
            max_chars: Upper bound on the rendered context block
            snippet_chars: Per-memory content truncation
        """
        self.max_chars = max_chars
        self.snippet_chars = snippet_chars

    @staticmethod
    def topic_overlap(memory: Memory, keywords: Sequence[str]) -> int:
        """Number of distinct keywords found among the memory's topics."""
        topics = set(memory.topics)
        return len({k.lower() for k in keywords} & topics)

    def rank(
        self,
        memories: Sequence[Memory],
        keywords: Sequence[str],
        limit: int = 5,
    ) -> List[Memory]:
        """
        Order memories for context injection.

        Args:
            memories: Candidate memories
            keywords: Keywords from the current user turn
            limit: Maximum results

        Returns:
            Top ``limit`` memories, best first
        """
        if limit <= 0:
            return []

        ranked = sorted(
            memories,
            key=lambda m: (
                -self.topic_overlap(m, keywords),
                -m.importance,
                -m.created_at.timestamp(),
                m.id or "",
            ),
        )
        return ranked[:limit]

    def format_memory_context(self, memories: Sequence[Memory]) -> str:
        """
        Render ranked memories with a fixed template.

        Entries that would push the block past ``max_chars`` are dropped.

        Returns:
            Context block, or "" when nothing fits
        """
        if not memories:
            return ""

        header = CONTEXT_HEADER + "\n\n"
        body: List[str] = []
        total = len(header)

        for index, memory in enumerate(memories, start=1):
            entry = self._render_entry(index, memory)
            if total + len(entry) > self.max_chars:
                break
            body.append(entry)
            total += len(entry)

        if not body:
            return ""

        return (header + "".join(body)).rstrip("\n")

    def _render_entry(self, index: int, memory: Memory) -> str:
        lines = [f"{index}. [{memory.memory_type.value}] {memory.snippet(self.snippet_chars)}"]
        if memory.topics:
            lines.append(f"   Topics: {', '.join(memory.topics)}")
        lines.append(f"   (recorded {memory.created_at.date().isoformat()})")
        return "\n".join(lines) + "\n\n"

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        memories: Sequence[Memory],
        query: MemoryQuery,
        now: Optional[datetime] = None,
    ) -> List[MemorySearchResult]:
        """
        Filter and score memories for a query.

        Returns:
            Results sorted by combined score, at most ``query.limit``
        """
        now = ensure_utc(now) or utcnow()

        filtered = [
            m for m in memories
            if m.importance >= query.min_importance
            and (not query.memory_types or m.memory_type in query.memory_types)
            and (query.start is None or m.created_at >= query.start)
            and (query.end is None or m.created_at <= query.end)
        ]

        results = []
        for memory in filtered:
            days_since = max(0.0, (now - memory.created_at).total_seconds() / 86400)
            results.append(MemorySearchResult(
                memory=memory,
                relevance_score=self._relevance(memory, query.keywords),
                recency_score=math.exp(-days_since / 30.0),
            ))

        results.sort(key=lambda r: r.combined_score, reverse=True)
        return results[:query.limit]

    @staticmethod
    def _relevance(memory: Memory, keywords: Sequence[str]) -> float:
        if not keywords:
            return 1.0

        content = memory.content.lower()
        entities = [e.lower() for e in memory.entities]

        matches = 0
        for keyword in keywords:
            keyword = keyword.lower()
            if keyword in content:
                matches += 3
            if keyword in memory.topics:
                matches += 2
            if keyword in entities:
                matches += 1

        return min(1.0, matches / (len(keywords) * 3))
