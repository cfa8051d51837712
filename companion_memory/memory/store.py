"""
Memory persistence layer using SQLite KVStore.

Stores Memory records per owner, enforces the retention policy, and serves
ranked context and search over an owner's collection.
"""

import json
import logging
import sqlite3
import threading
import uuid
from collections import Counter
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from pydantic import ValidationError

from companion_memory.persist.sqlite_store import KVStore
from .cortex import FrontalCortex
from .policy import RetentionPolicy
from .recall import MemoryRecall
from .schemas import (
    SCHEMA_VERSION,
    Memory,
    MemoryAnalytics,
    MemoryQuery,
    MemorySearchResult,
    ensure_utc,
    utcnow,
)


logger = logging.getLogger(__name__)

READ_ERRORS = (sqlite3.Error, OSError, json.JSONDecodeError, ValidationError, KeyError, TypeError)


class PersistenceError(Exception):
    """Raised when a memory or cortex write cannot be persisted."""
    pass


class MemoryStore:
    """
    Persistent storage for memories and cortex snapshots.

    Uses KVStore tables with keys like:
    - memories: mem:<owner_id>:<memory_id>
    - cortex:   cortex:<owner_id>

    Writes for the same owner are serialized through a per-owner lock, so
    read-modify-write operations (cleanup, access tracking) never interleave.
    Reads degrade to empty results; writes raise PersistenceError.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        policy: Optional[RetentionPolicy] = None,
        recall: Optional[MemoryRecall] = None,
    ):
        """
        Initialize memory store.

        Args:
            db_path: Path to SQLite database (default: data/memory/memory.db)
            policy: Retention policy applied by cleanup()
            recall: Ranking/rendering helper for context and search
        """
        if db_path is None:
            db_path = Path("data/memory/memory.db")

        self.db_path = Path(db_path)
        self.kv = KVStore(self.db_path)
        self.policy = policy or RetentionPolicy()
        self.recall = recall or MemoryRecall()

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Keys and locking
    # ------------------------------------------------------------------

    @staticmethod
    def _make_key(owner_id: str, memory_id: str) -> str:
        return f"mem:{owner_id}:{memory_id}"

    @staticmethod
    def _owner_prefix(owner_id: str) -> str:
        return f"mem:{owner_id}:"

    @staticmethod
    def _cortex_key(owner_id: str) -> str:
        return f"cortex:{owner_id}"

    @contextmanager
    def _owner_lock(self, owner_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(owner_id, threading.Lock())
        with lock:
            yield

    def _write(self, owner_id: str, memories: Sequence[Memory]) -> None:
        items = [
            (self._make_key(owner_id, m.id), json.dumps(m.to_storage_dict()))
            for m in memories
        ]
        try:
            self.kv.set_many("memories", items)
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to persist {len(items)} memories for {owner_id}: {e}") from e

    def _scan_owner(self, owner_id: str) -> List[tuple]:
        # "mem:kid:" is also a prefix of owner "kid:2"'s keys
        prefix = self._owner_prefix(owner_id)
        return [
            (key, value)
            for key, value in self.kv.scan("memories", prefix)
            if ":" not in key[len(prefix):]
        ]

    def _read(self, owner_id: str) -> List[Memory]:
        memories = [
            Memory.from_storage_dict(json.loads(value))
            for _, value in self._scan_owner(owner_id)
        ]
        memories = [m for m in memories if m.owner_id == owner_id]
        memories.sort(key=lambda m: (m.created_at, m.id or ""))
        return memories

    def _keep_history(self, owner_id: str, drafts: Sequence[Memory]) -> None:
        """Carry pin state, access stats and creation time over from stored records."""
        for draft in drafts:
            existing = self.get(owner_id, draft.id)
            if existing is None:
                continue
            draft.is_pinned = draft.is_pinned or existing.is_pinned
            draft.access_count = max(draft.access_count, existing.access_count)
            draft.last_accessed_at = max(draft.last_accessed_at, existing.last_accessed_at)
            draft.created_at = min(draft.created_at, existing.created_at)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def save(self, drafts: Sequence[Memory]) -> List[str]:
        """
        Persist memory drafts.

        Assigns ids where absent and derives ``expires_at`` from the retention
        policy. Saving a draft whose id already exists replaces that record,
        so replaying an extraction batch does not duplicate memories. The
        replaced record's pin, access statistics and earliest ``created_at``
        are kept.

        Args:
            drafts: Memories to store (any owners)

        Returns:
            Memory ids in input order

        Raises:
            PersistenceError: If the write fails
        """
        by_owner: Dict[str, List[Memory]] = {}
        for draft in drafts:
            if not draft.id:
                draft.id = f"mem_{uuid.uuid4().hex[:24]}"
            draft.schema_version = SCHEMA_VERSION
            by_owner.setdefault(draft.owner_id, []).append(draft)

        for owner_id, memories in by_owner.items():
            with self._owner_lock(owner_id):
                self._keep_history(owner_id, memories)
                for memory in memories:
                    memory.expires_at = self.policy.expires_at_for(memory)
                self._write(owner_id, memories)
            logger.debug(f"Saved {len(memories)} memories for {owner_id}")

        return [d.id for d in drafts]

    def load(self, owner_id: str) -> List[Memory]:
        """
        Load all memories for an owner, oldest first.

        Any I/O or decoding failure yields an empty list.
        """
        try:
            return self._read(owner_id)
        except READ_ERRORS as e:
            logger.warning(f"Failed to load memories for {owner_id}: {e}")
            return []

    def get(self, owner_id: str, memory_id: str) -> Optional[Memory]:
        """
        Retrieve a memory by id.

        Returns:
            Memory if found and decodable, else None
        """
        try:
            value = self.kv.get("memories", self._make_key(owner_id, memory_id))
            if value is None:
                return None
            return Memory.from_storage_dict(json.loads(value))
        except READ_ERRORS as e:
            logger.warning(f"Failed to read memory {memory_id}: {e}")
            return None

    def delete(self, owner_id: str, memory_id: str) -> bool:
        """
        Delete a memory.

        Returns:
            True if deleted, False if not found
        """
        with self._owner_lock(owner_id):
            try:
                return self.kv.delete("memories", self._make_key(owner_id, memory_id))
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to delete {memory_id}: {e}") from e

    def count(self, owner_id: str) -> int:
        """Number of stored memories for an owner."""
        return len(self.load(owner_id))

    def clear_owner(self, owner_id: str) -> int:
        """
        Delete every memory and the cortex snapshot for an owner.

        Returns:
            Number of memories deleted
        """
        with self._owner_lock(owner_id):
            try:
                keys = [k for k, _ in self._scan_owner(owner_id)]
                removed = self.kv.delete_many("memories", keys)
                self.kv.delete("cortex", self._cortex_key(owner_id))
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to clear {owner_id}: {e}") from e
        return removed

    def _set_pinned(self, owner_id: str, memory_id: str, pinned: bool) -> bool:
        with self._owner_lock(owner_id):
            memory = self.get(owner_id, memory_id)
            if memory is None:
                return False
            memory.is_pinned = pinned
            self._write(owner_id, [memory])
        return True

    def pin(self, owner_id: str, memory_id: str) -> bool:
        """Exempt a memory from eviction. Returns False if not found."""
        return self._set_pinned(owner_id, memory_id, True)

    def unpin(self, owner_id: str, memory_id: str) -> bool:
        """Make a memory eligible for eviction again. Returns False if not found."""
        return self._set_pinned(owner_id, memory_id, False)

    def touch(
        self,
        owner_id: str,
        memory_ids: Sequence[str],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Record that memories were served in context.

        Memories removed since they were read are skipped rather than
        re-created.

        Returns:
            Number of memories updated
        """
        with self._owner_lock(owner_id):
            updated = []
            for memory_id in memory_ids:
                memory = self.get(owner_id, memory_id)
                if memory is None:
                    continue
                memory.mark_accessed(now)
                updated.append(memory)
            if updated:
                self._write(owner_id, updated)
        return len(updated)

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def cleanup(self, owner_id: str, now: Optional[datetime] = None) -> int:
        """
        Apply the retention policy to an owner's memories.

        Removes every eviction-eligible memory (when auto cleanup is enabled),
        then evicts the lowest-importance, oldest non-pinned memories until the
        owner is at or under ``max_memories_per_owner``.

        Returns:
            Number of memories removed
        """
        now = ensure_utc(now) or utcnow()

        with self._owner_lock(owner_id):
            memories = self.load(owner_id)
            if not memories:
                return 0

            expired = self.policy.select_expired(memories, now)
            expired_ids = {m.id for m in expired}
            remaining = [m for m in memories if m.id not in expired_ids]
            over_capacity = self.policy.select_over_capacity(remaining)

            doomed = [m.id for m in expired] + [m.id for m in over_capacity]
            if not doomed:
                return 0

            try:
                removed = self.kv.delete_many(
                    "memories",
                    [self._make_key(owner_id, memory_id) for memory_id in doomed],
                )
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to evict memories for {owner_id}: {e}") from e

        logger.info(
            f"Cleanup for {owner_id}: {len(expired)} expired, "
            f"{len(over_capacity)} over capacity, {removed} removed"
        )
        return removed

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def ranked(self, owner_id: str, keywords: Sequence[str], limit: int = 5) -> List[Memory]:
        """Top memories for the keywords (see MemoryRecall.rank)."""
        return self.recall.rank(self.load(owner_id), keywords, limit)

    def ranked_context(
        self,
        owner_id: str,
        keywords: Sequence[str],
        limit: int = 5,
        record_access: bool = True,
    ) -> str:
        """
        Render the top ``limit`` memories for prompt injection.

        Args:
            owner_id: Owner whose memories are searched
            keywords: Keywords from the current user turn
            limit: Maximum memories rendered
            record_access: Update access statistics of the served memories

        Returns:
            Bounded context block, or "" when the owner has no memories
        """
        top = self.ranked(owner_id, keywords, limit)
        context = self.recall.format_memory_context(top)

        if record_access and top:
            try:
                self.touch(owner_id, [m.id for m in top])
            except PersistenceError as e:
                logger.warning(f"Could not record memory access: {e}")

        return context

    def search(
        self,
        owner_id: str,
        query: MemoryQuery,
        now: Optional[datetime] = None,
    ) -> List[MemorySearchResult]:
        """Filtered, relevance/recency scored search over an owner's memories."""
        return self.recall.search(self.load(owner_id), query, now)

    def analytics(self, owner_id: str, now: Optional[datetime] = None) -> MemoryAnalytics:
        """Aggregate statistics for an owner's memories."""
        now = ensure_utc(now) or utcnow()
        memories = self.load(owner_id)

        stats = MemoryAnalytics(owner_id=owner_id, total_memories=len(memories))
        if not memories:
            return stats

        stats.pinned_memories = sum(1 for m in memories if m.is_pinned)
        stats.memories_by_type = dict(Counter(m.memory_type for m in memories))
        topic_counts = Counter(t for m in memories for t in m.topics)
        stats.top_topics = [t for t, _ in topic_counts.most_common(10)]
        stats.average_importance = sum(m.importance for m in memories) / len(memories)
        stats.memories_this_week = sum(1 for m in memories if m.created_at >= now - timedelta(days=7))
        stats.memories_this_month = sum(1 for m in memories if m.created_at >= now - timedelta(days=30))
        stats.oldest_memory = memories[0].created_at
        stats.newest_memory = memories[-1].created_at
        return stats

    # ------------------------------------------------------------------
    # Cortex snapshots
    # ------------------------------------------------------------------

    def save_cortex(self, cortex: FrontalCortex) -> None:
        """
        Overwrite the owner's cortex snapshot.

        Raises:
            PersistenceError: If the write fails
        """
        with self._owner_lock(cortex.owner_id):
            try:
                self.kv.set(
                    "cortex",
                    self._cortex_key(cortex.owner_id),
                    cortex.model_dump_json(),
                )
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to persist cortex for {cortex.owner_id}: {e}") from e

    def load_cortex(self, owner_id: str) -> Optional[FrontalCortex]:
        """
        Load the owner's cortex snapshot.

        Returns:
            FrontalCortex, or None when missing or unreadable
        """
        try:
            value = self.kv.get("cortex", self._cortex_key(owner_id))
            if value is None:
                return None
            return FrontalCortex.model_validate_json(value)
        except READ_ERRORS as e:
            logger.warning(f"Failed to load cortex for {owner_id}: {e}")
            return None

    def close(self) -> None:
        """Close the underlying database."""
        self.kv.close()
