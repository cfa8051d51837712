"""
Persistence layer for the memory engine.

Provides:
- Stable hashing for deterministic memory ids
- SQLite-backed KV store for memories and cortex records
- File-backed transcript supplier
"""

from .hashing import stable_hash, memory_id_for
from .sqlite_store import KVStore
from .transcripts import ConversationTurn, TranscriptError, TranscriptStore, TranscriptSupplier

__all__ = [
    "stable_hash",
    "memory_id_for",
    "KVStore",
    "ConversationTurn",
    "TranscriptError",
    "TranscriptStore",
    "TranscriptSupplier",
]
