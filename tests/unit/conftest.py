"""
Shared fixtures for memory engine unit tests.
"""
import pytest

from companion_memory.memory.policy import RetentionPolicy
from companion_memory.memory.store import MemoryStore
from companion_memory.persist.sqlite_store import KVStore
from companion_memory.persist.transcripts import TranscriptStore


@pytest.fixture
def kv(tmp_path):
    """Create a temporary KVStore instance."""
    db_path = tmp_path / "kv.db"
    store = KVStore(db_path)
    yield store
    store.close()


@pytest.fixture
def store(tmp_path):
    """Create a temporary MemoryStore with default retention."""
    memory_store = MemoryStore(tmp_path / "memory.db")
    yield memory_store
    memory_store.close()


@pytest.fixture
def small_store(tmp_path):
    """MemoryStore capped at three memories per owner."""
    memory_store = MemoryStore(
        tmp_path / "small.db",
        policy=RetentionPolicy(max_memories_per_owner=3),
    )
    yield memory_store
    memory_store.close()


@pytest.fixture
def transcripts(tmp_path) -> TranscriptStore:
    """Empty transcript directory."""
    return TranscriptStore(tmp_path / "conversations")


@pytest.fixture
def sample_transcripts(transcripts, make_turns) -> TranscriptStore:
    """Two short conversations about dinosaurs and family."""
    for turn in make_turns(
        "I love dinosaurs so much!",
        "My sister Sarah likes space",
        "Why do dinosaurs have tails?",
    ):
        transcripts.append("conv_1", turn.role, turn.content, turn.timestamp)

    for turn in make_turns(
        "I want to learn about space rockets",
        "I feel sad when it's bedtime",
    ):
        transcripts.append("conv_2", turn.role, turn.content, turn.timestamp)

    return transcripts
