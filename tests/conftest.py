"""Test configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from companion_memory.memory.schemas import Memory, MemoryType
from companion_memory.persist.transcripts import ConversationTurn


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time."""
    return NOW


@pytest.fixture
def make_memory() -> Callable[..., Memory]:
    """Factory for Memory records with sensible defaults."""

    def _make(
        content: str = "User likes dinosaurs",
        memory_type: MemoryType = MemoryType.FACT,
        owner_id: str = "moxie_001",
        days_old: float = 0.0,
        **kwargs,
    ) -> Memory:
        created = kwargs.pop("created_at", NOW - timedelta(days=days_old))
        return Memory(
            owner_id=owner_id,
            content=content,
            memory_type=memory_type,
            created_at=created,
            last_accessed_at=created,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_turns() -> Callable[..., list]:
    """Build alternating user/assistant turns from user messages."""

    def _make(*user_messages: str, start: datetime = NOW, with_replies: bool = True) -> list:
        turns = []
        moment = start
        for message in user_messages:
            turns.append(ConversationTurn(role="user", content=message, timestamp=moment))
            moment += timedelta(seconds=30)
            if with_replies:
                turns.append(ConversationTurn(role="assistant", content="Tell me more!", timestamp=moment))
                moment += timedelta(seconds=30)
        return turns

    return _make
