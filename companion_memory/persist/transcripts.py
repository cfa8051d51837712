"""
File-backed transcript supplier.

Each conversation lives in ``<root>/<conversation_id>.json`` and holds its
turns in order. The memory pipeline only needs the pull interface
(:meth:`TranscriptStore.turns`); the hosting application appends turns as
the conversation progresses.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Protocol


logger = logging.getLogger(__name__)


@dataclass
class ConversationTurn:
    """Single conversation turn."""

    role: str  # "user" or "assistant"
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_user(self) -> bool:
        return self.role == "user"

    def to_dict(self) -> dict:
        """Convert to dict for serialization."""
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict, default_timestamp: Optional[datetime] = None) -> "ConversationTurn":
        """Create from dict. A missing timestamp falls back to ``default_timestamp`` (or now)."""
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=_parse_timestamp(data.get("timestamp"), default_timestamp),
        )


class TranscriptError(Exception):
    """Raised when a stored transcript cannot be read for an append."""
    pass


def _parse_timestamp(value, default: Optional[datetime] = None) -> datetime:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return default or datetime.now(timezone.utc)


class TranscriptSupplier(Protocol):
    """Pull interface over ordered conversation turns."""

    def conversation_ids(self) -> list[str]:
        ...

    def turns(self, conversation_id: str) -> list[ConversationTurn]:
        ...


class TranscriptStore:
    """
    Reads and appends conversation transcripts stored as JSON files.

    Two entry shapes are accepted when reading:
    - ``{"role": ..., "content": ..., "timestamp": ...}``
    - ``{"user": ..., "moxie": ..., "timestamp": ...}`` (one exchange,
      expanded into a user turn followed by an assistant turn)

    An entry without a timestamp takes the previous turn's timestamp, or
    the file's modification time for leading entries, so repeated reads of
    an unchanged file give identical turns.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, conversation_id: str) -> Path:
        return self.root / f"{conversation_id}.json"

    def conversation_ids(self) -> list[str]:
        """List stored conversation ids, sorted."""
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))

    def turns(self, conversation_id: str) -> list[ConversationTurn]:
        """
        Load the ordered turns of a conversation.

        Missing or corrupted files yield an empty list.
        """
        try:
            return self._read(conversation_id)
        except TranscriptError as e:
            logger.warning(str(e))
            return []

    def _read(self, conversation_id: str) -> list[ConversationTurn]:
        path = self._path(conversation_id)
        if not path.exists():
            return []

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError(f"expected an object, got {type(data).__name__}")
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            return list(self._expand(data.get("messages", []), modified))
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise TranscriptError(f"Unreadable transcript {path}: {e}") from e

    @staticmethod
    def _expand(entries: list[dict], fallback: datetime) -> Iterator[ConversationTurn]:
        previous = fallback
        for entry in entries:
            if "role" in entry:
                turn = ConversationTurn.from_dict(entry, previous)
                previous = turn.timestamp
                yield turn
                continue

            timestamp = _parse_timestamp(entry.get("timestamp"), previous)
            previous = timestamp
            if entry.get("user"):
                yield ConversationTurn(role="user", content=entry["user"], timestamp=timestamp)
            if entry.get("moxie"):
                yield ConversationTurn(role="assistant", content=entry["moxie"], timestamp=timestamp)

    def append(
        self,
        conversation_id: str,
        role: str,
        content: str,
        timestamp: Optional[datetime] = None,
    ) -> ConversationTurn:
        """
        Append a turn to a conversation and persist.

        Returns:
            The created ConversationTurn

        Raises:
            TranscriptError: If the stored transcript exists but cannot be read
        """
        turn = ConversationTurn(
            role=role,
            content=content,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        existing = self._read(conversation_id)
        existing.append(turn)

        self.root.mkdir(parents=True, exist_ok=True)
        data = {
            "conversation_id": conversation_id,
            "messages": [t.to_dict() for t in existing],
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        with open(self._path(conversation_id), "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

        return turn
