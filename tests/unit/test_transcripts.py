"""
Unit tests for companion_memory/persist/transcripts.py
"""
import json
from datetime import datetime, timezone

import pytest

from companion_memory.persist.transcripts import ConversationTurn, TranscriptError, TranscriptStore


def test_append_and_read_back(transcripts, now):
    transcripts.append("conv_1", "user", "I love dinosaurs", now)
    transcripts.append("conv_1", "assistant", "Me too!", now)

    turns = transcripts.turns("conv_1")

    assert [t.role for t in turns] == ["user", "assistant"]
    assert turns[0].content == "I love dinosaurs"
    assert turns[0].timestamp == now
    assert turns[0].is_user and not turns[1].is_user


def test_conversation_ids_sorted(transcripts):
    transcripts.append("conv_b", "user", "hi")
    transcripts.append("conv_a", "user", "hello")
    assert transcripts.conversation_ids() == ["conv_a", "conv_b"]


def test_missing_directory_and_conversation(tmp_path):
    store = TranscriptStore(tmp_path / "nowhere")
    assert store.conversation_ids() == []
    assert store.turns("conv_x") == []


def test_corrupted_file_yields_empty(transcripts):
    transcripts.root.mkdir(parents=True)
    (transcripts.root / "broken.json").write_text("{not json", encoding="utf-8")
    assert transcripts.turns("broken") == []


def test_exchange_entries_are_expanded(transcripts):
    """{"user", "moxie"} exchanges become a user turn then an assistant turn."""
    transcripts.root.mkdir(parents=True)
    data = {"messages": [
        {"user": "What is a comet?", "moxie": "A comet is an icy rock!", "timestamp": "2024-05-01T08:30:00Z"},
        {"user": "Cool", "timestamp": 1714552200},
    ]}
    (transcripts.root / "legacy.json").write_text(json.dumps(data), encoding="utf-8")

    turns = transcripts.turns("legacy")

    assert [(t.role, t.content) for t in turns] == [
        ("user", "What is a comet?"),
        ("assistant", "A comet is an icy rock!"),
        ("user", "Cool"),
    ]
    assert turns[0].timestamp == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
    assert turns[2].timestamp.tzinfo is not None


def test_turn_dict_roundtrip(now):
    turn = ConversationTurn(role="user", content="hello", timestamp=now)
    assert ConversationTurn.from_dict(turn.to_dict()) == turn


def test_naive_timestamp_becomes_utc():
    turn = ConversationTurn.from_dict({"role": "user", "content": "x", "timestamp": "2024-01-01T10:00:00"})
    assert turn.timestamp == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_non_object_file_yields_empty(transcripts):
    transcripts.root.mkdir(parents=True)
    (transcripts.root / "conv_x.json").write_text('[{"role": "user", "content": "hi"}]', encoding="utf-8")
    assert transcripts.turns("conv_x") == []


def test_missing_timestamps_are_stable(transcripts):
    transcripts.root.mkdir(parents=True)
    data = {"messages": [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "hi!", "timestamp": "2024-05-01T08:30:00Z"},
        {"user": "bye"},
    ]}
    (transcripts.root / "conv_y.json").write_text(json.dumps(data), encoding="utf-8")

    first = transcripts.turns("conv_y")
    second = transcripts.turns("conv_y")

    assert first == second
    assert first[2].timestamp == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


def test_append_refuses_to_overwrite_unreadable_file(transcripts):
    transcripts.root.mkdir(parents=True)
    path = transcripts.root / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(TranscriptError):
        transcripts.append("broken", "user", "hello")

    assert path.read_text(encoding="utf-8") == "{not json"
