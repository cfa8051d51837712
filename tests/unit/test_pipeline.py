"""
Unit tests for companion_memory/memory/pipeline.py

Runs the re-extraction pipeline end to end over file transcripts with the
rule-based capability.
"""
import pytest

from companion_memory.memory.cortex import FrontalCortexBuilder
from companion_memory.memory.extractor import ExtractionCapability, ExtractionError, MemoryExtractor
from companion_memory.memory.pipeline import ExtractionPipeline
from companion_memory.memory.policy import RetentionPolicy
from companion_memory.memory.schemas import MemoryType
from companion_memory.memory.summarizer import RuleBasedExtractionCapability


class BrokenCapability(ExtractionCapability):
    def extract(self, turns, starting_offset, context):
        raise RuntimeError("model crashed")


@pytest.fixture
def pipeline(store):
    extractor = MemoryExtractor(RuleBasedExtractionCapability(), batch_size=4, timeout_s=None)
    return ExtractionPipeline(store, extractor, FrontalCortexBuilder())


def test_run_extracts_and_builds_cortex(pipeline, store, sample_transcripts, now):
    report = pipeline.run("moxie_001", sample_transcripts, now=now)

    assert report.conversations == 2
    assert report.turns == 10
    assert report.batches_total == 3
    assert report.batches_failed == 0
    assert report.memories_saved == 5
    assert report.memories_evicted == 0

    types = sorted(m.memory_type.value for m in store.load("moxie_001"))
    assert types == ["emotion", "goal", "preference", "question", "relationship"]

    cortex = store.load_cortex("moxie_001")
    assert cortex == report.cortex
    assert sorted(cortex.interests) == ["dinosaurs", "space"]
    assert cortex.relationships == {"Sarah": "My sister Sarah likes space"}
    assert cortex.goals == ["I want to learn about space rockets"]
    assert cortex.emotional_profile.emotional_triggers == {}
    assert cortex.conversation_patterns.question_types == ["why"]


def test_progress_reports_fraction_of_batches(pipeline, sample_transcripts, now):
    calls = []

    pipeline.run("moxie_001", sample_transcripts, progress=lambda f, msg: calls.append((f, msg)), now=now)

    assert [round(f, 3) for f, _ in calls] == [0.333, 0.667, 1.0]
    assert calls[0][1] == "Extracted batch 1/3 of conv_1"
    assert calls[-1][1] == "Extracted batch 3/3 of conv_2"


def test_rerun_does_not_duplicate(pipeline, store, sample_transcripts, now):
    pipeline.run("moxie_001", sample_transcripts, now=now)
    first_ids = {m.id for m in store.load("moxie_001")}

    pipeline.run("moxie_001", sample_transcripts, now=now)

    assert {m.id for m in store.load("moxie_001")} == first_ids
    assert store.count("moxie_001") == 5


def test_rerun_keeps_pinned_memory(pipeline, store, sample_transcripts, now):
    pipeline.run("moxie_001", sample_transcripts, now=now)
    weakest = min(store.load("moxie_001"), key=lambda m: m.importance)
    store.pin("moxie_001", weakest.id)

    pipeline.run("moxie_001", sample_transcripts, now=now)
    assert store.get("moxie_001", weakest.id).is_pinned is True

    store.policy = RetentionPolicy(max_memories_per_owner=4)
    assert store.cleanup("moxie_001", now) == 1
    assert store.get("moxie_001", weakest.id) is not None


def test_selected_conversations_only(pipeline, store, sample_transcripts, now):
    report = pipeline.run("moxie_001", sample_transcripts, conversation_ids=["conv_2"], now=now)

    assert report.conversations == 1
    assert report.memories_saved == 2
    assert {m.source_conversation_id for m in store.load("moxie_001")} == {"conv_2"}


def test_empty_supplier_builds_empty_cortex(pipeline, store, transcripts, now):
    report = pipeline.run("moxie_001", transcripts, now=now)

    assert report.batches_total == 0
    assert report.cortex.is_empty()
    assert store.load_cortex("moxie_001") is not None


def test_all_batches_failing_raises(store, sample_transcripts, now):
    extractor = MemoryExtractor(BrokenCapability(), batch_size=4, timeout_s=None)
    pipeline = ExtractionPipeline(store, extractor)

    with pytest.raises(ExtractionError):
        pipeline.run("moxie_001", sample_transcripts, now=now)

    assert store.load_cortex("moxie_001") is None


def test_pipeline_applies_retention(small_store, transcripts, make_turns, now):
    for turn in make_turns(
        "I like cats", "I like dogs", "I like birds", "I like fish", "I like frogs",
    ):
        transcripts.append("conv_pets", turn.role, turn.content, turn.timestamp)
    extractor = MemoryExtractor(RuleBasedExtractionCapability(), batch_size=4, timeout_s=None)

    report = ExtractionPipeline(small_store, extractor).run("moxie_001", transcripts, now=now)

    assert report.memories_saved == 5
    assert report.memories_evicted == 2
    assert small_store.count("moxie_001") == 3
    assert all(m.memory_type == MemoryType.PREFERENCE for m in small_store.load("moxie_001"))
