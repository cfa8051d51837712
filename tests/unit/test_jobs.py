"""
Unit tests for companion_memory/ops/jobs.py and ops/extraction_worker.py

Tests the async JobManager, its JSONL persistence and background
re-extraction.
"""
import pytest
import asyncio
import json

from companion_memory.memory.extractor import MemoryExtractor
from companion_memory.memory.pipeline import ExtractionPipeline
from companion_memory.memory.summarizer import RuleBasedExtractionCapability
from companion_memory.ops.extraction_worker import run_reextraction
from companion_memory.ops.jobs import JobManager, JobStatus

# Mark all tests as async
pytestmark = pytest.mark.asyncio


def read_states(state_file):
    with open(state_file, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


async def test_submit_job_creates_queued_state(tmp_path):
    manager = JobManager(state_file=tmp_path / "jobs.jsonl")

    async def quick_task(job, mgr):
        return None

    job_id = manager.submit(quick_task, job_type="test", payload={"owner_id": "moxie_001"})

    job = manager.get(job_id)
    assert job.state == "queued"
    assert job.progress == 0.0
    assert job.payload == {"type": "test", "owner_id": "moxie_001"}

    await manager.wait(job_id)


async def test_job_succeeds(tmp_path):
    manager = JobManager(state_file=tmp_path / "jobs.jsonl")

    async def task(job, mgr):
        mgr.update_progress(job.id, 0.5, "Halfway")
        await asyncio.sleep(0.01)
        job.payload["summary"] = "All done"

    job_id = manager.submit(task, job_type="test")
    job = await manager.wait(job_id)

    assert job.state == "succeeded"
    assert job.progress == 1.0
    assert job.message == "All done"
    assert job.started_at is not None
    assert job.finished_at is not None

    states = [s["state"] for s in read_states(tmp_path / "jobs.jsonl")]
    assert states == ["queued", "running", "running", "succeeded"]


async def test_failed_job_records_error(tmp_path):
    manager = JobManager(state_file=tmp_path / "jobs.jsonl")

    async def failing(job, mgr):
        raise ValueError("boom")

    job_id = manager.submit(failing)
    job = await manager.wait(job_id)

    assert job.state == "failed"
    assert job.message == "Failed: boom"
    assert job.payload["error"] == "boom"


async def test_progress_is_clamped(tmp_path):
    manager = JobManager(state_file=tmp_path / "jobs.jsonl")
    seen = []

    async def task(job, mgr):
        mgr.update_progress(job.id, 1.7, "too far")
        seen.append(job.progress)
        mgr.update_progress(job.id, -0.5, "too low")
        seen.append(job.progress)

    await manager.wait(manager.submit(task))

    assert seen == [1.0, 0.0]


async def test_restart_marks_unfinished_jobs_failed(tmp_path):
    state_file = tmp_path / "jobs.jsonl"
    running = JobStatus(id="job-1", state="running", progress=0.4, message="Working", started_at="2024-06-01T12:00:00+00:00")
    finished = JobStatus(id="job-2", state="succeeded", progress=1.0, message="Done")
    with open(state_file, "w", encoding="utf-8") as f:
        f.write(json.dumps(running.to_dict()) + "\n")
        f.write("not json\n")
        f.write(json.dumps(finished.to_dict()) + "\n")

    manager = JobManager(state_file=state_file)

    assert manager.get("job-1").state == "failed"
    assert manager.get("job-1").message == "Interrupted by restart"
    assert manager.get("job-2").state == "succeeded"

    reloaded = JobManager(state_file=state_file)
    assert reloaded.get("job-1").state == "failed"


async def test_list_and_cleanup(tmp_path):
    manager = JobManager(state_file=tmp_path / "jobs.jsonl")

    async def task(job, mgr):
        return None

    first = manager.submit(task)
    second = manager.submit(task)
    await manager.wait(first)
    await manager.wait(second)

    assert {j.id for j in manager.list(state="succeeded")} == {first, second}
    assert manager.list(state="failed") == []

    assert manager.cleanup_old_jobs(max_age_hours=24) == 0
    assert manager.cleanup_old_jobs(max_age_hours=-1) == 2
    assert manager.list() == []


async def test_run_reextraction(tmp_path, store, sample_transcripts):
    manager = JobManager(state_file=tmp_path / "jobs" / "jobs.jsonl")
    extractor = MemoryExtractor(RuleBasedExtractionCapability(), batch_size=4)
    pipeline = ExtractionPipeline(store, extractor)

    async def worker(job, mgr):
        await run_reextraction(job, mgr, pipeline, "moxie_001", sample_transcripts)

    job_id = manager.submit(worker, job_type="reextract")
    job = await manager.wait(job_id)

    assert job.state == "succeeded"
    assert job.message == "Extracted 5 memories from 2 conversations"
    assert job.payload["owner_id"] == "moxie_001"
    assert job.payload["memories_saved"] == 5
    assert job.payload["batches_total"] == 3
    assert sorted(job.payload["interests"]) == ["dinosaurs", "space"]
    assert store.count("moxie_001") == 5

    progress = [s["progress"] for s in read_states(tmp_path / "jobs" / "jobs.jsonl") if s["state"] == "running"]
    assert progress == sorted(progress)
    assert progress[-1] == 1.0


async def test_run_reextraction_failure(tmp_path, store, transcripts):
    class Exploding:
        def run(self, *args, **kwargs):
            raise RuntimeError("store offline")

    manager = JobManager(state_file=tmp_path / "jobs.jsonl")

    async def worker(job, mgr):
        await run_reextraction(job, mgr, Exploding(), "moxie_001", transcripts)

    job = await manager.wait(manager.submit(worker, job_type="reextract"))

    assert job.state == "failed"
    assert "store offline" in job.message
