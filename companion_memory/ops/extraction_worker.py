"""
Async re-extraction worker - rebuilds an owner's memories with progress tracking.
"""

import asyncio
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from companion_memory.memory.pipeline import ExtractionPipeline
    from companion_memory.persist.transcripts import TranscriptSupplier
    from .jobs import JobManager, JobStatus


async def run_reextraction(
    job: "JobStatus",
    manager: "JobManager",
    pipeline: "ExtractionPipeline",
    owner_id: str,
    supplier: "TranscriptSupplier",
    conversation_ids: Optional[Sequence[str]] = None,
) -> None:
    """
    Run the extraction pipeline in a worker thread.

    Batch progress from the pipeline is forwarded to the job, scaled into
    0-95%; the remainder covers cleanup and the cortex rebuild.

    Updates job.payload with:
        - owner_id: str
        - run_id: str
        - memories_saved / batches_total / batches_failed / memories_evicted: int
        - interests: list[str]
    """
    loop = asyncio.get_running_loop()
    job.payload["owner_id"] = owner_id

    def on_progress(fraction: float, message: str) -> None:
        # Called from the worker thread
        loop.call_soon_threadsafe(manager.update_progress, job.id, 0.95 * fraction, message)

    manager.update_progress(job.id, 0.0, f"Loading transcripts for {owner_id}...")

    report = await asyncio.to_thread(
        pipeline.run,
        owner_id,
        supplier,
        conversation_ids,
        on_progress,
    )

    job.payload.update(
        run_id=report.run_id,
        memories_saved=report.memories_saved,
        batches_total=report.batches_total,
        batches_failed=report.batches_failed,
        memories_evicted=report.memories_evicted,
        interests=list(report.cortex.interests) if report.cortex else [],
        summary=f"Extracted {report.memories_saved} memories from {report.conversations} conversations",
    )
    manager.update_progress(job.id, 1.0, "Re-extraction complete")
