"""
Bulk re-extraction pipeline.

Steps:
    1. Load turns for every conversation
    2. Chunk into fixed-size batches
    3. Extract each batch (failed batches are skipped)
    4. Persist each batch's drafts as soon as it is extracted
    5. Apply retention cleanup
    6. Rebuild and persist the Frontal Cortex

Runs sequentially. Progress is reported as the fraction of batches done.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from companion_memory.ops.telemetry import new_run_id, timed_step
from companion_memory.persist.transcripts import TranscriptSupplier
from .cortex import FrontalCortex, FrontalCortexBuilder
from .extractor import ExtractionError, MemoryExtractor, chunk_turns
from .schemas import ensure_utc, utcnow
from .store import MemoryStore


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


@dataclass
class PipelineReport:
    """Summary of one re-extraction run."""
    run_id: str
    owner_id: str
    conversations: int = 0
    turns: int = 0
    batches_total: int = 0
    batches_failed: int = 0
    memories_saved: int = 0
    memories_evicted: int = 0
    errors: List[str] = field(default_factory=list)
    cortex: Optional[FrontalCortex] = None


class ExtractionPipeline:
    """
    Re-extracts an owner's memories from stored transcripts.

    Memory ids are derived from batch offsets, so running the pipeline twice
    over the same transcripts rewrites the same records instead of
    duplicating them.
    """

    def __init__(
        self,
        store: MemoryStore,
        extractor: MemoryExtractor,
        builder: Optional[FrontalCortexBuilder] = None,
    ):
        self.store = store
        self.extractor = extractor
        self.builder = builder or FrontalCortexBuilder()

    def run(
        self,
        owner_id: str,
        supplier: TranscriptSupplier,
        conversation_ids: Optional[Sequence[str]] = None,
        progress: Optional[ProgressCallback] = None,
        now: Optional[datetime] = None,
        run_id: Optional[str] = None,
    ) -> PipelineReport:
        """
        Run the pipeline for one owner.

        Args:
            owner_id: Owner whose memories are rebuilt
            supplier: Source of conversation turns
            conversation_ids: Conversations to process (default: all the supplier knows)
            progress: Called as ``progress(fraction, message)`` after each batch
            now: Reference time for cleanup and the cortex timestamp
            run_id: Telemetry run id (generated when omitted)

        Returns:
            PipelineReport with counts and the rebuilt cortex

        Raises:
            ExtractionError: If at least one batch failed and nothing was extracted
            PersistenceError: If saving memories or the cortex fails
        """
        now = ensure_utc(now) or utcnow()
        report = PipelineReport(run_id=run_id or new_run_id(), owner_id=owner_id)

        # Step 1 + 2: load and chunk
        with timed_step(report.run_id, "load_turns") as fields:
            ids = list(conversation_ids) if conversation_ids is not None else supplier.conversation_ids()
            work = []
            for conversation_id in ids:
                turns = supplier.turns(conversation_id)
                report.turns += len(turns)
                for offset, batch in chunk_turns(turns, self.extractor.batch_size):
                    work.append((conversation_id, offset, batch))
            report.conversations = len(ids)
            report.batches_total = len(work)
            fields.update(conversations=report.conversations, turns=report.turns, batches=len(work))

        # Step 3 + 4: extract and persist batch by batch
        with timed_step(report.run_id, "extract") as fields:
            for index, (conversation_id, offset, batch) in enumerate(work, start=1):
                try:
                    drafts = self.extractor.extract_batch(owner_id, conversation_id, batch, offset)
                except ExtractionError as e:
                    report.batches_failed += 1
                    report.errors.append(str(e))
                    logger.error(f"Skipping batch: {e}")
                    drafts = []

                if drafts:
                    self.store.save(drafts)
                    report.memories_saved += len(drafts)

                if progress:
                    progress(index / len(work), f"Extracted batch {index}/{len(work)} of {conversation_id}")

            fields.update(saved=report.memories_saved, failed=report.batches_failed)

        if report.batches_failed and not report.memories_saved:
            raise ExtractionError(
                f"No memories extracted for {owner_id}: "
                f"{report.batches_failed}/{report.batches_total} batches failed"
            )

        # Step 5: retention
        with timed_step(report.run_id, "cleanup") as fields:
            report.memories_evicted = self.store.cleanup(owner_id, now)
            fields.update(evicted=report.memories_evicted)

        # Step 6: cortex
        with timed_step(report.run_id, "rebuild_cortex") as fields:
            memories = self.store.load(owner_id)
            cortex = self.builder.build(owner_id, memories, now)
            self.store.save_cortex(cortex)
            report.cortex = cortex
            fields.update(memories=len(memories), interests=len(cortex.interests))

        logger.info(
            f"Pipeline {report.run_id} for {owner_id}: {report.memories_saved} saved, "
            f"{report.batches_failed}/{report.batches_total} batches failed, "
            f"{report.memories_evicted} evicted"
        )
        return report
