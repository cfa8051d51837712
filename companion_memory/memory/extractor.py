"""
Memory extraction contract and batching.

Turning free text into typed memories is delegated to a pluggable
ExtractionCapability (LLM-backed, rule-based, ...). The extractor owns what
surrounds it:
- fixed-size batching of conversation turns
- deterministic, offset-derived memory ids (replaying a batch is idempotent)
- per-call timeout with retry-once-then-skip
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from companion_memory.persist.hashing import memory_id_for
from companion_memory.persist.transcripts import ConversationTurn
from .schemas import Memory


logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised when extraction cannot produce memories."""
    pass


@dataclass
class ExtractionContext:
    """Who and where a batch of turns belongs to."""
    owner_id: str
    conversation_id: str


@dataclass
class ExtractionResult:
    """Outcome of extracting a whole conversation."""
    memories: List[Memory] = field(default_factory=list)
    batches_total: int = 0
    batches_failed: int = 0
    errors: List[str] = field(default_factory=list)


class ExtractionCapability(ABC):
    """Turns a batch of conversation turns into Memory drafts."""

    @abstractmethod
    def extract(
        self,
        turns: Sequence[ConversationTurn],
        starting_offset: int,
        context: ExtractionContext,
    ) -> List[Memory]:
        """
        Extract memory drafts from a batch.

        Implementations must be deterministic in the order of drafts they
        return for the same input, since ids are derived from that order.
        """
        pass

    def is_available(self) -> bool:
        """Check if the capability is ready to use."""
        return True


def chunk_turns(turns: Sequence[ConversationTurn], batch_size: int) -> List[tuple]:
    """
    Split turns into fixed-size batches.

    Returns:
        List of (starting_offset, batch) pairs
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    return [
        (offset, list(turns[offset:offset + batch_size]))
        for offset in range(0, len(turns), batch_size)
    ]


class MemoryExtractor:
    """
    Drives an ExtractionCapability over conversation turns.

    Example:
        >>> extractor = MemoryExtractor(RuleBasedExtractionCapability())
        >>> result = extractor.extract("moxie_001", "conv_1", turns)
    """

    def __init__(
        self,
        capability: ExtractionCapability,
        batch_size: int = 10,
        timeout_s: Optional[float] = 30.0,
        max_attempts: int = 2,
    ):
        """
        Args:
            capability: Pluggable extraction backend
            batch_size: Turns per capability call
            timeout_s: Per-call timeout (None disables)
            max_attempts: Calls per batch before it is skipped
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        self.capability = capability
        self.batch_size = batch_size
        self.timeout_s = timeout_s
        self.max_attempts = max(1, max_attempts)

    def _call(
        self,
        batch: Sequence[ConversationTurn],
        starting_offset: int,
        context: ExtractionContext,
    ) -> List[Memory]:
        if self.timeout_s is None:
            return self.capability.extract(batch, starting_offset, context)

        # A stuck call cannot be cancelled; its worker thread is abandoned
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(self.capability.extract, batch, starting_offset, context)
            return future.result(timeout=self.timeout_s)
        finally:
            executor.shutdown(wait=False)

    def extract_batch(
        self,
        owner_id: str,
        conversation_id: str,
        batch: Sequence[ConversationTurn],
        starting_offset: int,
    ) -> List[Memory]:
        """
        Extract one batch with deterministic ids.

        Args:
            owner_id: Owner of the resulting memories
            conversation_id: Source conversation
            batch: At most ``batch_size`` turns
            starting_offset: Position of the batch's first turn in the conversation

        Returns:
            Memory drafts with ids derived from (owner, conversation, offset, position)

        Raises:
            ExtractionError: If every attempt failed or timed out
        """
        if len(batch) > self.batch_size:
            raise ValueError(f"batch of {len(batch)} exceeds batch_size {self.batch_size}")
        if not batch:
            return []

        context = ExtractionContext(owner_id=owner_id, conversation_id=conversation_id)
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                drafts = self._call(batch, starting_offset, context)
                break
            except FutureTimeout:
                last_error = TimeoutError(f"timed out after {self.timeout_s}s")
            except Exception as e:
                last_error = e
            logger.warning(
                f"Extraction attempt {attempt}/{self.max_attempts} failed for "
                f"{conversation_id}@{starting_offset}: {last_error}"
            )
        else:
            raise ExtractionError(
                f"Batch {conversation_id}@{starting_offset} failed: {last_error}"
            ) from last_error

        for position, draft in enumerate(drafts):
            draft.id = memory_id_for(owner_id, conversation_id, starting_offset, position)
            draft.owner_id = owner_id
            if not draft.source_conversation_id:
                draft.source_conversation_id = conversation_id

        return drafts

    def extract(
        self,
        owner_id: str,
        conversation_id: str,
        turns: Sequence[ConversationTurn],
    ) -> ExtractionResult:
        """
        Extract a whole conversation batch by batch.

        Failed batches are logged and skipped.

        Raises:
            ExtractionError: If at least one batch failed and no memories
                were produced at all
        """
        result = ExtractionResult()

        for offset, batch in chunk_turns(turns, self.batch_size):
            result.batches_total += 1
            try:
                result.memories.extend(
                    self.extract_batch(owner_id, conversation_id, batch, offset)
                )
            except ExtractionError as e:
                result.batches_failed += 1
                result.errors.append(str(e))
                logger.error(f"Skipping batch: {e}")

        if result.batches_failed and not result.memories:
            raise ExtractionError(
                f"No memories extracted from {conversation_id}: "
                f"{result.batches_failed}/{result.batches_total} batches failed"
            )

        return result
