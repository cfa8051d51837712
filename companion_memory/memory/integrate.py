"""
Memory integration hooks for the companion's chat loop.

Provides functions to pull memory context into outgoing prompts and a
MemoryEngine object that wires the store, extractor, cortex builder and
session intent tracker together.
"""

import logging
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Union

from companion_memory.generation.responder import ResponseEndpoint
from companion_memory.intent.tracker import SessionIntentState, SessionIntentTracker
from companion_memory.ops.extraction_worker import run_reextraction
from companion_memory.ops.jobs import JobManager
from companion_memory.persist.transcripts import ConversationTurn, TranscriptStore, TranscriptSupplier
from .cortex import FrontalCortexBuilder
from .extractor import ExtractionCapability, MemoryExtractor
from .pipeline import ExtractionPipeline, PipelineReport, ProgressCallback
from .recall import MemoryRecall
from .store import MemoryStore

if TYPE_CHECKING:
    from companion_memory.config.settings import Settings


logger = logging.getLogger(__name__)

STOP_WORDS = {
    "the", "a", "an", "is", "are", "was", "were", "to", "of", "and", "or", "but",
    "in", "on", "at", "by", "for", "with", "about", "as", "from",
    "i", "you", "me", "my", "your",
}


def extract_keywords(text: str, limit: int = 5) -> List[str]:
    """
    Pick retrieval keywords from a user message.

    Tokens are lower-cased and stripped of surrounding punctuation; stop
    words and tokens of two characters or fewer are dropped. The first
    ``limit`` survivors are returned in message order.
    """
    keywords = []
    for token in (text or "").lower().split():
        token = token.strip(string.punctuation)
        if len(token) <= 2 or token in STOP_WORDS:
            continue
        keywords.append(token)
        if len(keywords) >= limit:
            break
    return keywords


class ContextAssembler:
    """
    Builds the memory context injected ahead of each user message.

    Combines the owner's cortex profile with the memories ranked for the
    message's keywords. Any failure along the way yields "" so the chat
    turn can always proceed without memory.
    """

    def __init__(
        self,
        store: MemoryStore,
        keyword_limit: int = 5,
        memory_limit: int = 5,
        cortex_max_chars: int = 1500,
    ):
        self.store = store
        self.keyword_limit = keyword_limit
        self.memory_limit = memory_limit
        self.cortex_max_chars = cortex_max_chars

    def assemble(self, owner_id: str, message: str) -> str:
        """
        Memory context for one user turn.

        Returns:
            Cortex block and ranked memories joined by a blank line, either
            one alone, or "" when neither has anything
        """
        try:
            keywords = extract_keywords(message, self.keyword_limit)

            cortex = self.store.load_cortex(owner_id)
            cortex_context = cortex.generate_context_for_ai(self.cortex_max_chars) if cortex else ""
            memory_context = self.store.ranked_context(owner_id, keywords, limit=self.memory_limit)
        except Exception as e:
            logger.warning(f"Memory context unavailable for {owner_id}: {e}")
            return ""

        parts = [part for part in (cortex_context, memory_context) if part]
        return "\n\n".join(parts)

    def augment_message(self, owner_id: str, text: str) -> str:
        """Prepend memory context (if any) to the outgoing user message."""
        context = self.assemble(owner_id, text)
        if not context:
            return text
        return f"{context}\n\n---\n\nUser: {text}"


@dataclass
class EngineReply:
    """Reply to one user turn plus what went into it."""
    text: str
    context: str
    intent_state: Optional[SessionIntentState] = None


class MemoryEngine:
    """
    Context object holding every memory and intent component.

    Built by :func:`create_memory_engine`; components can also be passed in
    directly (tests, custom wiring).
    """

    def __init__(
        self,
        store: MemoryStore,
        extractor: MemoryExtractor,
        builder: FrontalCortexBuilder,
        assembler: ContextAssembler,
        tracker: SessionIntentTracker,
        history_window: int = 20,
        transcripts: Optional[TranscriptSupplier] = None,
        jobs_state_file: Union[str, Path] = "data/jobs/jobs.jsonl",
    ):
        self.store = store
        self.extractor = extractor
        self.builder = builder
        self.assembler = assembler
        self.tracker = tracker
        self.history_window = history_window
        self.transcripts = transcripts
        self.jobs_state_file = Path(jobs_state_file)
        self.pipeline = ExtractionPipeline(store, extractor, builder)
        self._jobs: Optional[JobManager] = None

    @property
    def jobs(self) -> JobManager:
        """Background job manager, created on first use."""
        if self._jobs is None:
            self._jobs = JobManager(self.jobs_state_file)
        return self._jobs

    def _supplier(self, supplier: Optional[TranscriptSupplier]) -> TranscriptSupplier:
        supplier = supplier or self.transcripts
        if supplier is None:
            raise ValueError("No transcript supplier configured")
        return supplier

    def reextract(
        self,
        owner_id: str,
        supplier: Optional[TranscriptSupplier] = None,
        conversation_ids: Optional[Sequence[str]] = None,
        progress: Optional[ProgressCallback] = None,
        now: Optional[datetime] = None,
    ) -> PipelineReport:
        """Rebuild an owner's memories and cortex from transcripts (default: the engine's own)."""
        return self.pipeline.run(owner_id, self._supplier(supplier), conversation_ids, progress, now)

    def submit_reextraction(
        self,
        owner_id: str,
        supplier: Optional[TranscriptSupplier] = None,
        conversation_ids: Optional[Sequence[str]] = None,
    ) -> str:
        """
        Start a re-extraction as a background job on the running event loop.

        Returns:
            Job ID (see ``engine.jobs``)
        """
        supplier = self._supplier(supplier)

        async def worker(job, manager):
            await run_reextraction(job, manager, self.pipeline, owner_id, supplier, conversation_ids)

        return self.jobs.submit(worker, job_type="reextract", payload={"owner_id": owner_id})

    def respond(
        self,
        owner_id: str,
        message: str,
        history: Sequence[ConversationTurn],
        endpoint: ResponseEndpoint,
        conversation_id: Optional[str] = None,
    ) -> EngineReply:
        """
        Answer a user message with memory context.

        Args:
            owner_id: Owner whose memories are used
            message: New user message
            history: Earlier turns of the conversation (oldest first)
            endpoint: AI endpoint producing the reply
            conversation_id: When given, the session intent tracker is updated

        Returns:
            EngineReply with the endpoint's text, the injected context and
            the session intent state (if tracked)
        """
        context = self.assembler.assemble(owner_id, message)
        recent = list(history)[-self.history_window:] if self.history_window > 0 else []

        state = None
        if conversation_id is not None:
            self.tracker.on_message(conversation_id)
            if self.tracker.should_recheck(conversation_id):
                user_turn = ConversationTurn(role="user", content=message, timestamp=datetime.now(timezone.utc))
                self.tracker.recheck(conversation_id, list(history) + [user_turn])
            state = self.tracker.state(conversation_id)

        text = endpoint.respond(message, recent, context)
        return EngineReply(text=text, context=context, intent_state=state)

    def close(self) -> None:
        self.store.close()


def create_memory_engine(
    settings: Optional["Settings"] = None,
    capability: Optional[ExtractionCapability] = None,
) -> MemoryEngine:
    """
    Factory function to create a fully wired MemoryEngine.

    Args:
        settings: Engine settings (defaults when omitted)
        capability: Extraction backend (default: rule-based)

    Returns:
        MemoryEngine instance
    """
    from companion_memory.config.settings import Settings
    from companion_memory.intent.classifier import IntentClassifier
    from .summarizer import RuleBasedExtractionCapability

    settings = settings or Settings()

    recall = MemoryRecall(max_chars=settings.context.memory_max_chars)
    store = MemoryStore(settings.storage.db_path, policy=settings.retention, recall=recall)

    extractor = MemoryExtractor(
        capability or RuleBasedExtractionCapability(),
        batch_size=settings.extraction.batch_size,
        timeout_s=settings.extraction.timeout_s,
        max_attempts=settings.extraction.max_attempts,
    )

    assembler = ContextAssembler(
        store,
        keyword_limit=settings.context.keyword_limit,
        memory_limit=settings.context.memory_limit,
        cortex_max_chars=settings.context.cortex_max_chars,
    )

    tracker = SessionIntentTracker(
        IntentClassifier(window=settings.intent.window),
        recheck_after_messages=settings.intent.recheck_after_messages,
        recheck_after_seconds=settings.intent.recheck_after_seconds,
        window=settings.intent.window,
    )

    return MemoryEngine(
        store=store,
        extractor=extractor,
        builder=FrontalCortexBuilder(),
        assembler=assembler,
        tracker=tracker,
        history_window=settings.context.history_window,
        transcripts=TranscriptStore(settings.storage.transcripts_dir),
        jobs_state_file=settings.storage.jobs_state_file,
    )
