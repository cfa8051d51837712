"""
Memory subsystem for long-term conversation recall.

Provides:
- Typed memory extraction from conversation transcripts
- Memory storage with retention and eviction
- Ranked recall and the Frontal Cortex profile
- Context assembly for outgoing AI prompts
"""

from .schemas import (
    EmotionalContext,
    EmotionType,
    Memory,
    MemoryAnalytics,
    MemoryQuery,
    MemorySearchResult,
    MemoryType,
)
from .policy import RetentionPolicy
from .recall import MemoryRecall
from .store import MemoryStore, PersistenceError
from .cortex import FrontalCortex, FrontalCortexBuilder
from .extractor import (
    ExtractionCapability,
    ExtractionContext,
    ExtractionError,
    ExtractionResult,
    MemoryExtractor,
)
from .summarizer import GeneratorExtractionCapability, RuleBasedExtractionCapability
from .pipeline import ExtractionPipeline, PipelineReport
from .integrate import (
    ContextAssembler,
    EngineReply,
    MemoryEngine,
    create_memory_engine,
    extract_keywords,
)

__all__ = [
    "EmotionalContext",
    "EmotionType",
    "Memory",
    "MemoryAnalytics",
    "MemoryQuery",
    "MemorySearchResult",
    "MemoryType",
    "RetentionPolicy",
    "MemoryRecall",
    "MemoryStore",
    "PersistenceError",
    "FrontalCortex",
    "FrontalCortexBuilder",
    "ExtractionCapability",
    "ExtractionContext",
    "ExtractionError",
    "ExtractionResult",
    "MemoryExtractor",
    "GeneratorExtractionCapability",
    "RuleBasedExtractionCapability",
    "ExtractionPipeline",
    "PipelineReport",
    "ContextAssembler",
    "EngineReply",
    "MemoryEngine",
    "create_memory_engine",
    "extract_keywords",
]
