"""Engine settings and configuration schema."""

import json
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field

from companion_memory.memory.policy import RetentionPolicy


class StorageCfg(BaseModel):
    """File and directory paths configuration."""
    db_path: str = "data/memory/memory.db"
    transcripts_dir: str = "data/conversations"
    jobs_state_file: str = "data/jobs/jobs.jsonl"


class ExtractionCfg(BaseModel):
    """Configuration for memory extraction runs."""
    batch_size: int = Field(10, gt=0)
    timeout_s: Optional[float] = 30.0
    max_attempts: int = Field(2, ge=1)


class IntentCfg(BaseModel):
    """Configuration for session intent tracking."""
    recheck_after_messages: int = 5
    recheck_after_seconds: float = 180.0
    window: int = 5


class ContextCfg(BaseModel):
    """Configuration for prompt context assembly."""
    keyword_limit: int = 5
    memory_limit: int = 5
    memory_max_chars: int = 1200
    cortex_max_chars: int = 1500
    history_window: int = 20


class Settings(BaseModel):
    """Main engine settings."""
    storage: StorageCfg = StorageCfg()
    extraction: ExtractionCfg = ExtractionCfg()
    intent: IntentCfg = IntentCfg()
    context: ContextCfg = ContextCfg()
    retention: RetentionPolicy = RetentionPolicy()


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from a JSON file, falling back to defaults.

    Args:
        path: Optional JSON file; missing sections keep their defaults

    Raises:
        pydantic.ValidationError: If the file holds invalid values
    """
    if path is None:
        return Settings()

    path = Path(path)
    if not path.exists():
        return Settings()

    with open(path, "r", encoding="utf-8") as f:
        return Settings.model_validate(json.load(f))
