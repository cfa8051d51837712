"""
Structured telemetry for extraction runs.
"""

import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import structlog


structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)
logger = structlog.get_logger("companion_memory.telemetry")


def new_run_id() -> str:
    """Generate a new unique run ID."""
    return str(uuid.uuid4())


def log_step(
    run_id: str,
    step_name: str,
    ms: float,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a pipeline step execution with timing.

    Args:
        run_id: Unique run identifier
        step_name: Name of the step (e.g., "load_turns", "extract", "rebuild_cortex")
        ms: Duration in milliseconds
        extra: Optional extra fields to log
    """
    logger.info(
        "step_executed",
        run_id=run_id,
        step=step_name,
        duration_ms=round(ms, 3),
        **(extra or {}),
    )


@contextmanager
def timed_step(run_id: str, step_name: str, extra: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
    """
    Time a block and log it as a step.

    The yielded dict can be filled with extra fields inside the block.
    """
    fields = dict(extra or {})
    start = time.perf_counter()
    try:
        yield fields
    finally:
        log_step(run_id, step_name, (time.perf_counter() - start) * 1000, fields)
