"""
Async job management and telemetry for long-running operations.

Provides background re-extraction with progress tracking and persistence.
"""

from .jobs import JobStatus, JobManager
from .extraction_worker import run_reextraction
from .telemetry import log_step, new_run_id, timed_step

__all__ = ["JobStatus", "JobManager", "run_reextraction", "log_step", "new_run_id", "timed_step"]
