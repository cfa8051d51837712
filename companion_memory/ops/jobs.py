"""
Background job runner for memory re-extraction.

Jobs run as asyncio tasks in the host's event loop. Every state change is
appended to a JSONL journal; on startup the journal is replayed (last line
per job id wins) so finished runs stay visible across restarts.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, asdict, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Awaitable, Callable, Dict, Literal, Optional


logger = logging.getLogger(__name__)

JobState = Literal["queued", "running", "succeeded", "failed"]
Worker = Callable[["JobStatus", "JobManager"], Awaitable[None]]

TERMINAL_STATES = ("succeeded", "failed")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class JobStatus:
    """Status of a background job."""

    id: str
    state: JobState
    progress: float                 # 0.0 to 1.0
    message: str
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    payload: dict = field(default_factory=dict)  # owner_id, run_id, counts, error

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "JobStatus":
        """Create from dict."""
        return cls(**data)


class JobManager:
    """
    Runs workers as asyncio tasks and journals their status.

    A job that was still queued or running in the journal when the manager
    starts lost its work with the previous process; it is reported as failed.
    """

    def __init__(self, state_file: Path):
        """
        Args:
            state_file: JSONL journal of job states
        """
        self.state_file = Path(state_file)
        self.state_file.parent.mkdir(parents=True, exist_ok=True)

        self.jobs: Dict[str, JobStatus] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

        self._replay()

    def _replay(self) -> None:
        if not self.state_file.exists():
            return

        with open(self.state_file, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    job = JobStatus.from_dict(json.loads(line))
                except (json.JSONDecodeError, TypeError) as e:
                    logger.warning(f"Skipping bad job journal line {line_no}: {e}")
                    continue
                self.jobs[job.id] = job

        for job in [j for j in self.jobs.values() if not j.done]:
            self._transition(job, "failed", "Interrupted by restart", finished_at=_now_iso())

    def _journal(self, job: JobStatus) -> None:
        with open(self.state_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(job.to_dict()) + "\n")

    def _transition(self, job: JobStatus, state: JobState, message: str, **changes) -> None:
        job.state = state
        job.message = message
        for name, value in changes.items():
            setattr(job, name, value)
        self._journal(job)

    def submit(self, worker_fn: Worker, job_type: str = "generic", payload: Optional[dict] = None) -> str:
        """
        Schedule a worker on the running event loop.

        Args:
            worker_fn: Coroutine function called as ``worker_fn(job, manager)``
            job_type: Recorded as ``payload["type"]``
            payload: Initial payload data

        Returns:
            Job ID
        """
        job = JobStatus(
            id=str(uuid.uuid4()),
            state="queued",
            progress=0.0,
            message=f"Queued {job_type}",
            payload={"type": job_type, **(payload or {})},
        )
        self.jobs[job.id] = job
        self._journal(job)

        self._tasks[job.id] = asyncio.create_task(self._execute(job, worker_fn))
        return job.id

    async def _execute(self, job: JobStatus, worker_fn: Worker) -> None:
        self._transition(job, "running", "Starting...", started_at=_now_iso())

        try:
            await worker_fn(job, self)
        except Exception as e:
            logger.error(f"Job {job.id} failed: {e}")
            job.payload["error"] = str(e)
            self._transition(job, "failed", f"Failed: {e}", finished_at=_now_iso())
            return

        self._transition(
            job,
            "succeeded",
            job.payload.get("summary", "Completed successfully"),
            progress=1.0,
            finished_at=_now_iso(),
        )

    async def wait(self, job_id: str) -> Optional[JobStatus]:
        """Wait for a job submitted by this manager to finish."""
        task = self._tasks.get(job_id)
        if task is not None:
            await task
        return self.jobs.get(job_id)

    def update_progress(self, job_id: str, progress: float, message: str) -> None:
        """
        Record worker progress.

        Args:
            job_id: Job ID
            progress: Fraction done, clamped into [0, 1]
            message: Status message
        """
        job = self.jobs.get(job_id)
        if job is None:
            return
        self._transition(job, job.state, message, progress=min(max(progress, 0.0), 1.0))

    def get(self, job_id: str) -> Optional[JobStatus]:
        return self.jobs.get(job_id)

    def list(self, state: Optional[str] = None) -> list[JobStatus]:
        """Jobs (optionally only those in ``state``), most recently started first."""
        jobs = [j for j in self.jobs.values() if not state or j.state == state]
        return sorted(jobs, key=lambda j: j.started_at or "", reverse=True)

    def cleanup_old_jobs(self, max_age_hours: int = 24) -> int:
        """
        Forget finished jobs older than ``max_age_hours``.

        The journal is append-only and is not rewritten.

        Returns:
            Number of jobs removed
        """
        cutoff = datetime.now(timezone.utc) - timedelta(hours=max_age_hours)
        expired = [
            job_id for job_id, job in self.jobs.items()
            if job.done and job.finished_at and datetime.fromisoformat(job.finished_at) < cutoff
        ]
        for job_id in expired:
            del self.jobs[job_id]
            self._tasks.pop(job_id, None)
        return len(expired)
