from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from ..errors import InvalidRequest
from ..utils import utc_iso as _utc_iso
from .notify import NotificationHub

logger = logging.getLogger(__name__)

# Only a verified completion may report 100
MAX_SYNTHETIC_PERCENT = 99

# Client-chosen ids are echoed back with their JSON type (number or string)
JobId = Union[str, int]


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED}


class ProgressSource(Protocol):
    def tick(self) -> int:
        ...


class SimulatedProgress:
    """Fixed-step progress that stalls at ``cap`` until the job really ends."""

    def __init__(self, step: int = 5, cap: int = 95) -> None:
        self.step = int(step)
        self.cap = int(cap)
        self._percent = 0

    def tick(self) -> int:
        self._percent = min(self.cap, self._percent + self.step)
        return self._percent


class ReportedProgress:
    """Progress fed from the downloader's own hooks, capped like the simulation."""

    def __init__(self, cap: int = 95) -> None:
        self.cap = int(cap)
        self._percent = 0
        self._lock = threading.Lock()

    def report(self, fraction: float) -> None:
        percent = min(self.cap, int(max(0.0, float(fraction)) * 100))
        with self._lock:
            if percent > self._percent:
                self._percent = percent

    def tick(self) -> int:
        with self._lock:
            return self._percent


@dataclass
class Job:
    id: str
    url: str
    client_id: Optional[JobId] = None
    created_at: str = field(default_factory=_utc_iso)
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    filename: Optional[str] = None
    error: Optional[str] = None

    # Runtime state, owned by JobTracker
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)
    timer: Optional[threading.Thread] = field(default=None, repr=False, compare=False)
    source: Optional[ProgressSource] = field(default=None, repr=False, compare=False)

    @property
    def wire_id(self) -> JobId:
        return self.id if self.client_id is None else self.client_id

    def to_public(self) -> Dict[str, Any]:
        return {
            "id": self.wire_id,
            "url": self.url,
            "created_at": self.created_at,
            "status": self.status.value,
            "progress": self.progress,
            "filename": self.filename,
            "error": self.error,
        }


class JobTracker:
    """Lifecycle of in-flight downloads: pending -> running -> completed|failed.

    While a job runs, a timer thread ticks its progress source and
    broadcasts every increase. Tick broadcasts and terminal broadcasts hold
    the same per-job lock, so a job's percents never go down and its
    completion event is always the last one sent for it.
    """

    def __init__(
        self,
        hub: NotificationHub,
        *,
        interval_seconds: float = 0.5,
        progress_factory: Optional[Callable[[], ProgressSource]] = None,
    ) -> None:
        self.hub = hub
        self.interval_seconds = float(interval_seconds)
        self._progress_factory = progress_factory or SimulatedProgress
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def register(self, job_id: JobId, url: str) -> Job:
        job = Job(id=str(job_id), url=url, client_id=job_id)
        with self._lock:
            if job.id in self._jobs:
                raise InvalidRequest("job_id_in_use")
            self._jobs[job.id] = job
        logger.debug("Registered job %s for %s", job.id, url)
        return job

    def get(self, job_id: JobId) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(str(job_id))

    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            jobs = list(self._jobs.values())
        out = []
        for job in jobs:
            with job.lock:
                out.append(job.to_public())
        return out

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def start(self, job_id: JobId, source: Optional[ProgressSource] = None) -> Job:
        job = self.get(job_id)
        if job is None:
            raise KeyError(f"job_not_found: {job_id}")

        with job.lock:
            if job.status != JobStatus.PENDING:
                raise RuntimeError(f"job {job.id} is {job.status.value}, not pending")
            job.status = JobStatus.RUNNING
            job.source = source or self._progress_factory()
            job.timer = threading.Thread(target=self._run_timer, args=(job,), name=f"progress-{job.id}", daemon=True)
            job.timer.start()
        logger.info("Job %s running", job.id)
        return job

    def _run_timer(self, job: Job) -> None:
        # Event.wait returns True once cancelled
        while not job.cancel_event.wait(self.interval_seconds):
            with job.lock:
                if job.cancel_event.is_set() or job.status != JobStatus.RUNNING:
                    return
                percent = min(int(job.source.tick()), MAX_SYNTHETIC_PERCENT)
                if percent <= job.progress:
                    continue
                job.progress = percent
                self.hub.broadcast_progress(job.wire_id, percent)

    def complete(self, job_id: JobId, filename: Optional[str] = None) -> Optional[Job]:
        """Finish a job successfully: 100%, then the completion event."""
        job = self.get(job_id)
        if job is None:
            return None

        with job.lock:
            if job.status in TERMINAL_STATUSES:
                return None
            job.cancel_event.set()
            job.status = JobStatus.COMPLETED
            job.progress = 100
            if filename:
                job.filename = filename
            self.hub.broadcast_progress(job.wire_id, 100)
            self.hub.broadcast_completion(job.wire_id, True)

        self._drop(job)
        logger.info("Job %s completed", job.id)
        return job

    def fail(self, job_id: JobId, message: str) -> Optional[Job]:
        """Finish a job with an error; progress is left where it was."""
        job = self.get(job_id)
        if job is None:
            return None

        with job.lock:
            if job.status in TERMINAL_STATUSES:
                return None
            job.cancel_event.set()
            job.status = JobStatus.FAILED
            job.error = message
            self.hub.broadcast_completion(job.wire_id, False, message)

        self._drop(job)
        logger.info("Job %s failed: %s", job.id, message)
        return job

    def _drop(self, job: Job) -> None:
        with self._lock:
            if self._jobs.get(job.id) is job:
                del self._jobs[job.id]
        self._join_timer(job)

    def _join_timer(self, job: Job) -> None:
        timer = job.timer
        if timer is not None and timer is not threading.current_thread():
            timer.join(timeout=self.interval_seconds + 1.0)

    def shutdown(self) -> None:
        """Stop every timer; jobs are forgotten without a completion event."""
        with self._lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()
        for job in jobs:
            job.cancel_event.set()
        for job in jobs:
            self._join_timer(job)
        if jobs:
            logger.info("Stopped %d in-flight job timers", len(jobs))
