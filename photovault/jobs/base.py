"""
Cancellable, polled batch jobs.

A Job runs its items on a background thread and publishes progress into a shared
JobProgress; callers poll snapshot() instead of subscribing. Cancellation is
cooperative and only observed between items.
"""
from __future__ import annotations

import errno
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from photovault.core.errors import Conflict, NotFound

logger = logging.getLogger(__name__)

# Errors that make every remaining item pointless
FATAL_ERRNOS = frozenset({errno.ENOSPC, errno.EDQUOT, errno.EROFS})


class JobState(str, Enum):
    idle = "idle"
    running = "running"
    completed = "completed"
    cancelled = "cancelled"
    failed = "failed"


@dataclass(frozen=True)
class JobError:
    path: str
    reason: str


@dataclass
class JobProgress:
    total: int = 0
    completed: int = 0
    current_item: str = ""
    errors: list[JobError] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class JobStatus:
    id: str
    kind: str
    state: JobState
    progress: JobProgress
    message: Optional[str] = None


class FatalJobError(Exception):
    """Stops the loop; work already done is kept."""


def is_fatal(exc: BaseException) -> bool:
    cause = exc
    while cause is not None:
        if isinstance(cause, OSError) and cause.errno in FATAL_ERRNOS:
            return True
        cause = cause.__cause__
    return False


class Job(ABC):
    kind = "job"

    def __init__(self) -> None:
        self.id = uuid.uuid4().hex
        self.state = JobState.idle
        self.progress = JobProgress()
        self.message: Optional[str] = None
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._claimed = False

    # ---------- Lifecycle ----------
    def start(self) -> "Job":
        if self._thread is not None:
            raise Conflict(f"{self.kind} job {self.id} already started")
        self._claimed = True
        self._thread = threading.Thread(target=self.run, name=f"{self.kind}-{self.id[:8]}", daemon=True)
        self._thread.start()
        return self

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def claim(self) -> None:
        """ Mark the job as about to run, so it counts as active before its first item. """
        with self._lock:
            self._claimed = True

    @property
    def active(self) -> bool:
        return self.state is JobState.running or (self.state is JobState.idle and self._claimed)

    def run(self) -> JobState:
        """ Execute synchronously on the calling thread. """
        with self._lock:
            self.state = JobState.running
        logger.info("%s job %s started", self.kind, self.id)
        try:
            self._execute()
        except FatalJobError as e:
            self._finish(JobState.failed, str(e))
        except Exception as e:
            logger.exception("%s job %s crashed", self.kind, self.id)
            self._finish(JobState.failed, str(e))
        else:
            self._finish(JobState.cancelled if self.cancelled else JobState.completed)
        return self.state

    def _finish(self, state: JobState, message: Optional[str] = None) -> None:
        with self._lock:
            self.state = state
            self.message = message
            self.progress.current_item = ""
        logger.info("%s job %s %s: %d/%d done, %d errors%s", self.kind, self.id, state.value,
                    self.progress.completed, self.progress.total, len(self.progress.errors),
                    f" ({message})" if message else "")

    # ---------- Progress helpers for subclasses ----------
    def _set_total(self, total: int) -> None:
        with self._lock:
            self.progress.total = total

    def _begin_item(self, label: str) -> None:
        with self._lock:
            self.progress.current_item = label

    def _item_done(self, stat: Optional[str] = None) -> None:
        with self._lock:
            self.progress.completed += 1
            if stat:
                self.progress.stats[stat] = self.progress.stats.get(stat, 0) + 1

    def _item_failed(self, path: str, exc: BaseException) -> None:
        """ Record a per-item failure, or halt the loop when the error is fatal. """
        reason = str(exc) or exc.__class__.__name__
        with self._lock:
            self.progress.errors.append(JobError(path, reason))
            self.progress.completed += 1
        logger.warning("%s job: %s failed: %s", self.kind, path, reason)
        if is_fatal(exc):
            raise FatalJobError(reason) from exc

    def snapshot(self) -> JobStatus:
        with self._lock:
            progress = replace(self.progress, errors=list(self.progress.errors), stats=dict(self.progress.stats))
            return JobStatus(self.id, self.kind, self.state, progress, self.message)

    @abstractmethod
    def _execute(self) -> None: ...


class JobManager:
    """Job handles by id; at most one active job of each kind."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def submit(self, job: Job, background: bool = True) -> Job:
        with self._lock:
            for other in self._jobs.values():
                if other.kind == job.kind and other.active:
                    raise Conflict(f"A {job.kind} job is already running ({other.id})")
            self._jobs[job.id] = job
            job.claim()
            if background:
                job.start()
        if not background:
            job.run()
        return job

    def get(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFound(f"Job {job_id} not found")
        return job

    def status(self, job_id: str) -> JobStatus:
        return self.get(job_id).snapshot()

    def cancel(self, job_id: str) -> JobStatus:
        job = self.get(job_id)
        job.cancel()
        return job.snapshot()

    def jobs(self, kind: Optional[str] = None) -> list[Job]:
        with self._lock:
            return [j for j in self._jobs.values() if kind is None or j.kind == kind]

    def latest(self, kind: str) -> Optional[Job]:
        found = self.jobs(kind)
        return found[-1] if found else None
