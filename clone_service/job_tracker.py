"""
Job Tracker: in-process registry of asynchronous clone jobs.

Every job lives in memory for the lifetime of the process (restart loses
the history).  The registry is shared between request handlers, which only
read, and one clone worker per job, which writes through a ``JobHandle``.
A single lock guards the registry and every field-group update, and readers
always receive a snapshot copy.

Status lifecycle::

    starting -> connecting -> analyzing -> cloning -> completed | failed

A status can only move forward, and ``completed`` / ``failed`` are final.
"""

import copy
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from logger import logger

# ─── Statuses ─────────────────────────────────────────────────────────
STATUS_STARTING = "starting"
STATUS_CONNECTING = "connecting"
STATUS_ANALYZING = "analyzing"
STATUS_CLONING = "cloning"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

_STATUS_ORDER = {
    STATUS_STARTING: 0,
    STATUS_CONNECTING: 1,
    STATUS_ANALYZING: 2,
    STATUS_CLONING: 3,
    STATUS_COMPLETED: 4,
    STATUS_FAILED: 4,
}
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)


class InvalidTransitionError(ValueError):
    """Raised when a job would move backwards or leave a terminal status."""


def compute_progress(processed: int, total: int) -> int:
    """Percentage rounded half-up, capped at 100; an empty source counts as done.

    The source may grow between counting and copying, so processed can
    exceed total.
    """
    if total <= 0:
        return 100
    return min(100, int(processed * 100 / total + 0.5))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CloneJob:
    id: str
    status: str = STATUS_STARTING
    progress: int = 0
    details: str = "Initializing clone operation..."
    collections: List[str] = field(default_factory=list)
    current_collection: Optional[str] = None
    total_collections: int = 0
    processed_collections: int = 0
    total_documents: int = 0
    processed_documents: int = 0
    errors: List[str] = field(default_factory=list)
    start_time: datetime = field(default_factory=_utcnow)
    end_time: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Serialise with the camelCase keys and ISO timestamps the UI expects."""
        return {
            "id": self.id,
            "status": self.status,
            "progress": self.progress,
            "details": self.details,
            "collections": list(self.collections),
            "currentCollection": self.current_collection,
            "totalCollections": self.total_collections,
            "processedCollections": self.processed_collections,
            "totalDocuments": self.total_documents,
            "processedDocuments": self.processed_documents,
            "errors": list(self.errors),
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
        }


class JobHandle:
    """Write capability for exactly one job, handed to the clone worker.

    Once the job has been deleted from the tracker every write is silently
    dropped, so a running worker never resurrects or corrupts a removed entry.
    """

    def __init__(self, tracker: "JobTracker", job_id: str):
        self._tracker = tracker
        self.job_id = job_id

    def _job(self) -> Optional[CloneJob]:
        job = self._tracker._jobs.get(self.job_id)
        if job is None:
            logger.debug("[JOBS] Job %s was deleted — dropping update", self.job_id)
        return job

    def snapshot(self) -> Optional[CloneJob]:
        return self._tracker.get(self.job_id)

    def advance(self, status: str, details: str) -> None:
        """Move the job to a later, non-terminal status."""
        if status in TERMINAL_STATUSES:
            raise InvalidTransitionError("Use finish() for terminal statuses")
        with self._tracker._lock:
            job = self._job()
            if job is None:
                return
            _check_transition(job, status)
            job.status = status
            job.details = details

    def update(self, **fields: Any) -> None:
        """Overwrite plain fields (details, current_collection, totals …)."""
        with self._tracker._lock:
            job = self._job()
            if job is None:
                return
            if job.is_terminal:
                raise InvalidTransitionError(f"Job {job.id} is already {job.status}")
            for name, value in fields.items():
                if name in ("id", "status", "errors", "start_time", "end_time"):
                    raise AttributeError(f"'{name}' cannot be set via update()")
                if not hasattr(job, name):
                    raise AttributeError(f"CloneJob has no field '{name}'")
                setattr(job, name, list(value) if isinstance(value, list) else value)

    def add_documents(self, count: int) -> None:
        """Record an inserted batch and recompute progress."""
        with self._tracker._lock:
            job = self._job()
            if job is None:
                return
            job.processed_documents += count
            job.progress = compute_progress(job.processed_documents, job.total_documents)

    def collection_done(self) -> None:
        with self._tracker._lock:
            job = self._job()
            if job is None:
                return
            job.processed_collections += 1

    def add_error(self, message: str) -> None:
        """Append a non-fatal error; the status is left untouched."""
        with self._tracker._lock:
            job = self._job()
            if job is None:
                return
            job.errors.append(message)

    def finish(self, status: str, details: str, error: Optional[str] = None) -> None:
        """Terminal transition: completed or failed.  Sets ``end_time``."""
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"'{status}' is not a terminal status")
        with self._tracker._lock:
            job = self._job()
            if job is None:
                return
            _check_transition(job, status)
            job.status = status
            job.details = details
            job.current_collection = None
            if status == STATUS_COMPLETED:
                job.progress = 100
            if error is not None:
                job.errors.append(error)
            job.end_time = _utcnow()


def _check_transition(job: CloneJob, status: str) -> None:
    if status not in _STATUS_ORDER:
        raise InvalidTransitionError(f"Unknown status '{status}'")
    if job.is_terminal:
        raise InvalidTransitionError(f"Job {job.id} is already {job.status}")
    if _STATUS_ORDER[status] <= _STATUS_ORDER[job.status]:
        raise InvalidTransitionError(
            f"Job {job.id} cannot move from {job.status} to {status}"
        )


class JobTracker:
    """Thread-safe registry of clone jobs keyed by identifier."""

    def __init__(self):
        self._lock = threading.RLock()
        self._jobs: Dict[str, CloneJob] = {}
        self._last_id = 0

    def _next_id(self) -> str:
        # epoch milliseconds, bumped when two jobs land in the same tick
        candidate = int(time.time() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    def create(self) -> JobHandle:
        with self._lock:
            job = CloneJob(id=self._next_id())
            self._jobs[job.id] = job
        logger.info("[JOBS] Created job %s", job.id)
        return JobHandle(self, job.id)

    def get(self, job_id: str) -> Optional[CloneJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def list(self) -> List[CloneJob]:
        with self._lock:
            return [copy.deepcopy(job) for job in self._jobs.values()]

    def delete(self, job_id: str) -> bool:
        """Remove a job.  A running worker is not cancelled."""
        with self._lock:
            existed = self._jobs.pop(job_id, None) is not None
        if existed:
            logger.info("[JOBS] Deleted job %s", job_id)
        return existed

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
