"""
Fill job state.

A FillJob is created by the registry and mutated only by its own producer
and workers (counters, errors) and by the registry (status). Nothing here
is persisted; jobs live as long as the process.
"""

import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

# Cap on recorded per-item errors, to bound memory on large backlogs
MAX_ERRORS = 100


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


@dataclass(frozen=True)
class JobError:
    word: str
    error: str


class AtomicCounter:
    """Monotonic integer counter safe to bump from many threads."""

    def __init__(self, value: int = 0):
        self._value = value
        self._lock = threading.Lock()

    def increment(self, amount: int = 1) -> int:
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass(frozen=True)
class JobSnapshot:
    """Point-in-time, immutable view of a job for callers."""

    job_id: str
    status: JobStatus
    language: str
    workers: int
    delay_ms: int
    total: int
    completed: int
    failed: int
    remaining: int
    errors: List[JobError]
    started_at: datetime
    finished_at: Optional[datetime] = None
    producer_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly dict, shaped like the admin progress response."""
        data = asdict(self)
        data["status"] = self.status.value
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


@dataclass
class FillJob:
    language: str
    language_key: str
    workers: int
    delay_ms: int
    total: int
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.RUNNING
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    producer_error: Optional[str] = None
    completed: AtomicCounter = field(default_factory=AtomicCounter)
    failed: AtomicCounter = field(default_factory=AtomicCounter)
    errors: List[JobError] = field(default_factory=list)
    _errors_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def add_error(self, word: str, error: str) -> bool:
        """
        Record a per-item failure message.

        Returns:
            False once MAX_ERRORS entries are stored and the error is dropped
        """
        with self._errors_lock:
            if len(self.errors) >= MAX_ERRORS:
                return False
            self.errors.append(JobError(word=word, error=error))
            return True

    def snapshot(self) -> JobSnapshot:
        completed = self.completed.value
        failed = self.failed.value
        with self._errors_lock:
            errors = list(self.errors)
        return JobSnapshot(
            job_id=self.job_id,
            status=self.status,
            language=self.language,
            workers=self.workers,
            delay_ms=self.delay_ms,
            total=self.total,
            completed=completed,
            failed=failed,
            remaining=max(self.total - completed - failed, 0),
            errors=errors,
            started_at=self.started_at,
            finished_at=self.finished_at,
            producer_error=self.producer_error,
        )
