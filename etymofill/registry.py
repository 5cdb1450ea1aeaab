"""
Registry of fill jobs started in this process.

Enforces at most one running job per language, starts jobs in the
background and serves status queries. Jobs are kept in memory only.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional, Set

from .client import AnalysisClient
from .env import Settings
from .jobs import FillJob, JobSnapshot, JobStatus
from .languages import language_key
from .logger import get_logger
from .pipeline import FillRunner
from .storage import WordStore

logger = get_logger()


class ConflictError(Exception):
    """A fill job is already running or starting for the language."""

    def __init__(self, language_key: str, job_id: Optional[str] = None):
        if job_id is None:
            message = f"A fill job is already starting for this language ({language_key})"
        else:
            message = f"A fill job is already running for this language ({language_key}): {job_id}"
        super().__init__(message)
        self.language_key = language_key
        self.job_id = job_id


class JobNotFoundError(Exception):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class FillJobRegistry:
    """
    Starts, tracks and stops fill jobs.

    Example:
        registry = FillJobRegistry(store, client, settings)
        job_id = registry.start("Korean", workers=5, delay_ms=2000)
        snapshot = registry.status(job_id)
    """

    def __init__(
        self,
        store: WordStore,
        client: AnalysisClient,
        settings: Optional[Settings] = None,
        runner: Optional[FillRunner] = None,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.runner = runner or FillRunner(
            store,
            client,
            max_retries=self.settings.max_retries,
            rate_limit_backoff=self.settings.rate_limit_backoff,
            poll_interval=self.settings.poll_interval,
            idle_interval=self.settings.idle_interval,
        )
        self._lock = threading.Lock()
        self._jobs: Dict[str, FillJob] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._threads: Dict[str, threading.Thread] = {}
        # Language keys whose start() is counting outside the lock
        self._starting: Set[str] = set()

    def start(
        self,
        language: Optional[str] = None,
        workers: Optional[int] = None,
        delay_ms: Optional[int] = None,
    ) -> Optional[str]:
        """
        Start a background fill job for a language.

        Args:
            language: Language display name (default from settings)
            workers: Parallel workers (default 5, clamped to max_workers)
            delay_ms: Pause per worker between requests (default 3000)

        Returns:
            The new job id, or None when nothing is left to fill

        Raises:
            ConflictError: If a job for the language is already running or starting
            DatastoreError: If the unfilled words cannot be counted
        """
        language = language or self.settings.default_language
        key = language_key(language)
        workers = self.settings.resolve_workers(workers)
        delay_ms = self.settings.resolve_delay_ms(delay_ms)

        # Reserve the key so a concurrent start for the same language
        # conflicts while the count runs outside the lock.
        with self._lock:
            for job in self._jobs.values():
                if job.status is JobStatus.RUNNING and job.language_key == key:
                    raise ConflictError(key, job.job_id)
            if key in self._starting:
                raise ConflictError(key)
            self._starting.add(key)

        try:
            total = self.store.count_unfilled(key)
        except Exception:
            with self._lock:
                self._starting.discard(key)
            raise

        with self._lock:
            self._starting.discard(key)
            if total == 0:
                logger.info("No unfilled words found for this language", language=language)
                return None

            job = FillJob(
                language=language,
                language_key=key,
                workers=workers,
                delay_ms=delay_ms,
                total=total,
            )
            cancel = threading.Event()
            thread = threading.Thread(
                target=self._supervise,
                args=(job, cancel),
                name=f"fill-{job.job_id[:8]}",
                daemon=True,
            )
            self._jobs[job.job_id] = job
            self._cancel_events[job.job_id] = cancel
            self._threads[job.job_id] = thread
            thread.start()

        return job.job_id

    def _supervise(self, job: FillJob, cancel: threading.Event) -> None:
        try:
            self.runner.run(job, cancel)
        except Exception as e:
            # Threads that did start must not outlive a failed run
            cancel.set()
            job.producer_error = f"{type(e).__name__}: {e}"
            logger.error(f"[FillJob {job.job_id}] Runner failed", error=job.producer_error)
        finally:
            with self._lock:
                job.finished_at = datetime.now()
                if job.status is JobStatus.RUNNING:
                    job.status = JobStatus.FAILED if job.producer_error else JobStatus.COMPLETED
                self._cancel_events.pop(job.job_id, None)
            logger.info(f"[FillJob {job.job_id}] Status: {job.status.value}")

    def status(self, job_id: str) -> JobSnapshot:
        """
        Raises:
            JobNotFoundError: If no job with this id was started
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.snapshot()

    def stop_all(self) -> int:
        """
        Signal every running job to stop.

        Workers finish the call they are in, then exit. Statuses switch to
        STOPPED immediately.

        Returns:
            Number of jobs signalled
        """
        stopped = 0
        with self._lock:
            for job_id, job in self._jobs.items():
                if job.status is not JobStatus.RUNNING:
                    continue
                cancel = self._cancel_events.pop(job_id, None)
                if cancel is not None:
                    cancel.set()
                job.status = JobStatus.STOPPED
                stopped += 1
        if stopped:
            logger.info("Stop signal sent", stopped_count=stopped)
        return stopped

    def list(self) -> List[JobSnapshot]:
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda job: job.started_at)
            return [job.snapshot() for job in jobs]

    def wait(self, job_id: str, timeout: Optional[float] = None) -> JobSnapshot:
        """Block until the job's threads exit (or timeout) and return its status."""
        with self._lock:
            thread = self._threads.get(job_id)
        if thread is None:
            raise JobNotFoundError(job_id)
        thread.join(timeout)
        return self.status(job_id)

    def shutdown(self, timeout: Optional[float] = None) -> int:
        """Stop all running jobs and wait for their threads to exit."""
        stopped = self.stop_all()
        with self._lock:
            threads = list(self._threads.values())
        for thread in threads:
            thread.join(timeout)
        return stopped
