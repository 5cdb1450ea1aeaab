"""
Producer / worker pool that fills missing etymologies for one job.

One producer thread polls the store for unfilled words and feeds a bounded
queue; ``job.workers`` worker threads drain it. Each worker re-checks the
word, calls the analysis service with rate-limit retries, persists the
result and paces itself with ``job.delay_ms`` between words, so the
aggregate request rate stays near ``workers / delay``.

Every blocking point waits on the job's cancel event, so a stop takes
effect within one short wait rather than a full backoff period.
"""

import queue
import threading
from typing import Optional

from .client import AnalysisClient
from .jobs import FillJob
from .logger import get_logger
from .retry import RetryCancelled, retry_rate_limited
from .storage import DatastoreError, Item, WordStore
from .tracking import InFlightTracker

logger = get_logger()

# End-of-work marker, one per worker
_DONE = object()

PROGRESS_LOG_EVERY = 100


class _Outcome:
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ABANDONED = "abandoned"


class FillRunner:
    """Runs the producer and worker threads of a fill job to completion."""

    def __init__(
        self,
        store: WordStore,
        client: AnalysisClient,
        max_retries: int = 3,
        rate_limit_backoff: float = 60.0,
        poll_interval: float = 0.1,
        idle_interval: float = 0.5,
        queue_timeout: float = 0.1,
    ):
        """
        Args:
            store: Word datastore
            client: Analysis service client
            max_retries: Retries per word after a rate-limited attempt
            rate_limit_backoff: Seconds to wait before retrying a rate-limited word
            poll_interval: Pause between polls that dispatched new words
            idle_interval: Pause between polls when every fetched word was in flight
            queue_timeout: Slice used for queue waits so cancellation is noticed
        """
        self.store = store
        self.client = client
        self.max_retries = max_retries
        self.rate_limit_backoff = rate_limit_backoff
        self.poll_interval = poll_interval
        self.idle_interval = idle_interval
        self.queue_timeout = queue_timeout

    def run(
        self,
        job: FillJob,
        cancel: threading.Event,
        tracker: Optional[InFlightTracker] = None,
    ) -> None:
        """Process the job's backlog; returns once every thread has exited."""
        tracker = tracker if tracker is not None else InFlightTracker()
        work_queue: queue.Queue = queue.Queue(maxsize=job.workers * 2)
        prefix = f"fill-{job.job_id[:8]}"

        logger.info(
            f"[FillJob {job.job_id}] Started with {job.workers} workers",
            language=job.language,
            total=job.total,
            delay_ms=job.delay_ms,
        )

        workers = [
            threading.Thread(
                target=self._work,
                args=(job, work_queue, tracker, cancel, worker_id),
                name=f"{prefix}-worker-{worker_id}",
                daemon=True,
            )
            for worker_id in range(job.workers)
        ]
        producer = threading.Thread(
            target=self._produce,
            args=(job, work_queue, tracker, cancel),
            name=f"{prefix}-producer",
            daemon=True,
        )

        for thread in workers:
            thread.start()
        producer.start()

        producer.join()
        for thread in workers:
            thread.join()

        logger.info(
            f"[FillJob {job.job_id}] Finished - completed: {job.completed.value}, failed: {job.failed.value}",
            cancelled=cancel.is_set(),
            producer_error=job.producer_error,
        )

    # Producer

    def _produce(self, job: FillJob, work_queue: queue.Queue, tracker: InFlightTracker, cancel: threading.Event) -> None:
        batch_size = job.workers * 2
        after_id: Optional[int] = None
        try:
            while not cancel.is_set():
                try:
                    items = self.store.fetch_unfilled(job.language_key, batch_size, after_id=after_id)
                except DatastoreError as e:
                    job.producer_error = str(e)
                    logger.error(f"[FillJob {job.job_id}] Database error, producer stopping", error=str(e))
                    return

                if not items:
                    logger.debug(f"[FillJob {job.job_id}] Backlog exhausted")
                    return

                # Words that failed earlier in this job stay unfilled; paging
                # past them keeps the producer from dispatching them again.
                after_id = items[-1].id

                to_process = tracker.claim(items)
                for index, item in enumerate(to_process):
                    if not self._put(work_queue, item, cancel):
                        for unsent in to_process[index:]:
                            tracker.release(unsent.id)
                        return

                # Wait longer if no new words to process (all in flight)
                pause = self.idle_interval if not to_process else self.poll_interval
                if cancel.wait(pause):
                    return
        except Exception as e:
            job.producer_error = f"{type(e).__name__}: {e}"
            logger.error(f"[FillJob {job.job_id}] Producer crashed", error=job.producer_error)
            raise
        finally:
            for _ in range(job.workers):
                if not self._put(work_queue, _DONE, cancel):
                    break

    def _put(self, work_queue: queue.Queue, item, cancel: threading.Event) -> bool:
        """Block until queued; False if the job was cancelled first."""
        while not cancel.is_set():
            try:
                work_queue.put(item, timeout=self.queue_timeout)
                return True
            except queue.Full:
                continue
        return False

    # Workers

    def _work(
        self,
        job: FillJob,
        work_queue: queue.Queue,
        tracker: InFlightTracker,
        cancel: threading.Event,
        worker_id: int,
    ) -> None:
        delay = job.delay_ms / 1000.0

        while not cancel.is_set():
            try:
                item = work_queue.get(timeout=self.queue_timeout)
            except queue.Empty:
                continue
            if item is _DONE:
                return
            if cancel.is_set():
                tracker.release(item.id)
                return

            try:
                outcome = self._process(job, item, cancel, worker_id)
            except Exception as e:
                # A dead worker would leave the producer blocked on a full queue
                self._record_failure(job, item, e, worker_id, "Unexpected error processing")
                outcome = _Outcome.FAILED
            finally:
                tracker.release(item.id)

            if outcome == _Outcome.ABANDONED:
                return
            if outcome == _Outcome.SKIPPED:
                continue

            # Delay before next request
            if cancel.wait(delay):
                return

    def _process(self, job: FillJob, item: Item, cancel: threading.Event, worker_id: int) -> str:
        # Double-check: skip if already filled (safety net for races)
        try:
            current = self.store.refetch_one(item.id)
        except DatastoreError as e:
            logger.warning(f"[Worker {worker_id}] Re-check failed for {item.word}, analyzing anyway", error=str(e))
            current = item
        if current is None or not current.is_unfilled:
            logger.debug(f"[Worker {worker_id}] {item.word} already filled, skipping")
            return _Outcome.SKIPPED
        if cancel.is_set():
            return _Outcome.ABANDONED

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning(
                f"[Worker {worker_id}] Rate limited on {item.word}, waiting {delay:g}s before retry {attempt}/{self.max_retries}",
                error=str(error),
            )

        try:
            payload = retry_rate_limited(
                lambda: self.client.analyze(item.word, job.language),
                max_retries=self.max_retries,
                backoff=self.rate_limit_backoff,
                cancel_event=cancel,
                on_retry=on_retry,
            )
        except RetryCancelled:
            logger.info(f"[Worker {worker_id}] Stopped while backing off on {item.word}; left unfilled")
            return _Outcome.ABANDONED
        except Exception as e:
            self._record_failure(job, item, e, worker_id, "Error fetching etymology")
            return _Outcome.FAILED

        try:
            self.store.persist_analysis(item.id, payload)
        except DatastoreError as e:
            self._record_failure(job, item, e, worker_id, "Error saving")
            return _Outcome.FAILED

        completed = job.completed.increment()
        logger.record_item_completed()
        if completed % PROGRESS_LOG_EVERY == 0:
            logger.info(f"[FillJob {job.job_id}] Progress: {completed}/{job.total} completed")
        return _Outcome.COMPLETED

    def _record_failure(self, job: FillJob, item: Item, error: Exception, worker_id: int, action: str) -> None:
        job.failed.increment()
        job.add_error(item.word, str(error))
        logger.record_item_failed(type(error).__name__)
        logger.warning(f"[Worker {worker_id}] {action} for {item.word}", error=str(error))
