"""Write-behind delivery of conversation outcomes to the task service.

Each outcome is tried once inline; if that fails it joins an in-process FIFO
that a single background drain loop works through. A failed job goes back to
the front of the queue with an exponential delay, so a retry is always
attempted before any job queued after it. Nothing is persisted across
restarts.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Any, Optional

from .timezone import utc_now_iso
from .types import Job

logger = logging.getLogger(__name__)


class SyncDeliveryError(Exception):
    """The task service answered but reported the delivery as failed."""


class SyncQueue:
    """Ordered, retrying, in-memory delivery queue with one consumer."""

    def __init__(
        self,
        task_api,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        send_interval: float = 0.1,
        source: str = "workmate",
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the queue.

        Args:
            task_api: TaskAPIClient (anything with ``process_conversation``)
            max_attempts: Failed queue deliveries before a job is dropped
            backoff_base: Retry delay is ``backoff_base * 2**attempts`` seconds
            send_interval: Pause between consecutive sends
            source: Value of the ``source`` field in delivery payloads
            clock: Monotonic clock, injectable for tests
        """
        self.task_api = task_api
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.send_interval = send_interval
        self.source = source
        self._clock = clock

        self._queue: Deque[Job] = deque()
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None

        self.total_processed = 0
        self.total_failed = 0
        self.total_dropped = 0
        self.last_processed: Optional[str] = None

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._draining

    def peek_jobs(self):
        """Snapshot of queued jobs, front first."""
        return list(self._queue)

    async def _deliver(self, job: Job):
        payload = {
            "parsed_response": job.structured_result,
            "user_input": job.user_input,
            "user_id": job.user_id,
            "session_id": job.session_id,
            "timestamp": job.timestamp,
            "source": self.source,
        }
        result = await self.task_api.process_conversation(payload)
        if isinstance(result, dict) and result.get("success") is False:
            raise SyncDeliveryError(result.get("error") or result.get("message") or "delivery rejected")

    async def submit(self, job: Job):
        """Deliver now; on failure queue the job for background retries.

        Never raises. The inline try does not count against ``max_attempts``.
        """
        try:
            await self._deliver(job)
        except Exception as e:
            logger.warning(f"📤 Inline delivery of {job.type} for session {job.session_id} failed, queueing: {e}")
            job.attempts = 0
            job.next_attempt_at = 0.0
            self.enqueue(job)
            return

        self.total_processed += 1
        self.last_processed = utc_now_iso()
        logger.info(f"✅ Delivered {job.type} for session {job.session_id}")

    def enqueue(self, job: Job):
        """Append a job to the back of the queue and make sure a drain runs.

        The queue's ``max_attempts`` replaces the job's own limit.
        """
        job.max_attempts = self.max_attempts
        self._queue.append(job)
        logger.info(f"📋 Queued {job.type} job. Queue size: {len(self._queue)}")
        self.trigger()

    def trigger(self) -> bool:
        """Start a drain if the queue is idle. Returns True if one was started."""
        if self._draining or not self._queue:
            return False
        if self._drain_task is not None and not self._drain_task.done():
            return False
        self._drain_task = asyncio.create_task(self.drain())
        return True

    async def drain(self):
        """Work through the queue until it is empty.

        Only one drain runs at a time; a second call while one is active
        returns immediately.
        """
        if self._draining:
            return
        self._draining = True
        logger.info(f"🔄 Processing background jobs. Queue size: {len(self._queue)}")
        try:
            while self._queue:
                wait = self._queue[0].next_attempt_at - self._clock()
                if wait > 0:
                    await asyncio.sleep(wait)

                job = self._queue.popleft()
                try:
                    logger.info(f"⚙️ Processing job: {job.type} (attempt {job.attempts + 1}/{job.max_attempts})")
                    await self._deliver(job)
                except Exception as e:
                    self._handle_failure(job, e)
                else:
                    self.total_processed += 1
                    self.last_processed = utc_now_iso()
                    logger.info(f"✅ Job completed: {job.type} (session {job.session_id})")

                if self._queue and self.send_interval > 0:
                    await asyncio.sleep(self.send_interval)
        finally:
            self._draining = False
        logger.info("✅ Background job processing completed")

    def _handle_failure(self, job: Job, error: Exception):
        job.attempts += 1
        self.total_failed += 1
        logger.error(f"❌ Job failed (attempt {job.attempts}/{job.max_attempts}): {error}")

        if job.attempts < job.max_attempts:
            delay = self.backoff_base * (2 ** job.attempts)
            job.next_attempt_at = self._clock() + delay
            self._queue.appendleft(job)
            logger.info(f"🔄 Retrying {job.type} in {delay:.1f}s")
        else:
            self.total_dropped += 1
            logger.error(
                f"💀 Job permanently failed after {job.max_attempts} attempts: {job.type} "
                f"(session {job.session_id}, user {job.user_id})"
            )

    def get_status(self) -> Dict[str, Any]:
        return {
            "queueSize": len(self._queue),
            "isProcessing": self._draining,
            "totalProcessed": self.total_processed,
            "totalFailed": self.total_failed,
            "totalDropped": self.total_dropped,
            "lastProcessed": self.last_processed,
        }

    async def close(self):
        """Wait for a running drain to finish."""
        task = self._drain_task
        if task is not None and not task.done():
            logger.info(f"Waiting for sync queue to drain ({len(self._queue)} jobs)")
            await task
