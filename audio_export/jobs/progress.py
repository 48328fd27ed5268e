"""Progress publishing for audio jobs.

The scheduler reports into a ``ProgressReporter``; the reporter persists the
change in the ``JobStore`` and pushes the new snapshot to anyone subscribed
to that job (the SSE endpoint).
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional, Set

from audio_export.jobs.errors import JobFinalizedError
from audio_export.jobs.models import JobRecord, JobStatus
from audio_export.jobs.store import JobStore

logger = logging.getLogger(__name__)


class ProgressReporter:
    def __init__(self, store: JobStore):
        self._store = store
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}

    def subscribe(self, job_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(job_id, set()).add(queue)
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(job_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            self._subscribers.pop(job_id, None)

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, ()))

    async def start(self, job_id: str, message: str, progress: int = 0) -> JobRecord:
        def mutate(job: JobRecord) -> None:
            job.status = JobStatus.PROCESSING
            job.started_at = datetime.utcnow()
            job.message = message
            job.progress = max(job.progress, progress)

        return await self._apply(job_id, mutate)

    async def report(self, job_id: str, progress: Optional[int] = None, message: Optional[str] = None) -> JobRecord:
        """Record a milestone. Progress never moves backwards."""

        def mutate(job: JobRecord) -> None:
            if progress is not None:
                job.progress = max(job.progress, min(int(progress), 100))
            if message is not None:
                job.message = message

        return await self._apply(job_id, mutate)

    async def complete(self, job_id: str, message: str = "Audio generation complete.") -> JobRecord:
        def mutate(job: JobRecord) -> None:
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.message = message
            job.completed_at = datetime.utcnow()

        return await self._apply(job_id, mutate)

    async def fail(self, job_id: str, error: str) -> Optional[JobRecord]:
        """Move the job to ``failed``. Returns None if it had already finished."""

        def mutate(job: JobRecord) -> None:
            job.status = JobStatus.FAILED
            job.error = error
            job.message = f"Job failed: {error}"
            job.completed_at = datetime.utcnow()

        try:
            return await self._apply(job_id, mutate)
        except JobFinalizedError:
            logger.warning("Job %s: ignoring failure after terminal state: %s", job_id, error)
            return None

    async def _apply(self, job_id: str, mutate) -> JobRecord:
        record = await self._store.update(job_id, mutate)
        self._publish(record)
        return record

    def _publish(self, record: JobRecord) -> None:
        for queue in list(self._subscribers.get(record.id, ())):
            queue.put_nowait(record.status_view())
