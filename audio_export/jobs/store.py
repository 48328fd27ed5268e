"""Lock-protected in-memory registry of audio jobs."""

import asyncio
from typing import Callable, Dict, List, Optional

from audio_export.jobs.errors import JobFinalizedError, JobNotFoundError
from audio_export.jobs.models import ALLOWED_TRANSITIONS, JobRecord

JobMutator = Callable[[JobRecord], None]


class JobStore:
    """Single source of truth for job state.

    Every write goes through ``update`` which applies the mutator to a private
    copy and swaps it in under the lock, so readers only ever see whole records.
    ``get`` hands out copies for the same reason.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        owner_id: str,
        title: str = "",
        job_dir: Optional[str] = None,
        result_path: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> JobRecord:
        fields = {"owner_id": owner_id, "title": title, "job_dir": job_dir, "result_path": result_path}
        if job_id:
            fields["id"] = job_id
        record = JobRecord(**fields)
        async with self._lock:
            if record.id in self._jobs:
                raise ValueError(f"Job {record.id} already exists")
            self._jobs[record.id] = record
        return record.model_copy(deep=True)

    async def get(self, job_id: str) -> Optional[JobRecord]:
        """Return a snapshot of the job, or None if it is unknown or expired."""
        async with self._lock:
            record = self._jobs.get(job_id)
            return record.model_copy(deep=True) if record is not None else None

    async def update(self, job_id: str, mutator: JobMutator) -> JobRecord:
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            if current.status.is_terminal:
                raise JobFinalizedError(f"Job {job_id} is already {current.status.value}")

            draft = current.model_copy(deep=True)
            mutator(draft)
            if draft.status != current.status and draft.status not in ALLOWED_TRANSITIONS[current.status]:
                raise ValueError(
                    f"Illegal transition {current.status.value} -> {draft.status.value} for job {job_id}"
                )
            self._jobs[job_id] = draft
            return draft.model_copy(deep=True)

    async def delete(self, job_id: str) -> bool:
        async with self._lock:
            return self._jobs.pop(job_id, None) is not None

    async def list_jobs(self) -> List[JobRecord]:
        async with self._lock:
            return [record.model_copy(deep=True) for record in self._jobs.values()]
