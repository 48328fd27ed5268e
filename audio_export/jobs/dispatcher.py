"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Optional

from audio_export.jobs.models import JobRecord, Manuscript
from audio_export.jobs.progress import ProgressReporter


class JobDispatcher(ABC):
    """Abstract interface for accepting and tracking audio jobs."""

    @abstractmethod
    async def submit(self, owner_id: str, manuscript: Manuscript) -> str:
        """Accept a manuscript for processing. Returns job_id immediately."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        """Get current state of a job, or None if it is unknown."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start maintenance loops)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...

    @property
    @abstractmethod
    def reporter(self) -> ProgressReporter:
        """Progress publisher that job event streams subscribe to."""
        ...
