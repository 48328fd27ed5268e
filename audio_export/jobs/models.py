"""Job record and manuscript data models for audio generation."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field
import uuid


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Legal lifecycle edges; terminal states have no way out.
ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class JobRecord(BaseModel):
    """Tracks the lifecycle of one audio generation job."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    title: str = ""
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    message: str = "Job queued"
    error: Optional[str] = None
    result_path: Optional[str] = None
    job_dir: Optional[str] = None
    concurrency_limit: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def status_view(self) -> dict:
        """The public status shape returned to pollers."""
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "error": self.error,
        }


class Chapter(BaseModel):
    title: str = ""
    content: str = ""


class Manuscript(BaseModel):
    title: str
    chapters: List[Chapter]


@dataclass(frozen=True)
class Section:
    """A chunk of one chapter, synthesized independently.

    ``order`` is the position across the whole manuscript and decides where
    the section's audio lands in the final file.
    """
    chapter_index: int
    section_index: int
    order: int
    text: str
    path: Path

    @property
    def label(self) -> str:
        return f"Chapter {self.chapter_index + 1}, Section {self.section_index + 1}"
