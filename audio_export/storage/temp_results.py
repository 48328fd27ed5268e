"""Per-job working directories with TTL-based cleanup."""

import logging
import os
import re
import shutil
import tempfile
import time
from typing import Iterable, Optional

from audio_export.config import settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def result_filename(title: str) -> str:
    """Download name for a finished manuscript, e.g. ``final_my_book.mp3``."""
    return f"final_{_UNSAFE_CHARS.sub('_', title).lower()}.mp3"


class TempResultStore:
    """Owns the temp root that holds one directory per job."""

    def __init__(self, base_dir: Optional[str] = None, ttl_hours: int = 2):
        if base_dir:
            self._base_dir = base_dir
        else:
            self._base_dir = os.path.join(tempfile.gettempdir(), "audio_export_jobs")
        os.makedirs(self._base_dir, exist_ok=True)
        self._ttl_seconds = ttl_hours * 3600

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def job_dir_path(self, job_id: str) -> str:
        return os.path.join(self._base_dir, job_id)

    def get_job_dir(self, job_id: str) -> str:
        """Get or create directory for a job's files."""
        job_dir = self.job_dir_path(job_id)
        os.makedirs(job_dir, exist_ok=True)
        return job_dir

    def get_output_path(self, job_id: str, filename: str) -> str:
        return os.path.join(self.job_dir_path(job_id), filename)

    def file_exists(self, job_id: str, filename: str) -> bool:
        return os.path.exists(self.get_output_path(job_id, filename))

    def remove_job_dir(self, job_id: str) -> bool:
        """Delete a job's directory. Failures are logged, never raised."""
        job_dir = self.job_dir_path(job_id)
        if not os.path.exists(job_dir):
            return False
        try:
            shutil.rmtree(job_dir)
        except OSError as exc:
            logger.error("Error cleaning up directory %s: %s", job_dir, exc)
            return False
        return True

    def cleanup_expired(self, exclude: Iterable[str] = ()) -> int:
        """Remove job directories older than TTL, skipping ids in ``exclude``.

        Returns count of removed dirs.
        """
        skip = set(exclude)
        now = time.time()
        removed = 0
        if not os.path.exists(self._base_dir):
            return 0
        for entry in os.listdir(self._base_dir):
            job_dir = os.path.join(self._base_dir, entry)
            if entry in skip or not os.path.isdir(job_dir):
                continue
            if now - os.path.getmtime(job_dir) > self._ttl_seconds:
                shutil.rmtree(job_dir, ignore_errors=True)
                removed += 1
        return removed


# Global instance
temp_store = TempResultStore(base_dir=settings.jobs_tmp_dir, ttl_hours=settings.job_result_ttl_hours)
