"""Audio job scheduler.

Each accepted manuscript becomes one background asyncio task that walks the
job through settings lookup, chapter refinement, bounded concurrent synthesis,
ordered assembly and cleanup. The task is the only writer of its job record
until the job is completed or failed.
"""

import asyncio
import logging
import os
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from audio_export.audio.assembler import SILENCE_FILENAME, AudioAssembler, remove_files
from audio_export.audio.sections import build_sections
from audio_export.config import settings
from audio_export.jobs.dispatcher import JobDispatcher
from audio_export.jobs.errors import AssemblyError, AudioExportError, RefinementError
from audio_export.jobs.gate import ConcurrencyGate
from audio_export.jobs.limits import concurrency_for_tier
from audio_export.jobs.models import Chapter, JobRecord, Manuscript, Section
from audio_export.jobs.progress import ProgressReporter
from audio_export.jobs.store import JobStore
from audio_export.providers.account_settings import AccountSettings
from audio_export.storage.temp_results import TempResultStore, result_filename

logger = logging.getLogger(__name__)

# Progress milestones (percent)
SETTINGS_PROGRESS = 5
REFINE_START, REFINE_END = 10, 30
SYNTH_START, SYNTH_END = 30, 95
FINALIZE_PROGRESS = 95


def _error_message(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or f"{type(exc).__name__}: processing failed due to an unknown error."


class AudioJobScheduler(JobDispatcher):
    """Runs audio generation jobs, one background task per job."""

    def __init__(
        self,
        store: JobStore,
        reporter: ProgressReporter,
        temp_store: TempResultStore,
        account_settings,
        tier_provider,
        refiner,
        synthesizer,
        assembler: AudioAssembler,
        paragraphs_per_section: Optional[int] = None,
        default_concurrency: Optional[int] = None,
        job_max_age_minutes: Optional[int] = None,
        cleanup_interval_minutes: Optional[int] = None,
    ):
        self._store = store
        self._reporter = reporter
        self._temp_store = temp_store
        self._account_settings = account_settings
        self._tier_provider = tier_provider
        self._refiner = refiner
        self._synthesizer = synthesizer
        self._assembler = assembler
        self.paragraphs_per_section = paragraphs_per_section or settings.paragraphs_per_section
        self.default_concurrency = default_concurrency or settings.default_concurrency
        self.job_max_age_minutes = job_max_age_minutes or settings.job_max_age_minutes
        self.cleanup_interval_minutes = cleanup_interval_minutes or settings.cleanup_interval_minutes
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cleanup_task: Optional[asyncio.Task] = None
        self._running = False

    # ------------------------------------------------------------------
    # JobDispatcher interface
    # ------------------------------------------------------------------

    async def submit(self, owner_id: str, manuscript: Manuscript) -> str:
        job_id = str(uuid.uuid4())
        job_dir = self._temp_store.job_dir_path(job_id)
        record = await self._store.create(
            owner_id,
            title=manuscript.title,
            job_dir=job_dir,
            result_path=os.path.join(job_dir, result_filename(manuscript.title)),
            job_id=job_id,
        )
        logger.info("Audio generation job queued: %s for user %s", job_id, owner_id)

        task = asyncio.create_task(self._run_job(job_id, manuscript), name=f"audio-job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(job_id, None))
        return record.id

    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        return await self._store.get(job_id)

    async def start(self) -> None:
        self._running = True
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        self._running = False
        pending = [t for t in (self._cleanup_task, *self._tasks.values()) if t is not None]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------

    @property
    def reporter(self) -> ProgressReporter:
        return self._reporter

    def active_job_ids(self) -> List[str]:
        return list(self._tasks)

    async def wait(self, job_id: str) -> Optional[JobRecord]:
        """Wait for a job's task to finish and return its final record."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self._store.get(job_id)

    async def cleanup_old_jobs(self, max_age_minutes: Optional[int] = None) -> int:
        """Forget finished jobs older than the cutoff and delete their files."""
        max_age = self.job_max_age_minutes if max_age_minutes is None else max_age_minutes
        cutoff = datetime.utcnow() - timedelta(minutes=max_age)
        removed = 0
        for job in await self._store.list_jobs():
            if not job.status.is_terminal or job.created_at > cutoff:
                continue
            logger.info("Cleaning up old job %s", job.id)
            self._temp_store.remove_job_dir(job.id)
            if await self._store.delete(job.id):
                removed += 1
        return removed

    async def _cleanup_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.cleanup_interval_minutes * 60)
            try:
                await self.cleanup_old_jobs()
                self._temp_store.cleanup_expired(exclude=self.active_job_ids())
            except Exception:
                logger.exception("Periodic job cleanup failed")

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_job(self, job_id: str, manuscript: Manuscript) -> None:
        try:
            await self._process(job_id, manuscript)
        except asyncio.CancelledError:
            await self._fail(job_id, "Job interrupted before completion.")
            raise
        except Exception as exc:
            if isinstance(exc, AudioExportError):
                logger.error("Job %s failed: %s", job_id, exc)
            else:
                logger.exception("Unexpected error processing job %s", job_id)
            await self._fail(job_id, _error_message(exc))

    async def _process(self, job_id: str, manuscript: Manuscript) -> None:
        job = await self._reporter.start(job_id, "Fetching user settings...", progress=SETTINGS_PROGRESS)
        account = await self._account_settings.get_settings(job.owner_id)

        limit = await self._resolve_concurrency(job_id, account)
        await self._store.update(job_id, lambda j: setattr(j, "concurrency_limit", limit))

        job_dir = Path(self._temp_store.get_job_dir(job_id))
        logger.info("Job %s: created job directory %s", job_id, job_dir)

        refined = await self._refine_chapters(job_id, account, manuscript.chapters)

        sections = build_sections(refined, job_dir, self.paragraphs_per_section)
        if not sections:
            raise AudioExportError("Chapters found, but no processable sections detected.")

        total = len(sections)
        logger.info(
            "Job %s: %d sections across %d chapters, concurrency %d",
            job_id, total, len(refined), limit,
        )
        await self._reporter.report(job_id, SYNTH_START, f"Preparing {total} audio sections...")

        completed = 0

        async def synthesize(section: Section) -> Path:
            return await self._synthesizer.synthesize(section, account, job_id)

        async def on_settled(section: Section, error: Optional[BaseException]) -> None:
            nonlocal completed
            if error is not None:
                return
            completed += 1
            await self._reporter.report(
                job_id,
                SYNTH_START + round(completed / total * (SYNTH_END - SYNTH_START)),
                f"Generating audio: Section {completed}/{total} completed.",
            )

        outcome = await ConcurrencyGate(limit).run(sections, synthesize, on_settled)
        if not outcome.ok:
            raise outcome.error

        segments = [path for path in outcome.results if path is not None]
        if len(segments) != total:
            raise AssemblyError(f"Expected {total} section files, got {len(segments)}.")

        await self._reporter.report(job_id, FINALIZE_PROGRESS, "Finalizing audio file...")
        await self._assembler.assemble(segments, Path(job.result_path), job_dir)
        logger.info("Job %s: final audio file saved to %s", job_id, job.result_path)

        remove_files([*segments, job_dir / SILENCE_FILENAME])
        await self._reporter.complete(job_id)
        logger.info("Job %s completed successfully.", job_id)

    async def _resolve_concurrency(self, job_id: str, account: AccountSettings) -> int:
        try:
            tier = await self._tier_provider.fetch_tier(account.elevenlabs_key)
        except Exception as exc:
            logger.warning(
                "Job %s: failed to fetch subscription tier, using default concurrency %d: %s",
                job_id, self.default_concurrency, exc,
            )
            return self.default_concurrency
        limit = concurrency_for_tier(tier, self.default_concurrency)
        logger.info("Job %s: user tier is %r, concurrency limit %d", job_id, tier, limit)
        return limit

    async def _refine_chapters(
        self, job_id: str, account: AccountSettings, chapters: Iterable[Chapter]
    ) -> List[Chapter]:
        chapters = list(chapters)
        refined: List[Chapter] = []
        await self._reporter.report(job_id, REFINE_START, "Refining chapter text...")
        for index, chapter in enumerate(chapters):
            await self._reporter.report(
                job_id,
                REFINE_START + round((index + 1) / len(chapters) * (REFINE_END - REFINE_START)),
                f"Processing chapter {index + 1}/{len(chapters)} for refinement...",
            )
            if not chapter.content.strip():
                logger.info("Job %s: skipping refinement for chapter %d (empty content)", job_id, index + 1)
                refined.append(chapter)
                continue
            try:
                text = await self._refiner.refine(chapter.content, account, job_id)
            except RefinementError as exc:
                raise RefinementError(f"Failed to refine text for Chapter {index + 1}: {exc}") from exc
            refined.append(chapter.model_copy(update={"content": text}))
        return refined

    async def _fail(self, job_id: str, error: str) -> None:
        record = await self._reporter.fail(job_id, error)
        if record is None:
            return
        logger.error("Job %s failed. Cleaning up directory %s", job_id, record.job_dir)
        self._temp_store.remove_job_dir(job_id)
