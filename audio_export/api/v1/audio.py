"""Audio export API: start a job, poll status, download the result, stream progress."""

import json
import os
from typing import Any, AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, StreamingResponse
from pydantic import BaseModel

from audio_export.auth.supabase_auth import verify_jwt
from audio_export.jobs.models import Chapter, JobStatus, Manuscript

router = APIRouter()

# Set by main.py during lifespan
_dispatcher = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


def _require_dispatcher():
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")
    return _dispatcher


class AudioJobRequest(BaseModel):
    title: Optional[Any] = None
    chapters: Optional[List[Chapter]] = None


class AudioJobResponse(BaseModel):
    job_id: str
    status: str
    message: str


@router.post("/audio/jobs", response_model=AudioJobResponse, status_code=202)
async def start_audio_job(request: AudioJobRequest, user=Depends(verify_jwt)):
    """Accept a manuscript and start generating its audio in the background."""
    dispatcher = _require_dispatcher()

    if not isinstance(request.title, str) or not request.title.strip():
        raise HTTPException(status_code=400, detail="Title must be a non-empty string")
    if not request.chapters:
        raise HTTPException(status_code=400, detail="Chapters must be a non-empty list")

    manuscript = Manuscript(title=request.title.strip(), chapters=request.chapters)
    job_id = await dispatcher.submit(str(user.id), manuscript)
    return AudioJobResponse(
        job_id=job_id,
        status=JobStatus.PENDING.value,
        message="Audio generation started. Poll GET /api/v1/audio/jobs/{id} for status.",
    )


@router.get("/audio/jobs/{job_id}")
async def get_audio_job_status(job_id: str, user=Depends(verify_jwt)):
    """Current status of an audio job."""
    job = await _owned_job(job_id, user)
    return job.status_view()


@router.get("/audio/jobs/{job_id}/result")
async def download_audio_result(job_id: str, user=Depends(verify_jwt)):
    """Download the finished MP3."""
    job = await _owned_job(job_id, user)

    if job.status == JobStatus.FAILED:
        raise HTTPException(status_code=400, detail=f"Job failed: {job.error or 'unknown error'}")
    if job.status != JobStatus.COMPLETED:
        raise HTTPException(status_code=400, detail=f"Job is not completed yet (status: {job.status.value})")
    if not job.result_path or not os.path.isfile(job.result_path):
        raise HTTPException(status_code=404, detail="Result file not found")

    return FileResponse(
        job.result_path,
        media_type="audio/mpeg",
        filename=os.path.basename(job.result_path),
    )


@router.get("/audio/jobs/{job_id}/events")
async def stream_audio_job_events(job_id: str, user=Depends(verify_jwt)):
    """Server-sent events with a job snapshot on every progress change."""
    reporter = _require_dispatcher().reporter
    # Subscribe before reading the snapshot so no transition falls in between.
    queue = reporter.subscribe(job_id)
    try:
        job = await _owned_job(job_id, user)
    except HTTPException:
        reporter.unsubscribe(job_id, queue)
        raise

    async def events() -> AsyncIterator[str]:
        try:
            snapshot = job.status_view()
            yield f"data: {json.dumps(snapshot)}\n\n"
            while not JobStatus(snapshot["status"]).is_terminal:
                snapshot = await queue.get()
                yield f"data: {json.dumps(snapshot)}\n\n"
        finally:
            reporter.unsubscribe(job_id, queue)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


async def _owned_job(job_id: str, user):
    dispatcher = _require_dispatcher()
    job = await dispatcher.get_status(job_id)
    # Other users' jobs are reported as missing.
    if job is None or job.owner_id != str(user.id):
        raise HTTPException(status_code=404, detail="Job not found")
    return job
