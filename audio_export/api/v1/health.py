"""Health check endpoint."""

from fastapi import APIRouter
import platform
import shutil
import sys

from audio_export.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service health, ffmpeg availability, and system info."""
    ffmpeg_binary = shutil.which(settings.ffmpeg_path)
    return {
        "status": "healthy" if ffmpeg_binary else "degraded",
        "ffmpeg_available": ffmpeg_binary is not None,
        "ffmpeg_path": ffmpeg_binary,
        "refinement_enabled": settings.refinement_enabled,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
