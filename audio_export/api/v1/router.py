"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from audio_export.api.v1.health import router as health_router
from audio_export.api.v1.audio import router as audio_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(audio_router, tags=["audio"])
