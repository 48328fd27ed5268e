"""Audio Export Service - FastAPI application."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from audio_export.config import settings
from audio_export.logging_config import configure_logging
from audio_export.api.v1.router import v1_router
from audio_export.api.v1.health import router as health_root_router
from audio_export.api.v1 import audio as audio_api
from audio_export.audio.assembler import AudioAssembler
from audio_export.jobs.progress import ProgressReporter
from audio_export.jobs.scheduler import AudioJobScheduler
from audio_export.jobs.store import JobStore
from audio_export.providers.account_settings import SupabaseAccountSettingsProvider
from audio_export.providers.elevenlabs import ElevenLabsSynthesisClient, ElevenLabsTierProvider
from audio_export.providers.refinement import OpenRouterRefiner, PassthroughRefiner
from audio_export.storage.temp_results import temp_store

logger = logging.getLogger(__name__)


def build_scheduler(http_client: httpx.AsyncClient) -> AudioJobScheduler:
    """Wire the production collaborators into a scheduler."""
    store = JobStore()
    return AudioJobScheduler(
        store=store,
        reporter=ProgressReporter(store),
        temp_store=temp_store,
        account_settings=SupabaseAccountSettingsProvider(),
        tier_provider=ElevenLabsTierProvider(http_client),
        refiner=OpenRouterRefiner() if settings.refinement_enabled else PassthroughRefiner(),
        synthesizer=ElevenLabsSynthesisClient(http_client),
        assembler=AudioAssembler(ffmpeg_path=settings.ffmpeg_path, silence_seconds=settings.silence_seconds),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    configure_logging(settings.log_level)
    logger.info("Starting Audio Export Service on port %s", settings.service_port)
    logger.info("Job directory root: %s", temp_store.base_dir)

    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    scheduler = build_scheduler(http_client)
    await scheduler.start()
    audio_api.set_dispatcher(scheduler)
    logger.info("Audio job scheduler started")

    yield

    logger.info("Shutting down Audio Export Service")
    audio_api.set_dispatcher(None)
    await scheduler.stop()
    await http_client.aclose()
    temp_store.cleanup_expired()


app = FastAPI(
    title="Audio Export Service",
    description="Turns multi-chapter manuscripts into a single narrated audio file",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
