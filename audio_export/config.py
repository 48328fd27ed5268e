"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_anon_key: str = ""

    # Service
    service_port: int = 8001
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Job working directories
    jobs_tmp_dir: Optional[str] = None
    job_result_ttl_hours: int = 2
    job_max_age_minutes: int = 60
    cleanup_interval_minutes: int = 10

    # Pipeline
    paragraphs_per_section: int = 6
    default_concurrency: int = 3
    synthesis_max_attempts: int = 5
    retry_backoff_unit_seconds: float = 1.0
    silence_seconds: float = 0.4
    ffmpeg_path: str = "ffmpeg"

    # ElevenLabs
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    elevenlabs_output_format: str = "mp3_44100_192"
    elevenlabs_default_model: str = "eleven_multilingual_v2"
    http_timeout_seconds: float = 120.0

    # Text refinement (OpenRouter, OpenAI-compatible)
    refinement_enabled: bool = True
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    refinement_model: str = "anthropic/claude-3.7-sonnet"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
