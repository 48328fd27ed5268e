"""Per-user provider credentials and voice parameters from Supabase."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from audio_export.config import settings
from audio_export.db.supabase_client import get_supabase
from audio_export.jobs.errors import ConfigurationError

logger = logging.getLogger(__name__)

_SETTINGS_COLUMNS = (
    "elevenlabs_key, elevenlabs_model, elevenlabs_voice_id, "
    "voice_stability, voice_similarity_boost, voice_style, voice_speaker_boost, "
    "openrouter_key"
)


@dataclass(frozen=True)
class AccountSettings:
    elevenlabs_key: str
    voice_id: str
    model_id: str
    stability: Optional[float] = None
    similarity_boost: Optional[float] = None
    style: Optional[float] = None
    use_speaker_boost: Optional[bool] = None
    openrouter_key: Optional[str] = None

    def voice_settings(self) -> Dict[str, Any]:
        """Voice tuning payload with unset values left out."""
        values = {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "use_speaker_boost": self.use_speaker_boost,
        }
        return {k: v for k, v in values.items() if v is not None}

    @classmethod
    def from_row(cls, row: Dict[str, Any], default_model: str) -> "AccountSettings":
        if not row.get("elevenlabs_key"):
            raise ConfigurationError("ElevenLabs API key not configured.")
        if not row.get("elevenlabs_voice_id"):
            raise ConfigurationError("ElevenLabs Voice ID not configured.")
        return cls(
            elevenlabs_key=row["elevenlabs_key"],
            voice_id=row["elevenlabs_voice_id"],
            model_id=row.get("elevenlabs_model") or default_model,
            stability=row.get("voice_stability"),
            similarity_boost=row.get("voice_similarity_boost"),
            style=row.get("voice_style"),
            use_speaker_boost=row.get("voice_speaker_boost"),
            openrouter_key=row.get("openrouter_key") or None,
        )


class SupabaseAccountSettingsProvider:
    """Reads the ``user_settings`` row for a user.

    The supabase client is synchronous, so the query runs in a worker thread.
    """

    def __init__(self, client_factory: Callable = get_supabase, default_model: Optional[str] = None):
        self._client_factory = client_factory
        self._default_model = default_model or settings.elevenlabs_default_model

    async def get_settings(self, owner_id: str) -> AccountSettings:
        logger.info("Fetching settings for user: %s", owner_id)
        row = await asyncio.to_thread(self._fetch_row, owner_id)
        if not row:
            raise ConfigurationError("User settings not found for audio generation.")
        return AccountSettings.from_row(row, self._default_model)

    def _fetch_row(self, owner_id: str) -> Optional[Dict[str, Any]]:
        client = self._client_factory()
        try:
            response = (
                client.table("user_settings")
                .select(_SETTINGS_COLUMNS)
                .eq("user_id", owner_id)
                .maybe_single()
                .execute()
            )
        except Exception as exc:
            logger.error("Supabase fetch error for user %s: %s", owner_id, exc)
            raise ConfigurationError("Failed to fetch user settings for audio generation.") from exc
        if response is None:
            return None
        return response.data
