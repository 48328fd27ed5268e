"""ElevenLabs text-to-speech and subscription clients."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import aiofiles
import httpx

from audio_export.config import settings
from audio_export.jobs.errors import (
    PermanentProviderError,
    ProviderError,
    SynthesisError,
    TransientProviderError,
)
from audio_export.jobs.models import Section
from audio_export.providers.account_settings import AccountSettings

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[Any]]


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def extract_error_detail(body: bytes, fallback: str = "") -> str:
    """Best available human-readable message from an ElevenLabs error body."""
    text = body.decode("utf-8", "ignore").strip() if body else ""
    if not text:
        return fallback
    try:
        data = json.loads(text)
    except ValueError:
        return text[:500]
    if isinstance(data, dict):
        detail = data.get("detail", data)
        if isinstance(detail, dict):
            return str(detail.get("message") or detail.get("status") or json.dumps(detail))
        if isinstance(detail, list):
            return json.dumps(detail)
        if detail:
            return str(detail)
        if data.get("message"):
            return str(data["message"])
    return json.dumps(data)


class ElevenLabsTierProvider:
    """Looks up the account's subscription tier."""

    def __init__(self, http_client: httpx.AsyncClient, base_url: Optional[str] = None):
        self._http = http_client
        self._base_url = (base_url or settings.elevenlabs_base_url).rstrip("/")

    async def fetch_tier(self, api_key: str) -> Optional[str]:
        response = await self._http.get(
            f"{self._base_url}/v1/user/subscription",
            headers={"xi-api-key": api_key},
        )
        response.raise_for_status()
        tier = (response.json() or {}).get("tier")
        return tier.lower() if isinstance(tier, str) and tier else None


class ElevenLabsSynthesisClient:
    """Synthesizes one section to an MP3 file, retrying transient failures.

    After a retryable failure on attempt ``k`` the client waits
    ``2**k * backoff_unit`` seconds before trying again.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: Optional[str] = None,
        output_format: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_unit: Optional[float] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._http = http_client
        self._base_url = (base_url or settings.elevenlabs_base_url).rstrip("/")
        self.output_format = output_format or settings.elevenlabs_output_format
        self.max_attempts = max_attempts or settings.synthesis_max_attempts
        self.backoff_unit = settings.retry_backoff_unit_seconds if backoff_unit is None else backoff_unit
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        return (2 ** attempt) * self.backoff_unit

    async def synthesize(self, section: Section, account: AccountSettings, job_id: str = "-") -> Path:
        for attempt in range(1, self.max_attempts + 1):
            logger.info(
                "Job %s: calling ElevenLabs (attempt %d/%d) for %s",
                job_id, attempt, self.max_attempts, section.label,
            )
            try:
                size = await self._request_audio(section, account)
            except Exception as exc:
                error = exc if isinstance(exc, ProviderError) else PermanentProviderError(str(exc))
                _discard(section.path)
                logger.warning(
                    "Job %s: audio generation failed (attempt %d/%d) for %s: %s",
                    job_id, attempt, self.max_attempts, section.label, error,
                )
                if isinstance(error, TransientProviderError) and attempt < self.max_attempts:
                    delay = self.backoff_delay(attempt)
                    logger.info("Job %s: retrying %s in %.1f seconds", job_id, section.label, delay)
                    await self._sleep(delay)
                    continue
                raise SynthesisError(
                    section.chapter_index,
                    section.section_index,
                    f"Failed to generate audio for {section.label} after {attempt} "
                    f"attempt{'s' if attempt != 1 else ''}. Error: {error}",
                    status_code=error.status_code,
                ) from exc

            logger.info("Job %s: saved audio for %s to %s (%d bytes)", job_id, section.label, section.path.name, size)
            return section.path

        # max_attempts < 1
        raise SynthesisError(section.chapter_index, section.section_index, "No synthesis attempts were allowed.")

    async def _request_audio(self, section: Section, account: AccountSettings) -> int:
        payload: Dict[str, Any] = {"text": section.text, "model_id": account.model_id}
        voice_settings = account.voice_settings()
        if voice_settings:
            payload["voice_settings"] = voice_settings

        written = 0
        try:
            async with self._http.stream(
                "POST",
                f"{self._base_url}/v1/text-to-speech/{account.voice_id}",
                params={"output_format": self.output_format},
                headers={"xi-api-key": account.elevenlabs_key, "Accept": "audio/mpeg"},
                json=payload,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    detail = extract_error_detail(body, response.reason_phrase)
                    message = f"Status {response.status_code}: {detail}"
                    if is_retryable_status(response.status_code):
                        raise TransientProviderError(message, status_code=response.status_code)
                    raise PermanentProviderError(message, status_code=response.status_code)

                try:
                    async with aiofiles.open(section.path, "wb") as fh:
                        async for chunk in response.aiter_bytes():
                            if chunk:
                                await fh.write(chunk)
                                written += len(chunk)
                except OSError as exc:
                    raise TransientProviderError(f"File write error: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(f"Network error: {type(exc).__name__}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise PermanentProviderError(f"HTTP error: {type(exc).__name__}: {exc}") from exc

        if written == 0 or os.path.getsize(section.path) == 0:
            raise PermanentProviderError(f"Generated audio file {section.path.name} is empty.")
        return written


def _discard(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove incomplete audio file %s: %s", path, exc)
