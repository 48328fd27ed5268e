"""Chapter text refinement before narration."""

import logging
from typing import Optional

from openai import AsyncOpenAI

from audio_export.config import settings
from audio_export.jobs.errors import ConfigurationError, RefinementError
from audio_export.providers.account_settings import AccountSettings

logger = logging.getLogger(__name__)

REFINEMENT_INSTRUCTIONS = """You edit fiction so it reads well aloud. Apply these rules to the text you are given.

Remove:
- appositive phrases about people or objects, unless they foreshadow something
- absolute phrases about people or objects, unless they carry sensory or physical detail
- metaphors
- sentences that add detail or reflection without new information
- long descriptions of setting or atmosphere that do not affect what characters do or feel
- mentions of a heart pounding or a heart in someone's throat
- mentions of light casting long shadows

Rewrite:
- "I frowned" and similar phrasing
- mentions of stale or heavy air
- flowery language, using casual and simple vocabulary
- mentions of the weight of something in a pocket

Replace these words with casual, simple synonyms: loomed, sinewy, foreboding,
grotesque, familiar, shift/shifting/shifted, gaze, punctuated, form, monotonous,
frowned, hum/humming/hummed, rough-hewn, camaraderie, echoed, observed.

Leave paragraphs that need no change as they are and keep paragraph breaks.
Respond with the full modified text and nothing else."""


class PassthroughRefiner:
    """Returns chapter text untouched. Used when refinement is switched off."""

    async def refine(self, text: str, account: AccountSettings, job_id: str = "-") -> str:
        return text


class OpenRouterRefiner:
    """Streams a chat completion from OpenRouter and returns the joined text."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 1.0,
        timeout: Optional[float] = None,
    ):
        self._base_url = base_url or settings.openrouter_base_url
        self._model = model or settings.refinement_model
        self._temperature = temperature
        self._timeout = timeout or settings.http_timeout_seconds

    async def refine(self, text: str, account: AccountSettings, job_id: str = "-") -> str:
        if not account.openrouter_key:
            raise ConfigurationError("OpenRouter API key not configured.")

        model = self._model
        client = AsyncOpenAI(api_key=account.openrouter_key, base_url=self._base_url, timeout=self._timeout)
        logger.info("Job %s: refining %d characters with %s", job_id, len(text), model)

        parts = []
        try:
            stream = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": REFINEMENT_INSTRUCTIONS},
                    {"role": "user", "content": text},
                ],
                temperature=self._temperature,
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    parts.append(delta)
        except Exception as exc:
            raise RefinementError(f"{type(exc).__name__}: {exc}") from exc
        finally:
            await client.close()

        refined = "".join(parts)
        # An empty completion means the model had nothing to change.
        return refined if refined.strip() else text
