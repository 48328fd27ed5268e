"""Error taxonomy for the audio generation pipeline."""

from typing import Optional


class AudioExportError(Exception):
    """Base class for pipeline failures that end a job."""


class ConfigurationError(AudioExportError):
    """Account settings are missing or unusable. Never retried."""


class ProviderError(AudioExportError):
    """An external provider call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """Rate limits, server errors, network/timeouts and stream write failures."""


class PermanentProviderError(ProviderError):
    """Any provider failure that retrying will not fix."""


class SynthesisError(PermanentProviderError):
    """A section could not be synthesized. Fatal to the job."""

    def __init__(
        self,
        chapter_index: int,
        section_index: int,
        message: str,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, status_code=status_code)
        self.chapter_index = chapter_index
        self.section_index = section_index


class RefinementError(AudioExportError):
    """The text refinement service failed for a chapter."""


class AssemblyError(AudioExportError):
    """ffmpeg failed, or an expected segment file is missing."""


class JobNotFoundError(KeyError):
    """No job with the given id is registered."""


class JobFinalizedError(RuntimeError):
    """A mutation was attempted on a job that already reached a terminal state."""
