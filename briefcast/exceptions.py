"""
Domain errors raised by the podcast generation pipeline.
"""
from typing import Optional


class PodcastError(Exception):
    """Base class for podcast generation errors."""


class ScriptGenerationError(PodcastError):
    """The language model failed or returned a reply that does not parse."""


class SynthesisError(PodcastError):
    """A dialogue line could not be synthesized."""

    def __init__(self, message: str, index: Optional[int] = None, speaker_id: Optional[str] = None):
        super().__init__(message)
        self.index = index
        self.speaker_id = speaker_id


class AssemblyError(PodcastError):
    """The audio toolchain failed at one of the assembly stages."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class InvalidStateError(PodcastError):
    """Operation not permitted for the job's current status."""


class StaleJobError(PodcastError):
    """A job was abandoned mid-stage and has exceeded the staleness threshold."""


class PodcastNotFoundError(PodcastError):
    """No podcast job exists for the given identifier."""


class ReportNotFoundError(PodcastError):
    """The source report does not exist."""


class ReportNotCompletedError(PodcastError):
    """The source report exists but has not finished generating."""
