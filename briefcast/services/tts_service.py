"""
Speech synthesis for podcast dialogue lines.
"""
import asyncio
import logging
import re
import shutil
from pathlib import Path
from typing import Callable, List, Optional

from briefcast.config import (
    OPENAI_API_KEY,
    OPENAI_TTS_MODEL,
    PODCAST_MAX_CONCURRENT_TTS,
    PROVIDER_MAX_RETRIES,
    PROVIDER_TIMEOUT_SECONDS,
)
from briefcast.exceptions import SynthesisError
from briefcast.formats import WORDS_PER_MINUTE, voice_for_speaker
from briefcast.schemas.podcast import AudioSegmentResult, Dialogue, Script

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# Price per million characters
TTS_PRICING = {
    'tts-1': 15.0,
    'tts-1-hd': 30.0,
}

_UNSAFE_FILENAME_CHARS = re.compile(r'[^a-z0-9_-]')


class VoiceSynthesizer:
    """Interface for a text-to-speech provider."""

    async def synthesize(self, text: str, voice_id: str, speed: float, output_path: Path) -> int:
        """Write a clip for text to output_path and return its size in bytes."""
        raise NotImplementedError

    async def close(self):
        """Release provider connections."""


class OpenAISpeechSynthesizer(VoiceSynthesizer):
    """
    OpenAI speech endpoint.

    Timeouts and retries (including rate limiting) are handled by the SDK.
    """

    def __init__(
        self,
        api_key: Optional[str] = OPENAI_API_KEY,
        model: str = OPENAI_TTS_MODEL,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        max_retries: int = PROVIDER_MAX_RETRIES,
    ):
        from openai import AsyncOpenAI

        self.model = model
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)

    async def synthesize(self, text: str, voice_id: str, speed: float, output_path: Path) -> int:
        response = await self._client.audio.speech.create(
            model=self.model,
            voice=voice_id,
            input=text,
            speed=speed,
            response_format='mp3',
        )

        # Ensure output directory exists
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(response.content)

        return output_path.stat().st_size

    async def close(self):
        await self._client.close()


def estimate_duration(text: str, speed: float) -> float:
    """Estimated spoken length of text in seconds, to 0.1s."""
    words = len(text.split())
    minutes = words / WORDS_PER_MINUTE / (speed or 1.0)
    return round(minutes * 60, 1)


def estimate_tts_cost(characters: int, model: str = OPENAI_TTS_MODEL) -> float:
    """Synthesis cost in dollars for a character count."""
    price_per_million = TTS_PRICING.get(model, TTS_PRICING['tts-1-hd'])
    return round(characters / 1_000_000 * price_per_million, 3)


class TTSService:
    """
    Synthesizes every dialogue line of a script.

    Provider calls run concurrently, capped by an asyncio.Semaphore to stay
    under provider rate limits. One failed line fails the whole batch.
    """

    def __init__(
        self,
        synthesizer: VoiceSynthesizer,
        storage_dir: Path,
        max_concurrent: int = PODCAST_MAX_CONCURRENT_TTS,
    ):
        self.synthesizer = synthesizer
        self.storage_dir = Path(storage_dir)
        self.max_concurrent = max(1, max_concurrent)
        self._semaphore = asyncio.Semaphore(self.max_concurrent)

    def segments_dir(self, job_id: str) -> Path:
        return self.storage_dir / job_id / 'segments'

    def clip_path(self, job_id: str, index: int, speaker_id: str) -> Path:
        # Speaker ids come from the model; only a slug reaches the filesystem
        slug = _UNSAFE_FILENAME_CHARS.sub('', speaker_id.lower()) or 'speaker'
        return self.segments_dir(job_id) / f'segment_{index:04d}_{slug}.mp3'

    async def synthesize_line(self, job_id: str, index: int, dialogue: Dialogue) -> AudioSegmentResult:
        """
        Synthesize a single line.

        Raises:
            SynthesisError: the provider failed after its own retries
        """
        profile = voice_for_speaker(dialogue.speaker_id)
        output_path = self.clip_path(job_id, index, dialogue.speaker_id)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._semaphore:
            logger.debug(
                'TTS request: job=%s line=%d speaker=%s voice=%s',
                job_id, index, dialogue.speaker_id, profile.voice_id,
            )
            try:
                file_size = await self.synthesizer.synthesize(
                    text=dialogue.text,
                    voice_id=profile.voice_id,
                    speed=profile.speed,
                    output_path=output_path,
                )
            except Exception as e:
                raise SynthesisError(
                    f'Speech synthesis failed for line {index} ({dialogue.speaker_id}): {e}',
                    index=index,
                    speaker_id=dialogue.speaker_id,
                ) from e

        return AudioSegmentResult(
            index=index,
            speaker_id=dialogue.speaker_id,
            text=dialogue.text,
            file_path=str(output_path),
            duration=estimate_duration(dialogue.text, profile.speed),
            file_size=file_size,
        )

    async def synthesize_script(
        self,
        job_id: str,
        script: Script,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[AudioSegmentResult]:
        """
        Synthesize all lines of a script, preserving script order.

        Raises:
            SynthesisError: any line failed; no partial results are returned
        """
        dialogues = script.dialogues()
        total = len(dialogues)
        completed = 0

        async def run(index: int, dialogue: Dialogue) -> AudioSegmentResult:
            nonlocal completed
            result = await self.synthesize_line(job_id, index, dialogue)
            completed += 1
            if on_progress:
                on_progress(completed, total)
            return result

        tasks = [asyncio.ensure_future(run(index, dialogue)) for index, dialogue in enumerate(dialogues)]

        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        logger.info('TTS complete for job %s: %d lines', job_id, total)
        return list(results)

    def cleanup_segments(self, job_id: str):
        """Remove the clip directory for a job."""
        shutil.rmtree(self.segments_dir(job_id), ignore_errors=True)
